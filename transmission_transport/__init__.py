"""
Transmission Transport - call Transmission daemon RPC methods over HTTP.

Handles the daemon's rotating X-Transmission-Session-Id, streams request
encoding concurrently with the network write, and checks that every answer
belongs to the request that produced it.
"""

from .cancellation import Cancellation
from .client import TransmissionRPC
from .config import Config
from .exceptions import (
    CallCancelled,
    ConfigurationError,
    DecodingError,
    EncodingError,
    HTTPStatusError,
    NetworkError,
    ProtocolViolation,
    RepeatedTokenExpiredError,
    RPCError,
)
from .version import __version__

__all__ = [
    "TransmissionRPC",
    "Cancellation",
    "Config",
    "RPCError",
    "ConfigurationError",
    "EncodingError",
    "NetworkError",
    "CallCancelled",
    "RepeatedTokenExpiredError",
    "HTTPStatusError",
    "DecodingError",
    "ProtocolViolation",
]
