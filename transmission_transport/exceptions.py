"""
Error taxonomy for the Transmission RPC transport.

Every error raised out of TransmissionRPC.call() derives from RPCError and
carries the name of the remote method that failed:
- ConfigurationError: transport used before initialization or after close
- EncodingError: request arguments could not be serialized
- NetworkError: the HTTP exchange failed (DNS, connect, timeout, TLS)
- CallCancelled: the caller's cancellation signal fired
- TokenExpired: the daemon rotated its session id (internal, retried once)
- RepeatedTokenExpiredError: session id rejected twice in a row
- HTTPStatusError: any status other than 200 and 409
- DecodingError: response body is not a well-formed envelope
- ProtocolViolation: envelope decoded but failed tag or status checks
"""

from http import HTTPStatus
from typing import Optional


class RPCError(Exception):
    """Base exception for all RPC transport errors."""

    def __init__(self, message: str = "", method: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.method = method

    def __str__(self):
        if self.method:
            return f"'{self.method}' method: {self.message}"
        return self.message


class ConfigurationError(RPCError):
    """Raised when the transport is used before it is initialized."""
    pass


class EncodingError(RPCError):
    """Raised when request arguments cannot be serialized to JSON."""
    pass


class NetworkError(RPCError):
    """Raised when the underlying HTTP exchange fails. Never retried."""
    pass


class CallCancelled(NetworkError):
    """Raised when the caller cancels the call or its deadline elapses."""
    pass


class TokenExpired(RPCError):
    """Internal signal: the daemon answered 409 with a new session id."""

    def __init__(self, token: str, method: Optional[str] = None):
        super().__init__(f"session id rotated to '{token}'", method)
        self.token = token


class RepeatedTokenExpiredError(RPCError):
    """Raised when the session id is rejected on both attempts of a call."""

    def __init__(self, method: Optional[str] = None):
        super().__init__(
            "session id invalid 2 times in a row: stopping to avoid infinite loop",
            method,
        )


class HTTPStatusError(RPCError):
    """Raised for any HTTP status other than 200 and 409."""

    def __init__(self, code: int, phrase: Optional[str] = None, method: Optional[str] = None):
        if phrase is None:
            try:
                phrase = HTTPStatus(code).phrase
            except ValueError:
                phrase = ""
        text = f"HTTP error {code}"
        if phrase:
            text += f": {phrase}"
        super().__init__(text, method)
        self.code = code
        self.phrase = phrase


class DecodingError(RPCError):
    """Raised when the response body is not a well-formed envelope."""
    pass


class ProtocolViolation(RPCError):
    """Raised when a decoded envelope fails correlation or status checks."""

    def __init__(self, reason: str, method: Optional[str] = None, status: Optional[str] = None):
        super().__init__(reason, method)
        self.reason = reason
        self.status = status
