"""
Transmission RPC call layer.

Provides the TransmissionRPC class, the public entry point for calling named
remote methods on a Transmission daemon. It knows nothing about the method
catalog: callers pass a method name, optional arguments, and where the answer
arguments should be decoded.

Usage:
    from transmission_transport import TransmissionRPC

    with TransmissionRPC("http://localhost:9091/transmission/rpc", "user", "pass") as rpc:
        session = rpc.call("session-get")
        torrents = rpc.call("torrent-get", {"fields": ["id", "name"]})

The daemon's anti-forgery session id is handled transparently: a 409 answer
updates the stored id and the call is retried exactly once.
"""

import random
from typing import Any, Optional, TextIO

import requests

from .cancellation import Cancellation
from .config import Config
from .exceptions import (
    ProtocolViolation,
    RepeatedTokenExpiredError,
    RPCError,
    TokenExpired,
)
from .logger import logger
from .payload import SUCCESS, decode, iter_encode, new_tag
from .session import SessionStore
from .transport import Transport
from .version import USER_AGENT


class TransmissionRPC:
    def __init__(
        self,
        url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        *,
        host: str = Config.TRANSMISSION_HOST,
        port: int = Config.TRANSMISSION_PORT,
        https: bool = Config.TRANSMISSION_HTTPS,
        rpc_path: str = Config.TRANSMISSION_RPC_PATH,
        timeout: float = Config.TRANSMISSION_TIMEOUT,
        user_agent: Optional[str] = None,
        debug: bool = Config.DEBUG,
        debug_stream: Optional[TextIO] = None,
        verify: bool = Config.TRANSMISSION_VERIFY_SSL,
        session: Optional[requests.Session] = None,
        rng: Optional[random.Random] = None,
    ):
        if url is None:
            scheme = "https" if https else "http"
            url = f"{scheme}://{host}:{port}{rpc_path}" if host else ""
        self.url = url
        self.rng = rng if rng is not None else random.Random()
        self._session = SessionStore()
        self.transport = Transport(
            self._session,
            username=username,
            password=password,
            user_agent=user_agent or Config.TRANSMISSION_USER_AGENT or USER_AGENT,
            timeout=timeout,
            verify=verify,
            debug=debug,
            debug_stream=debug_stream,
            session=session,
        )

    @classmethod
    def from_config(cls, **kwargs) -> "TransmissionRPC":
        """Build a client purely from Config (environment / .env)."""
        return cls(
            Config.transmission_url(),
            Config.TRANSMISSION_USERNAME or None,
            Config.TRANSMISSION_PASSWORD or None,
            **kwargs,
        )

    @property
    def session_id(self) -> str:
        return self._session.get()

    def close(self):
        self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _attempt(self, method: str, arguments: Any, result: Any, cancel: Optional[Cancellation]) -> Any:
        tag = new_tag(self.rng)
        body = self.transport.send(self.url, iter_encode(method, arguments, tag), cancel)
        answer = decode(body, result)

        if answer.tag is None:
            raise ProtocolViolation("http answer does not have a tag within its payload")
        if answer.tag != tag:
            raise ProtocolViolation(
                f"http request tag and answer payload tag do not match ({tag} != {answer.tag})"
            )
        if answer.result != SUCCESS:
            raise ProtocolViolation(
                f"http request ok but payload does not indicate success: {answer.result}",
                status=answer.result,
            )
        return answer.arguments

    def call(
        self,
        method: str,
        arguments: Any = None,
        result: Any = None,
        cancel: Optional[Cancellation] = None,
    ) -> Any:
        """
        Call a remote method.

        Args:
            method: RPC method name, e.g. "session-get"
            arguments: JSON serializable arguments, omitted from the request if None
            result: Where to decode the answer arguments: None for raw JSON,
                a dict (updated in place) or a pydantic model class
            cancel: Optional Cancellation aborting the in-flight exchange

        Returns:
            The decoded answer arguments

        Raises:
            RPCError: Any failure, with .method set to the method name
        """
        logger.debug(f"Calling Transmission RPC method '{method}'")
        try:
            try:
                return self._attempt(method, arguments, result, cancel)
            except TokenExpired:
                logger.debug(f"Retrying '{method}' with the new session id")
            try:
                return self._attempt(method, arguments, result, cancel)
            except TokenExpired as e:
                raise RepeatedTokenExpiredError() from e
        except RPCError as e:
            e.method = method
            logger.warning(f"Transmission RPC call failed: {e}")
            raise
