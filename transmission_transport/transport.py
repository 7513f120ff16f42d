"""
HTTP transport for Transmission RPC calls.

Provides the Transport class which issues one HTTP POST per call attempt.
The request body is produced by an encoder running in its own thread and
handed to requests as a chunked stream through a bounded queue, so
serialization and the network write overlap and large argument lists are
never held in memory twice.

Status handling:
- 200: the buffered response body is returned for decoding
- 409: the session id is stale; the new one is read from the response
  header, stored, and TokenExpired is raised
- anything else: HTTPStatusError carrying the code

When a Cancellation is given, a watcher thread shuts down the socket of the
attempt's connection as soon as it fires, so a request blocked on the daemon
returns at once with CallCancelled.
"""

import queue
import socket
import sys
import threading
from typing import Iterable, Optional, TextIO

import requests
from requests.adapters import HTTPAdapter
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool

from .cancellation import Cancellation
from .exceptions import (
    CallCancelled,
    ConfigurationError,
    EncodingError,
    HTTPStatusError,
    NetworkError,
    TokenExpired,
)
from .logger import logger
from .session import SessionStore
from .version import USER_AGENT


SESSION_ID_HEADER = "X-Transmission-Session-Id"

# Bound on chunks buffered between the encoder and the HTTP write
QUEUE_SIZE = 16
# How often blocked queue operations look at the stop/cancel flags
POLL_INTERVAL = 0.05
READ_CHUNK_SIZE = 64 * 1024

_EOF = object()

# Watcher of the attempt running on the current thread, if any
_active = threading.local()


class BodyProducer:
    """Runs an encoder in a background thread and exposes its output as a stream."""

    def __init__(self, chunks: Iterable[bytes], cancel: Optional[Cancellation] = None, maxsize: int = QUEUE_SIZE):
        self._chunks = chunks
        self._cancel = cancel
        self._queue = queue.Queue(maxsize=maxsize)
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name="rpc-body-encoder", daemon=True)
        self.error: Optional[EncodingError] = None

    def start(self):
        self._thread.start()
        return self

    def _put(self, item) -> bool:
        while not self._stop.is_set():
            try:
                self._queue.put(item, timeout=POLL_INTERVAL)
                return True
            except queue.Full:
                continue
        return False

    def _run(self):
        try:
            for chunk in self._chunks:
                if not self._put(chunk):
                    return
        except EncodingError as e:
            self.error = e
        except Exception as e:
            self.error = EncodingError(f"request payload JSON marshalling failed: {e}")
            self.error.__cause__ = e
        finally:
            self._put(_EOF)

    def stream(self):
        """Generator consumed by requests as the request body."""
        while True:
            if self._cancel is not None and self._cancel.cancelled:
                raise CallCancelled("call cancelled while sending the request")
            try:
                item = self._queue.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue
            if item is _EOF:
                return
            yield item

    def join(self):
        """Stop the encoder if it is still blocked and wait for it to exit."""
        self._stop.set()
        self._thread.join()

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()


class CancelWatcher:
    """
    Aborts the connection of an in-flight attempt when its cancellation fires.

    Connections handed out by the pools of a CancellableAdapter on this thread
    are tracked while the watcher is active; once the signal fires their
    sockets are shut down, which wakes requests wherever it is blocked.
    """

    def __init__(self, cancel: Optional[Cancellation] = None):
        self._cancel = cancel
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._connections = []
        self._aborted = set()
        self._thread = None

    def start(self):
        _active.watcher = self
        if self._cancel is not None:
            self._thread = threading.Thread(target=self._run, name="rpc-cancel-watcher", daemon=True)
            self._thread.start()
        return self

    def track(self, conn):
        with self._lock:
            self._connections.append(conn)

    def _abort(self):
        with self._lock:
            connections = list(self._connections)
        for conn in connections:
            sock = getattr(conn, "sock", None)
            if sock is None or id(sock) in self._aborted:
                continue
            self._aborted.add(id(sock))
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                # Already closed by the other side
                continue
            logger.debug("Aborted in-flight RPC connection on cancellation")

    def _run(self):
        # Keep polling after firing: the socket may not exist yet while connecting
        while not self._done.wait(POLL_INTERVAL):
            if self._cancel.cancelled:
                self._abort()

    def stop(self):
        if getattr(_active, "watcher", None) is self:
            _active.watcher = None
        self._done.set()
        if self._thread is not None:
            self._thread.join()


class _TrackingPoolMixin:
    def _get_conn(self, timeout=None):
        conn = super()._get_conn(timeout=timeout)
        watcher = getattr(_active, "watcher", None)
        if watcher is not None:
            watcher.track(conn)
        return conn


class TrackingHTTPConnectionPool(_TrackingPoolMixin, HTTPConnectionPool):
    pass


class TrackingHTTPSConnectionPool(_TrackingPoolMixin, HTTPSConnectionPool):
    pass


class CancellableAdapter(HTTPAdapter):
    """HTTPAdapter whose connections can be aborted by a CancelWatcher."""

    def init_poolmanager(self, *args, **kwargs):
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = {
            "http": TrackingHTTPConnectionPool,
            "https": TrackingHTTPSConnectionPool,
        }


class Transport:
    def __init__(
        self,
        session_store: SessionStore,
        username: Optional[str] = None,
        password: Optional[str] = None,
        user_agent: str = USER_AGENT,
        timeout: float = 30,
        verify: bool = True,
        debug: bool = False,
        debug_stream: Optional[TextIO] = None,
        session: Optional[requests.Session] = None,
    ):
        self.session_store = session_store
        self.user_agent = user_agent
        self.timeout = timeout
        self.debug = debug
        self.debug_stream = debug_stream
        self.http = session if session is not None else requests.Session()
        self.http.verify = verify
        self.http.auth = (username or "", password or "")
        adapter = CancellableAdapter()
        self.http.mount("http://", adapter)
        self.http.mount("https://", adapter)

    def close(self):
        if self.http is not None:
            self.http.close()
            self.http = None

    def _headers(self):
        return {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
            SESSION_ID_HEADER: self.session_store.get(),
        }

    def _timeout(self, cancel: Optional[Cancellation]):
        timeout = self.timeout
        remaining = cancel.remaining() if cancel is not None else None
        if remaining is not None:
            # urllib3 rejects a zero timeout
            remaining = max(remaining, 0.001)
            timeout = remaining if timeout is None else min(timeout, remaining)
        return timeout

    def _network_error(self, error, cancel, encode_error=None, deadline_bound=False):
        if (cancel is not None and cancel.cancelled) or (deadline_bound and isinstance(error, requests.Timeout)):
            err = CallCancelled(f"call cancelled: {error}")
        elif encode_error is not None:
            err = NetworkError(f"request error: {error} | json payload marshall error: {encode_error}")
        else:
            err = NetworkError(f"request error: {error}")
        err.__cause__ = error
        return err

    def _read_body(self, response: requests.Response, cancel: Optional[Cancellation], deadline_bound: bool = False) -> bytes:
        body = bytearray()
        try:
            for chunk in response.iter_content(READ_CHUNK_SIZE):
                if cancel is not None and cancel.cancelled:
                    raise CallCancelled("call cancelled while reading the answer")
                body.extend(chunk)
        except requests.RequestException as e:
            raise self._network_error(e, cancel, deadline_bound=deadline_bound) from e
        if cancel is not None and cancel.cancelled:
            raise CallCancelled("call cancelled while reading the answer")
        return bytes(body)

    def _dump(self, body: bytes):
        stream = self.debug_stream if self.debug_stream is not None else sys.stderr
        text = body.decode("utf-8", errors="replace")
        print(text, file=stream)
        logger.debug(f"RPC answer body: {text}")

    def send(self, url: str, chunks: Iterable[bytes], cancel: Optional[Cancellation] = None) -> bytes:
        """
        POST an encoded request and return the raw answer body.

        Args:
            url: RPC endpoint
            chunks: Encoded request envelope, consumed in a background thread
            cancel: Optional cancellation signal for this attempt

        Returns:
            Response body of a 200 answer

        Raises:
            ConfigurationError: If the transport is closed or url is empty
            EncodingError: If the encoder failed, whatever the HTTP outcome
            NetworkError: If the exchange failed (CallCancelled when cancelled)
            TokenExpired: On 409, after the session store was updated
            HTTPStatusError: On any other non-200 status
        """
        if self.http is None or not url:
            raise ConfigurationError("this transport is not initialized, please provide an RPC URL")
        if cancel is not None and cancel.cancelled:
            raise CallCancelled("call cancelled before sending the request")

        remaining = cancel.remaining() if cancel is not None else None
        deadline_bound = remaining is not None and (self.timeout is None or remaining < self.timeout)

        producer = BodyProducer(chunks, cancel).start()
        watcher = CancelWatcher(cancel).start()
        try:
            try:
                response = self.http.post(
                    url,
                    data=producer.stream(),
                    headers=self._headers(),
                    timeout=self._timeout(cancel),
                    stream=True,
                )
            except requests.RequestException as e:
                producer.join()
                raise self._network_error(e, cancel, producer.error, deadline_bound) from e
            finally:
                # Joined on every path, cancellation included
                producer.join()

            with response:
                if producer.error is not None:
                    raise producer.error

                if response.status_code == 409:
                    token = response.headers.get(SESSION_ID_HEADER, "")
                    self.session_store.set(token)
                    logger.info(f"Transmission session id rotated to '{token}'")
                    raise TokenExpired(token)

                if response.status_code != 200:
                    raise HTTPStatusError(response.status_code, response.reason or None)

                body = self._read_body(response, cancel, deadline_bound)
        finally:
            watcher.stop()

        if self.debug:
            self._dump(body)
        return body
