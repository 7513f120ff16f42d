"""
Session id storage for the Transmission anti-forgery token.

Transmission rejects requests carrying a stale X-Transmission-Session-Id with
HTTP 409 and hands out the new id in the same header. Every call reads the
token, only a rejection writes it, so the store is guarded by a reader/writer
lock rather than a plain mutex.
"""

import threading
from contextlib import contextmanager


class ReadWriteLock:
    """Multiple readers or a single writer. Waiting writers block new readers."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self):
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self):
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class SessionStore:
    def __init__(self, token: str = ""):
        self._lock = ReadWriteLock()
        self._token = token

    def get(self) -> str:
        with self._lock.read_locked():
            return self._token

    def set(self, token: str) -> None:
        with self._lock.write_locked():
            self._token = token
