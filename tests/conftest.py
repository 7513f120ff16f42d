import json
import os
import tempfile
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

os.environ.setdefault("LOG_PATH", os.path.join(tempfile.gettempdir(), "transmission_transport_test.log"))

import pytest

from transmission_transport.session import SessionStore
from transmission_transport.transport import SESSION_ID_HEADER, Transport


ECHO = object()


class RecordedRequest:
    def __init__(self, headers, body):
        self.headers = headers
        self.body = body
        try:
            self.payload = json.loads(body) if body else None
        except ValueError:
            self.payload = None

    @property
    def tag(self):
        return self.payload.get("tag") if self.payload else None


def success(arguments=None, tag=ECHO, result="success"):
    """Scripted 200 answer, echoing the request tag unless one is given."""
    def respond(request):
        answer = {"arguments": arguments if arguments is not None else {}, "result": result}
        answer["tag"] = request.tag if tag is ECHO else tag
        return 200, {}, json.dumps(answer).encode()
    return respond


def conflict(token):
    def respond(request):
        return 409, {SESSION_ID_HEADER: token}, b"<h1>409: Conflict</h1>"
    return respond


def status(code, body=b""):
    def respond(request):
        return code, {}, body
    return respond


def raw(body, code=200):
    def respond(request):
        return code, {}, body
    return respond


class FakeTransmission:
    """In-process HTTP server answering from a script of responses."""

    def __init__(self):
        self.requests = []
        self.responses = []
        self.delay = 0
        self.server = _Server(("127.0.0.1", 0), _Handler)
        self.server.fake = self
        self.url = f"http://127.0.0.1:{self.server.server_address[1]}/transmission/rpc"
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)

    def script(self, *responses):
        self.responses.extend(responses)

    def next_response(self, request):
        if not self.responses:
            return 500, {}, b"no scripted response"
        return self.responses.pop(0)(request)

    def start(self):
        self._thread.start()

    def stop(self):
        self.server.shutdown()
        self.server.server_close()


class _Server(ThreadingHTTPServer):
    daemon_threads = True
    block_on_close = False

    def handle_error(self, request, client_address):
        # Clients that gave up (cancellation tests) leave broken pipes behind
        pass


class _Handler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def _read_body(self):
        if self.headers.get("Transfer-Encoding", "").lower() == "chunked":
            data = bytearray()
            while True:
                size = int(self.rfile.readline().split(b";")[0].strip(), 16)
                if size == 0:
                    while self.rfile.readline() not in (b"\r\n", b"\n", b""):
                        pass
                    return bytes(data)
                data.extend(self.rfile.read(size))
                self.rfile.readline()
        length = int(self.headers.get("Content-Length", 0))
        return self.rfile.read(length)

    def do_POST(self):
        fake = self.server.fake
        request = RecordedRequest(dict(self.headers), self._read_body())
        fake.requests.append(request)
        if fake.delay:
            time.sleep(fake.delay)
        code, headers, body = fake.next_response(request)
        self.send_response(code)
        for name, value in headers.items():
            self.send_header(name, value)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


class FixedRandom:
    """Stands in for random.Random, returning a scripted sequence of tags."""

    def __init__(self, *tags):
        self.tags = list(tags)

    def randint(self, a, b):
        return self.tags.pop(0) if len(self.tags) > 1 else self.tags[0]


@pytest.fixture
def transmission():
    fake = FakeTransmission()
    fake.start()
    yield fake
    fake.stop()


@pytest.fixture
def session_store():
    return SessionStore()


@pytest.fixture
def transport(session_store):
    t = Transport(session_store, username="admin", password="secret", user_agent="test-agent/1.0", timeout=5)
    yield t
    t.close()
