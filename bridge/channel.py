"""
HTTP bridge between the editor host and the rendering surface.

The host publishes messages into a bounded, versioned buffer; the surface
polls for the next message after the last version it saw and posts its own
events back. The surface may live in a sandbox that can only make HTTP
requests, so there is no push channel.
"""
import hmac
import logging
import secrets
import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional

from flask import Flask, Response, jsonify, request
from werkzeug.serving import WSGIRequestHandler, make_server

from utils.errors import BridgeAuthError, BridgeStoppedError
from utils.log import preview

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 128
TOKEN_HEADER = "X-Ncviewer-Token"
ALT_TOKEN_HEADER = "Token"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": f"{TOKEN_HEADER}, {ALT_TOKEN_HEADER}, Content-Type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}

Listener = Callable[[str], None]


@dataclass(frozen=True)
class MessageEnvelope:
    version: int
    message: str

    def to_dict(self) -> Dict[str, object]:
        return {"version": self.version, "message": self.message}


class MessageBuffer:
    """Bounded buffer of the most recent messages, oldest dropped first."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._envelopes: Deque[MessageEnvelope] = deque()
        self._version = 0

    def append(self, message: str) -> MessageEnvelope:
        with self._lock:
            self._version += 1
            envelope = MessageEnvelope(self._version, message)
            self._envelopes.append(envelope)
            while len(self._envelopes) > self.capacity:
                self._envelopes.popleft()
        return envelope

    def next_after(self, version: int) -> Optional[MessageEnvelope]:
        """Oldest buffered envelope newer than ``version``."""
        with self._lock:
            for envelope in self._envelopes:
                if envelope.version > version:
                    return envelope
        return None

    @property
    def latest_version(self) -> int:
        with self._lock:
            return self._version

    def __len__(self):
        with self._lock:
            return len(self._envelopes)


class _QuietRequestHandler(WSGIRequestHandler):
    """Keeps the surface's poll loop out of the INFO log."""

    def log_request(self, code="-", size="-"):
        logger.debug("%s %s -> %s", self.command, self.path, code)


def _text(body: str, status: int) -> Response:
    return Response(body, status=status, mimetype="text/plain")


def _parse_after(raw: Optional[str]) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0


class BridgeChannel:
    """Versioned message channel with an HTTP transport."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY, host: str = "127.0.0.1"):
        self.buffer = MessageBuffer(capacity)
        self.host = host
        self.port: Optional[int] = None
        self._token = secrets.token_urlsafe(32)
        self._listeners: List[Listener] = []
        self._listeners_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._server = None
        self._thread: Optional[threading.Thread] = None
        self._stopped = False
        self.app = self._create_app()

    # Lifecycle

    @property
    def token(self) -> str:
        return self._token

    @property
    def is_running(self) -> bool:
        return self._server is not None and not self._stopped

    @property
    def endpoint(self) -> Optional[str]:
        if self.port is None:
            return None
        return f"http://{self.host}:{self.port}"

    def start(self) -> str:
        """Bind an ephemeral port, serve on a background thread, return the endpoint."""
        with self._state_lock:
            self._check_open()
            if self._server is not None:
                return self.endpoint
            server = make_server(self.host, 0, self.app, threaded=True,
                                 request_handler=_QuietRequestHandler)
            self._server = server
            self.port = server.server_port
            self._thread = threading.Thread(target=server.serve_forever,
                                            name="ncviewer-bridge", daemon=True)
            self._thread.start()
        logger.info("Http bridge started on port %d", self.port)
        return self.endpoint

    def stop(self):
        """Release the port and reject everything afterwards. Safe to call twice."""
        with self._state_lock:
            if self._stopped:
                return
            self._stopped = True
            server, self._server = self._server, None
            thread, self._thread = self._thread, None
        with self._listeners_lock:
            self._listeners.clear()
        if server is not None:
            server.shutdown()
            server.server_close()
            if thread is not None:
                thread.join(timeout=5)
        logger.info("Http bridge stopped")

    def connection_info(self) -> Dict[str, Optional[str]]:
        """What the rendering surface needs to reach this channel."""
        return {"endpoint": self.endpoint, "token": self._token}

    # Producer side

    def publish(self, message: str) -> MessageEnvelope:
        """Append a message for the surface. Never blocks on slow consumers."""
        self._check_open()
        envelope = self.buffer.append(message)
        logger.debug("Http bridge publish version=%d len=%d", envelope.version, len(message))
        return envelope

    def add_listener(self, listener: Listener):
        with self._listeners_lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener):
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # Consumer side

    def is_authorized(self, token: Optional[str]) -> bool:
        if not isinstance(token, str):
            return False
        return hmac.compare_digest(token.encode("utf-8"), self._token.encode("utf-8"))

    def poll(self, after: int, token: Optional[str]) -> Optional[MessageEnvelope]:
        """Next envelope after ``after``, or None if there is nothing new."""
        self._check_open()
        self._authorize(token)
        return self.buffer.next_after(after)

    def submit(self, payload: str, token: Optional[str]):
        """Hand a surface event to every listener, in registration order."""
        self._check_open()
        self._authorize(token)
        self._deliver(payload)

    def _deliver(self, payload: str):
        logger.debug("Http bridge event body len=%d", len(payload))
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                logger.exception("Http bridge listener error for payload %s", preview(payload))

    def _authorize(self, token: Optional[str]):
        if not self.is_authorized(token):
            raise BridgeAuthError()

    def _check_open(self):
        if self._stopped:
            raise BridgeStoppedError("bridge channel is stopped")

    # HTTP transport

    def _create_app(self) -> Flask:
        app = Flask(__name__)

        @app.before_request
        def guard():
            if request.method == "OPTIONS":
                response = Response(status=204)
                response.headers["Access-Control-Max-Age"] = "600"
                return response
            if self._stopped:
                return _text("stopped", 503)
            token = request.headers.get(TOKEN_HEADER) or request.headers.get(ALT_TOKEN_HEADER)
            if not self.is_authorized(token):
                return _text("unauthorized", 401)
            return None

        @app.after_request
        def add_cors_headers(response):
            for name, value in CORS_HEADERS.items():
                response.headers[name] = value
            return response

        @app.route("/poll", methods=["GET"])
        def poll():
            envelope = self.buffer.next_after(_parse_after(request.args.get("after")))
            if envelope is None:
                return Response(status=204)
            return jsonify(envelope.to_dict())

        @app.route("/event", methods=["POST"])
        def event():
            self._deliver(request.get_data(as_text=True))
            return _text("accepted", 202)

        @app.route("/health", methods=["GET"])
        def health():
            return _text("ok", 200)

        return app
