"""
Rendering-surface side of the HTTP bridge.

Polls the host's channel for the next message and posts surface events
back, with the token in a request header.
"""
import json
import logging
import threading
from typing import Any, Callable, List, Optional, Union

import requests

from bridge.channel import TOKEN_HEADER
from utils.errors import BridgeAuthError, BridgeError
from utils.log import preview

logger = logging.getLogger(__name__)

MessageListener = Callable[[Any], None]


class BridgeClient:
    """Long-poll style client for a BridgeChannel."""

    DELAY_AFTER_MESSAGE = 0.01
    DELAY_WHEN_IDLE = 0.25
    DELAY_AFTER_ERROR = 1.0

    def __init__(self, endpoint: str, token: str,
                 session: Optional[requests.Session] = None,
                 timeout: float = 5.0, after: int = 0):
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({TOKEN_HEADER: token})
        self.last_version = after
        self._listeners: List[MessageListener] = []
        self._lock = threading.Lock()

    def add_message_listener(self, listener: MessageListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def remove():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def poll_once(self) -> bool:
        """Fetch at most one message. Returns True if one was delivered."""
        response = self.session.get(f"{self.endpoint}/poll",
                                    params={"after": self.last_version},
                                    timeout=self.timeout)
        if response.status_code == 204:
            return False
        if response.status_code == 401:
            raise BridgeAuthError()
        if response.status_code != 200:
            raise BridgeError(f"poll failed with status {response.status_code}")

        data = response.json()
        self.last_version = int(data.get("version", self.last_version))
        message = data.get("message")
        if isinstance(message, str):
            try:
                message = json.loads(message)
            except ValueError:
                logger.debug("Bridge message is not JSON, delivering as text: %s", preview(message))
        self._notify(message)
        return True

    def post_message(self, message: Union[dict, str]) -> bool:
        """Send an event to the host. Failures are logged, not raised."""
        body = message if isinstance(message, str) else json.dumps(message)
        try:
            response = self.session.post(f"{self.endpoint}/event",
                                         data=body.encode("utf-8"),
                                         headers={"Content-Type": "application/json"},
                                         timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("HTTP bridge post failed: %s", exc)
            return False
        if response.status_code != 202:
            logger.error("HTTP bridge post rejected with status %d", response.status_code)
            return False
        return True

    def check_health(self) -> bool:
        try:
            response = self.session.get(f"{self.endpoint}/health", timeout=self.timeout)
        except requests.RequestException:
            return False
        return response.status_code == 200

    def run(self, stop_event: threading.Event):
        """Poll until ``stop_event`` is set."""
        logger.info("HTTP bridge polling %s", self.endpoint)
        while not stop_event.is_set():
            try:
                delivered = self.poll_once()
            except (requests.RequestException, BridgeError, ValueError) as exc:
                logger.error("HTTP bridge poll error: %s", exc)
                stop_event.wait(self.DELAY_AFTER_ERROR)
                continue
            stop_event.wait(self.DELAY_AFTER_MESSAGE if delivered else self.DELAY_WHEN_IDLE)

    def close(self):
        self.session.close()

    def _notify(self, message: Any):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(message)
            except Exception:
                logger.exception("Bridge message listener failed")
