"""
Background workers: bridge polling, bridge posting and diagnostics.
"""
import logging
import queue
import threading

from PySide6.QtCore import QThread, Signal

from bridge.client import BridgeClient
from core.toolpath import ToolpathExtractor

logger = logging.getLogger(__name__)


class BridgePollWorker(QThread):
    """Runs the bridge client's poll loop off the GUI thread."""

    # Decoded message object (or raw text) received from the host
    messageReceived = Signal(object)

    def __init__(self, client: BridgeClient, parent=None):
        super().__init__(parent)
        self.client = client
        self._stop_event = threading.Event()
        self._remove_listener = client.add_message_listener(self.messageReceived.emit)

    def run(self):
        logger.debug("Bridge poll worker started")
        self.client.run(self._stop_event)
        logger.debug("Bridge poll worker finished")

    def stop(self, timeout_ms: int = 3000):
        """Ask the loop to finish and wait for it."""
        self._stop_event.set()
        self._remove_listener()
        self.wait(timeout_ms)


class BridgePostWorker(QThread):
    """
    Sends surface events to the host in order, off the GUI thread.

    ``post`` only enqueues, so a slow or unreachable host never blocks the
    caller. Messages still queued at ``stop`` are discarded.
    """

    def __init__(self, client: BridgeClient, parent=None):
        super().__init__(parent)
        self.client = client
        self._queue = queue.Queue()
        self._stop_event = threading.Event()

    def post(self, message):
        if self._stop_event.is_set():
            logger.debug("Bridge post worker stopped; dropping message")
            return
        self._queue.put(message)

    def run(self):
        logger.debug("Bridge post worker started")
        while not self._stop_event.is_set():
            try:
                message = self._queue.get(timeout=0.25)
            except queue.Empty:
                continue
            if message is None:
                break
            self.client.post_message(message)
        logger.debug("Bridge post worker finished")

    def stop(self, timeout_ms: int = 3000):
        self._stop_event.set()
        self._queue.put(None)
        self.wait(timeout_ms)


class DiagnosticsWorker(QThread):
    """Runs one extraction pass and reports its diagnostics."""

    # ErrorCollector from the finished pass
    diagnosticsReady = Signal(object)

    def __init__(self, extractor: ToolpathExtractor, text: str, parent=None):
        super().__init__(parent)
        self._extractor = extractor
        self._text = text

    def run(self):
        try:
            result = self._extractor.extract(self._text)
        except Exception:
            logger.exception("Diagnostics pass failed")
            return
        self.diagnosticsReady.emit(result.diagnostics)
