"""
Editor-side viewer session.
Forwards document and caret changes to the rendering surface and applies
the surface's requests back to the editor.
"""
import logging
from typing import Any, Callable, Dict, Optional

from bridge.channel import BridgeChannel
from config.viewer_config import ConfigManager, ViewerConfig
from core import messages
from core.ready_gate import ReadyGate
from utils.errors import MessageError
from utils.log import preview

logger = logging.getLogger(__name__)


class ViewerHost:
    """
    One editor document paired with one rendering surface.

    Outbound messages wait in a ReadyGate until the surface has announced
    itself with webviewReady.
    """

    def __init__(self, channel: BridgeChannel, config: Optional[ViewerConfig] = None,
                 caret_mover: Optional[Callable[[int], None]] = None):
        self.channel = channel
        self.config = config or ConfigManager.default()
        self.caret_mover = caret_mover
        self.gate = ReadyGate(self._publish, name="host")
        self.attached = False
        self._text = ""

    @property
    def line_count(self) -> int:
        return self._text.count("\n") + 1

    def settings(self) -> Dict[str, Any]:
        return ConfigManager.settings_payload(self.config)

    # Editor -> surface

    def attach(self, text: str):
        """Start following a document and send it for the first load."""
        self.attached = True
        self._text = text
        logger.info("Viewer attached (%d chars)", len(text))
        self._send_load()

    def document_changed(self, text: str):
        if not self.attached:
            return
        self._text = text
        self.gate.send(messages.content_changed(text, self.settings()))

    def caret_moved(self, line_number: int):
        if not self.attached:
            return
        self.gate.send(messages.cursor_position_changed(line_number))

    def detach(self):
        """Stop following the document; anything still queued is dropped."""
        if self.attached:
            logger.info("Viewer detached")
        self.attached = False
        self._text = ""
        self.gate.reset()

    # Surface -> editor

    def handle_incoming(self, payload: Any):
        """Dispatch one event posted by the surface."""
        try:
            message = messages.decode(payload)
        except MessageError as exc:
            logger.warning("Dropping bridge payload (%s): %s", exc, preview(str(payload)))
            return

        kind = message["type"]
        if kind == messages.BRIDGE_DEBUG:
            logger.info("Webview debug: %s", message.get("debugMessage"))
            return
        if not self.attached:
            logger.debug("Ignoring %s, no document attached", kind)
            return

        if kind == messages.WEBVIEW_READY:
            flushed = self.gate.mark_ready()
            logger.info("Webview ready, flushed %d queued messages", flushed)
            self._send_load()
        elif kind == messages.HIGHLIGHT_LINE:
            line_number = messages.line_number_of(message)
            if line_number is None:
                logger.warning("highlightLine without a usable lineNumber")
                return
            self.move_caret(line_number)
        else:
            logger.warning("Unknown message type from webview: %s", kind)

    def move_caret(self, line_number: int):
        """Move the editor caret to ``line_number``, clamped to the document."""
        clamped = max(1, min(line_number, self.line_count))
        if self.caret_mover is not None:
            self.caret_mover(clamped)

    def _send_load(self):
        self.gate.send(messages.load_gcode(self._text, self.settings()))

    def _publish(self, message: Dict[str, Any]):
        self.channel.publish(messages.encode(message))
