"""
Rendering-surface viewer session.
Applies host messages to the selection engine and turns user interaction
in the view into highlightLine requests for the editor.
"""
import logging
from typing import Any, Callable, Dict, Optional, Sequence

from config.viewer_config import FALLBACK_EXCLUDE_CODES
from core import messages
from core.ready_gate import ReadyGate
from core.selection import LoadResult, SelectionEngine
from utils.errors import MessageError

logger = logging.getLogger(__name__)

# kind is one of "load", "content", "selection", "theme"
UpdateCallback = Callable[[str, Optional[LoadResult]], None]


class ViewerSurface:
    """The view's half of a viewer session."""

    def __init__(self, post: Callable[[Dict[str, Any]], Any], engine: Optional[SelectionEngine] = None,
                 on_update: Optional[UpdateCallback] = None):
        self._post = post
        self.engine = engine or SelectionEngine(FALLBACK_EXCLUDE_CODES)
        self.on_update = on_update
        self.debug_gate = ReadyGate(self._post_debug, name="surface-debug")

    # Lifecycle

    def connected(self):
        """The bridge is up; queued debug messages can go out now."""
        self.debug_gate.mark_ready()
        self.emit_debug("HTTP bridge connected")

    def ready(self):
        """Announce readiness so the host flushes its queue and sends the document."""
        self._post(messages.webview_ready())
        self.emit_debug("webviewReady posted")

    def emit_debug(self, text: str):
        message = f"[bridge] {text}"
        logger.debug(message)
        self.debug_gate.send(message)

    # Host -> surface

    def handle_payload(self, payload: Any):
        try:
            message = messages.decode(payload)
        except MessageError as exc:
            logger.error("Failed to parse incoming payload: %s", exc)
            self.emit_debug("failed to parse incoming payload")
            return

        kind = message["type"]
        self.emit_debug(f"incoming message type={kind}")
        if kind in (messages.LOAD_GCODE, messages.CONTENT_CHANGED):
            text = message.get("ncText")
            if not isinstance(text, str):
                self.emit_debug(f"{kind} without ncText")
                return
            excludes = messages.exclude_codes_of(message, FALLBACK_EXCLUDE_CODES)
            if kind == messages.LOAD_GCODE:
                self.emit_debug(f"loadGCode received length={len(text)}")
                self._notify("load", self.engine.load(text, excludes))
            else:
                self._notify("content", self.engine.content_changed(text, excludes))
        elif kind == messages.CURSOR_POSITION_CHANGED:
            line_number = messages.line_number_of(message)
            if line_number is not None and self.engine.cursor_position_changed(line_number):
                self._notify("selection")
        else:
            logger.debug("Ignoring message type %s", kind)

    # User interaction

    def scrub(self, index: int) -> Optional[int]:
        """Scrubber moved to segment ``index``."""
        line_number = self.engine.scrub_to(index)
        if line_number is None:
            return None
        self.emit_debug(f"slider highlight line={line_number}")
        self._post(messages.highlight_line(line_number))
        self._notify("selection")
        return line_number

    def click(self, origin: Sequence[float], direction: Sequence[float],
              threshold: float) -> Optional[int]:
        """Click in the view, already turned into a world-space ray."""
        line_number = self.engine.click(origin, direction, threshold)
        if line_number is not None:
            self.emit_debug(f"click highlight line={line_number}")
            self._post(messages.highlight_line(line_number))
        self._notify("selection")
        return line_number

    def set_theme(self, theme: str):
        self.engine.set_theme(theme)
        self._notify("theme")

    def _post_debug(self, text: str):
        self._post(messages.bridge_debug(text))

    def _notify(self, kind: str, result: Optional[LoadResult] = None):
        if self.on_update is not None:
            self.on_update(kind, result)
