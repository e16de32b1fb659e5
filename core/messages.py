"""
Messages exchanged between the editor host and the rendering surface.

Every message is a JSON object with a ``type`` discriminator.
"""
import json
from typing import Any, Dict, Iterable, List, Optional

from utils.errors import MessageError

# Host -> surface
LOAD_GCODE = "loadGCode"
CONTENT_CHANGED = "contentChanged"
CURSOR_POSITION_CHANGED = "cursorPositionChanged"

# Surface -> host
WEBVIEW_READY = "webviewReady"
HIGHLIGHT_LINE = "highlightLine"
BRIDGE_DEBUG = "bridgeDebug"


def load_gcode(nc_text: str, settings: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": LOAD_GCODE, "ncText": nc_text, "settings": settings}


def content_changed(nc_text: str, settings: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": CONTENT_CHANGED, "ncText": nc_text, "settings": settings}


def cursor_position_changed(line_number: int) -> Dict[str, Any]:
    return {"type": CURSOR_POSITION_CHANGED, "lineNumber": line_number}


def webview_ready() -> Dict[str, Any]:
    return {"type": WEBVIEW_READY}


def highlight_line(line_number: int) -> Dict[str, Any]:
    return {"type": HIGHLIGHT_LINE, "lineNumber": line_number}


def bridge_debug(debug_message: str) -> Dict[str, Any]:
    return {"type": BRIDGE_DEBUG, "debugMessage": debug_message}


def encode(message: Dict[str, Any]) -> str:
    return json.dumps(message, separators=(",", ":"))


def decode(payload: Any) -> Dict[str, Any]:
    """Turn a raw payload (JSON text or an already decoded object) into a message.

    Raises MessageError when the payload is not an object with a string type.
    """
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError as exc:
            raise MessageError(f"payload is not JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MessageError("payload is not a JSON object")
    if not isinstance(payload.get("type"), str):
        raise MessageError("payload has no type")
    return payload


def line_number_of(message: Dict[str, Any]) -> Optional[int]:
    """The message's lineNumber as an int, or None if absent or not integral."""
    value = message.get("lineNumber")
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def exclude_codes_of(message: Dict[str, Any], fallback: Iterable[str]) -> List[str]:
    """Exclude codes from a message's settings, or ``fallback`` when missing."""
    settings = message.get("settings")
    if isinstance(settings, dict):
        codes = settings.get("excludeCodes")
        if isinstance(codes, list) and codes:
            return [str(code) for code in codes]
    return list(fallback)
