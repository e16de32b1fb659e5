"""
Logging setup shared by the host and the rendering surface.
"""
import logging
from typing import Optional

LOG_FORMAT = "[%(asctime)s] %(name)s: %(message)s"
TIME_FORMAT = "%H:%M:%S"


def configure_logging(verbose: bool = False, handler: Optional[logging.Handler] = None) -> logging.Logger:
    """Install a timestamped handler on the root logger.

    Calling this again replaces the handler installed by the previous call
    instead of stacking another one.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    for existing in list(root.handlers):
        if getattr(existing, "_ncviewer_handler", False):
            root.removeHandler(existing)

    if handler is None:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, TIME_FORMAT))
    handler._ncviewer_handler = True
    root.addHandler(handler)
    return root


def preview(text: str, limit: int = 200) -> str:
    """Shorten a payload for log output."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... ({len(text)} chars)"
