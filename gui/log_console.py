"""
Logging handler that mirrors log records into a console widget.
"""
import logging

from PySide6.QtCore import QObject, Signal


class _Emitter(QObject):
    record = Signal(str)


class QtLogHandler(logging.Handler):
    """Forwards formatted records through a Qt signal, so any thread may log."""

    def __init__(self, console, level=logging.NOTSET):
        super().__init__(level)
        self.emitter = _Emitter()
        self.emitter.record.connect(console.append)

    def emit(self, record):
        try:
            self.emitter.record.emit(self.format(record))
        except RuntimeError:
            # Console widget already destroyed during shutdown
            pass
