"""
Error definitions and handling for the NC viewer.
"""
from enum import Enum
from dataclasses import dataclass
from typing import List


class ErrorType(Enum):
    SYNTAX = "syntax"
    SEMANTIC = "semantic"
    WARNING = "warning"


class ErrorSeverity(Enum):
    WARNING = "warning"
    ERROR = "error"


@dataclass
class GCodeError:
    """Represents a non-fatal problem found in G-code, with position information."""
    line_number: int
    char_start: int
    char_end: int
    message: str
    error_type: ErrorType
    severity: ErrorSeverity = ErrorSeverity.WARNING

    def __str__(self):
        return f"Line {self.line_number}: {self.message}"


class ErrorCollector:
    """Collects diagnostics during toolpath extraction."""

    def __init__(self):
        self.errors: List[GCodeError] = []

    def add_error(self, line_number: int, char_start: int, char_end: int,
                  message: str, error_type: ErrorType,
                  severity: ErrorSeverity = ErrorSeverity.WARNING):
        """Add an error to the collection."""
        error = GCodeError(line_number, char_start, char_end, message,
                           error_type, severity)
        self.errors.append(error)

    def get_errors_for_line(self, line_number: int) -> List[GCodeError]:
        """Get all errors for a specific line."""
        return [error for error in self.errors if error.line_number == line_number]

    def has_errors(self) -> bool:
        """Check if there are any errors (excluding warnings)."""
        return any(error.severity == ErrorSeverity.ERROR for error in self.errors)

    def error_lines(self) -> List[int]:
        """Sorted line numbers that carry at least one diagnostic."""
        return sorted({error.line_number for error in self.errors})

    def clear(self):
        """Clear all errors."""
        self.errors.clear()

    def get_all_errors(self) -> List[GCodeError]:
        """Get all errors sorted by line number."""
        return sorted(self.errors, key=lambda e: (e.line_number, e.char_start))


class NcViewerError(Exception):
    """Base class for NC viewer errors."""


class MessageError(NcViewerError):
    """Raised when a bridge payload cannot be decoded."""


class BridgeError(NcViewerError):
    """Raised for bridge transport faults."""


class BridgeAuthError(BridgeError):
    """Raised when a request does not carry the channel secret."""

    def __init__(self):
        # Same message for missing and wrong secrets.
        super().__init__("unauthorized")


class BridgeStoppedError(BridgeError):
    """Raised when the bridge is used after stop()."""
