"""
Toolpath extraction.
Turns the lexer's token stream into an ordered list of motion end points,
each tagged with the source line that produced it.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from core.lexer import NcLexer, Token, TokenKind
from utils.errors import ErrorCollector, ErrorType
from utils.geometry import arc_center_from_radius, tessellate_arc, TINY

logger = logging.getLogger(__name__)

RAPID = "G0"
LINEAR = "G1"
ARC_CW = "G2"
ARC_CCW = "G3"
MOTION_COMMANDS = (RAPID, LINEAR, ARC_CW, ARC_CCW)

# Plane -> (first in-plane axis, second in-plane axis, normal axis, center offset words)
PLANES = {
    "G17": ("x", "y", "z", ("I", "J")),
    "G18": ("z", "x", "y", ("K", "I")),
    "G19": ("y", "z", "x", ("J", "K")),
}

AXIS_WORDS = "XYZ"
ARC_WORDS = "IJKR"

# Words the lexer cannot classify that are still ordinary G-code
QUIET_WORD_PREFIXES = ("N", "O", "%")


def normalize_command(code: str) -> str:
    """Canonical form of a command mnemonic: upper case, no leading zeros (G00 -> G0)."""
    code = code.strip().upper()
    letter, number = code[:1], code[1:]
    if number.isdigit():
        return f"{letter}{int(number)}"
    return code


@dataclass(frozen=True)
class Movement:
    """Tool position after a source line moved it."""
    x: float
    y: float
    z: float
    command: str
    line_number: int

    def as_tuple(self) -> Tuple[float, float, float, str, int]:
        return (self.x, self.y, self.z, self.command, self.line_number)

    def position(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)


ORIGIN = Movement(0.0, 0.0, 0.0, "", 0)


@dataclass
class ExtractionResult:
    """Movements plus what was lost on the way."""
    movements: List[Movement]
    dropped: int = 0
    diagnostics: ErrorCollector = field(default_factory=ErrorCollector)

    @property
    def truncated(self) -> bool:
        return self.dropped > 0

    @property
    def segment_count(self) -> int:
        return max(0, len(self.movements) - 1)


@dataclass
class _Line:
    """Everything gathered from one source line."""
    number: int
    start_offset: int
    commands: List[str] = field(default_factory=list)
    motion: Optional[str] = None
    excluded: bool = False
    axes: Dict[str, float] = field(default_factory=dict)
    arc: Dict[str, float] = field(default_factory=dict)
    silenced: bool = False


class ToolpathExtractor:
    """Modal state machine over the command stream."""

    def __init__(self, exclude_codes: Iterable[str] = (),
                 max_movements: Optional[int] = None,
                 arc_divisions: int = 64,
                 lexer_debug: bool = False):
        self.exclude_codes = {normalize_command(code) for code in exclude_codes if code.strip()}
        self.max_movements = None if max_movements is None else max(1, max_movements)
        self.arc_divisions = max(1, arc_divisions)
        self.lexer_debug = lexer_debug
        self.reset()

    def reset(self):
        """Return to the machine origin with no modal state."""
        self.x = 0.0
        self.y = 0.0
        self.z = 0.0
        self.motion_command: Optional[str] = None
        self.plane = "G17"
        self.movements: List[Movement] = [ORIGIN]
        self.dropped = 0
        self.diagnostics = ErrorCollector()

    def extract(self, source: str, tokens: Optional[Iterable[Token]] = None) -> ExtractionResult:
        """
        Extract movements from ``source``.

        ``tokens`` may be passed when the caller already scanned the text;
        otherwise the text is tokenized here. Problems in the input are
        recorded as diagnostics and never stop the pass.
        """
        self.reset()
        if tokens is None:
            lexer = NcLexer(debug=self.lexer_debug)
            lexer.reset(source)
            tokens = lexer.tokens()

        line = _Line(number=1, start_offset=0)
        for token in tokens:
            if token.kind is TokenKind.WHITESPACE:
                text = token.text(source)
                newline = text.find('\n')
                while newline != -1:
                    self._finish_line(line)
                    line = _Line(number=line.number + 1,
                                 start_offset=token.start + newline + 1)
                    newline = text.find('\n', newline + 1)
                continue

            if line.silenced or token.kind is TokenKind.COMMENT:
                continue

            if token.kind is TokenKind.COMMAND:
                self._handle_command(line, token, source)
            elif token.kind is TokenKind.COORDINATE:
                self._handle_coordinate(line, token, source)
            elif token.kind is TokenKind.WORD:
                self._handle_word(line, token, source)
            # Bare numbers carry no meaning on their own.

        self._finish_line(line)

        if self.dropped:
            logger.warning("Toolpath truncated to %d movements; %d dropped",
                           len(self.movements), self.dropped)
        logger.debug("Extracted %d movements", len(self.movements))
        return ExtractionResult(self.movements, self.dropped, self.diagnostics)

    # Token handlers

    def _handle_command(self, line: _Line, token: Token, source: str):
        code = normalize_command(token.text(source))
        if not code[1:].isdigit():
            # Merged tokens such as "G0X10" stay one command; it matches nothing.
            self._warn(line, token, f"Unrecognized command: '{code}'", ErrorType.SYNTAX)
        if code in self.exclude_codes:
            line.excluded = True
            return
        line.commands.append(code)
        if code in MOTION_COMMANDS:
            line.motion = code
        elif code in PLANES:
            self.plane = code

    def _handle_coordinate(self, line: _Line, token: Token, source: str):
        text = token.text(source)
        letter = text[0].upper()
        if letter not in AXIS_WORDS and letter not in ARC_WORDS:
            return
        try:
            value = float(text[1:])
        except ValueError:
            self._warn(line, token, f"Invalid value for {letter}: '{text}'", ErrorType.SYNTAX)
            return
        if letter in AXIS_WORDS:
            line.axes[letter.lower()] = value
        else:
            line.arc[letter] = value

    def _handle_word(self, line: _Line, token: Token, source: str):
        text = token.text(source)
        if text.startswith(';'):
            line.silenced = True
        elif not text.upper().startswith(QUIET_WORD_PREFIXES):
            self._warn(line, token, f"Unrecognized word: '{text}'", ErrorType.SYNTAX)

    # Line completion

    def _finish_line(self, line: _Line):
        if line.motion is not None:
            self.motion_command = line.motion
            command = line.motion
        elif line.axes and not line.commands and not line.excluded:
            command = self.motion_command
            if command is None:
                self.diagnostics.add_error(line.number, 0, 0,
                                           "Axis words without an active motion command",
                                           ErrorType.SEMANTIC)
                return
        else:
            return

        if not line.axes:
            return

        target = (line.axes.get("x", self.x),
                  line.axes.get("y", self.y),
                  line.axes.get("z", self.z))
        if command in (ARC_CW, ARC_CCW):
            self._emit_arc(line, command, target)
        else:
            self._emit(target, command, line.number)

    def _emit_arc(self, line: _Line, command: str, target: Tuple[float, float, float]):
        a_axis, b_axis, n_axis, (a_word, b_word) = PLANES[self.plane]
        start = {"x": self.x, "y": self.y, "z": self.z}
        end = dict(zip("xyz", target))
        clockwise = command == ARC_CW

        center = None
        if "R" in line.arc:
            center = arc_center_from_radius(clockwise, start[a_axis], start[b_axis],
                                            end[a_axis], end[b_axis], line.arc["R"])
        elif a_word in line.arc or b_word in line.arc:
            center = (start[a_axis] + line.arc.get(a_word, 0.0),
                      start[b_axis] + line.arc.get(b_word, 0.0))

        if center is None or (abs(center[0] - start[a_axis]) < TINY and
                              abs(center[1] - start[b_axis]) < TINY):
            self.diagnostics.add_error(line.number, 0, 0,
                                       f"{command} without a usable arc center; drawn as a line",
                                       ErrorType.SEMANTIC)
            self._emit(target, command, line.number)
            return

        chords = tessellate_arc(clockwise,
                                (start[a_axis], start[b_axis]),
                                (end[a_axis], end[b_axis]),
                                center, self.arc_divisions)
        for (a, b), fraction in chords:
            point = {a_axis: a, b_axis: b,
                     n_axis: start[n_axis] + (end[n_axis] - start[n_axis]) * fraction}
            self._emit((point["x"], point["y"], point["z"]), command, line.number)

    def _emit(self, target: Tuple[float, float, float], command: str, line_number: int):
        self.x, self.y, self.z = target
        if self.max_movements is not None and len(self.movements) >= self.max_movements:
            self.dropped += 1
            return
        self.movements.append(Movement(self.x, self.y, self.z, command, line_number))

    def _warn(self, line: _Line, token: Token, message: str, error_type: ErrorType):
        self.diagnostics.add_error(line.number,
                                   token.start - line.start_offset,
                                   token.end - line.start_offset,
                                   message, error_type)


def extract_toolpath(source: str, exclude_codes: Iterable[str] = (),
                     tokens: Optional[Iterable[Token]] = None,
                     max_movements: Optional[int] = None,
                     arc_divisions: int = 64) -> ExtractionResult:
    """Convenience wrapper around ToolpathExtractor.extract."""
    extractor = ToolpathExtractor(exclude_codes, max_movements, arc_divisions)
    return extractor.extract(source, tokens)
