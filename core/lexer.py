"""
G-code lexer for tokenizing raw G-code text.

The lexer is a restartable cursor over a range of a text buffer. It never
fails: anything it does not recognize becomes a WORD token, so the same
token stream serves syntax highlighting and toolpath extraction.
"""
import logging
from enum import Enum
from dataclasses import dataclass
from typing import Iterator, List, Optional

logger = logging.getLogger(__name__)


class TokenKind(Enum):
    COMMENT = "NC_COMMENT"
    COMMAND = "NC_COMMAND"
    COORDINATE = "NC_COORDINATE"
    NUMBER = "NC_NUMBER"
    WORD = "NC_WORD"
    WHITESPACE = "WHITE_SPACE"
    BAD = "NC_BAD_CHARACTER"


@dataclass(frozen=True)
class Token:
    """A single token; ``start`` and ``end`` are a half-open range into the source."""
    kind: TokenKind
    start: int
    end: int

    def text(self, source: str) -> str:
        return source[self.start:self.end]

    def __str__(self):
        return f"{self.kind.value}[{self.start},{self.end})"


WHITESPACE_CHARS = frozenset(" \t\r\n")
COMMAND_LETTERS = frozenset("GMT")
COORDINATE_LETTERS = frozenset("XYZIJKABCFSPRE")


class NcLexer:
    """Tokenizes a range of G-code text one token at a time."""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._buffer = ""
        self._buffer_end = 0
        self._token_end = 0
        self._current: Optional[Token] = None

    def reset(self, text: str, start: int = 0, end: Optional[int] = None) -> Optional[Token]:
        """Start scanning ``text[start:end]`` and return the first token."""
        if end is None:
            end = len(text)
        self._buffer = text
        self._buffer_end = max(start, min(end, len(text)))
        self._token_end = start
        self._current = None
        if self.debug:
            logger.debug("lexer reset range=[%d,%d) text=%r", start, end, text[start:end])
        return self.advance()

    def current(self) -> Optional[Token]:
        """The current token, or None once the range is exhausted."""
        return self._current

    def advance(self) -> Optional[Token]:
        """Move to the next token and return it (None at end of range)."""
        start = self._token_end
        if start >= self._buffer_end:
            self._current = None
            return None

        c = self._buffer[start]
        upper = c.upper()
        if c == '(':
            kind, end = TokenKind.COMMENT, self._scan_comment(start)
        elif c in WHITESPACE_CHARS:
            kind, end = TokenKind.WHITESPACE, self._scan_while(start + 1, WHITESPACE_CHARS.__contains__)
        elif upper in COMMAND_LETTERS:
            kind, end = TokenKind.COMMAND, self._scan_while(start + 1, _is_letter_or_digit)
        elif upper in COORDINATE_LETTERS:
            kind, end = TokenKind.COORDINATE, self._scan_while(start + 1, _is_coordinate_char)
        elif c.isdigit() or c in '-+':
            kind, end = TokenKind.NUMBER, self._scan_while(start + 1, _is_number_char)
        else:
            kind, end = TokenKind.WORD, self._scan_while(start + 1, _is_not_whitespace)

        self._token_end = end
        self._current = Token(kind, start, end)
        if self.debug:
            logger.debug("token type=%s range=[%d,%d) text=%r",
                         kind.value, start, end, self._buffer[start:end])
        return self._current

    def tokens(self) -> Iterator[Token]:
        """Iterate from the current token to the end of the range."""
        token = self._current
        while token is not None:
            yield token
            token = self.advance()

    def _scan_comment(self, start: int) -> int:
        i = start + 1
        while i < self._buffer_end:
            ch = self._buffer[i]
            if ch == ')':
                return i + 1
            if ch in '\r\n':
                break
            i += 1
        return i

    def _scan_while(self, i: int, predicate) -> int:
        while i < self._buffer_end and predicate(self._buffer[i]):
            i += 1
        return i


def _is_letter_or_digit(ch: str) -> bool:
    return ch.isalpha() or ch.isdigit()


def _is_coordinate_char(ch: str) -> bool:
    return ch.isdigit() or ch in '.-+'


def _is_number_char(ch: str) -> bool:
    return ch.isdigit() or ch == '.'


def _is_not_whitespace(ch: str) -> bool:
    return ch not in WHITESPACE_CHARS


def tokenize(text: str, start: int = 0, end: Optional[int] = None, debug: bool = False) -> List[Token]:
    """Tokenize ``text[start:end]`` into a list, whitespace included."""
    lexer = NcLexer(debug=debug)
    lexer.reset(text, start, end)
    return list(lexer.tokens())
