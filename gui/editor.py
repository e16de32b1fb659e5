"""
G-code editor widget with token-driven syntax highlighting and dark mode.
"""
from PySide6.QtWidgets import QPlainTextEdit, QWidget, QTextEdit
from PySide6.QtGui import (QColor, QTextFormat, QPainter, QFont, QSyntaxHighlighter,
                           QTextCharFormat, QPalette)
from PySide6.QtCore import Qt, QRect, Signal, QSize

from core.lexer import NcLexer, TokenKind
from core.toolpath import normalize_command, RAPID, LINEAR, ARC_CW, ARC_CCW


def _char_format(color, bold=False, italic=False):
    fmt = QTextCharFormat()
    fmt.setForeground(QColor(color))
    if bold:
        fmt.setFontWeight(QFont.Weight.Bold)
    fmt.setFontItalic(italic)
    return fmt


class NcHighlighter(QSyntaxHighlighter):
    """Colors each block from the lexer's token stream."""

    def __init__(self, document):
        super().__init__(document)
        self.lexer = NcLexer()

        self.motion_formats = {
            RAPID: _char_format('#ff6b6b', bold=True),     # red for rapid
            LINEAR: _char_format('#51cf66', bold=True),    # green for feed
            ARC_CW: _char_format('#ffd43b', bold=True),    # yellow for arcs
            ARC_CCW: _char_format('#ffd43b', bold=True),
        }
        self.gcode_format = _char_format('#74c0fc')
        self.mcode_format = _char_format('#ff8cc8')
        self.tool_format = _char_format('#20c997', bold=True)

        self.coordinate_formats = {
            'X': _char_format('#ff9999'),
            'Y': _char_format('#99ff99'),
            'Z': _char_format('#9999ff'),
            'I': _char_format('#cc99ff'),
            'J': _char_format('#cc99ff'),
            'K': _char_format('#cc99ff'),
            'R': _char_format('#ff99cc'),
            'F': _char_format('#ffff99'),
            'S': _char_format('#ffff99'),
        }
        self.other_coordinate_format = _char_format('#ffcc99')

        self.number_format = _char_format('#bd93f9')
        self.word_format = _char_format('#adb5bd')
        self.comment_format = _char_format('#6c757d', italic=True)

    def format_for(self, kind, text):
        """Character format for one token, or None to leave it plain."""
        if kind is TokenKind.COMMENT:
            return self.comment_format
        if kind is TokenKind.COMMAND:
            code = normalize_command(text)
            if code in self.motion_formats:
                return self.motion_formats[code]
            letter = code[:1]
            if letter == 'G':
                return self.gcode_format
            if letter == 'M':
                return self.mcode_format
            return self.tool_format
        if kind is TokenKind.COORDINATE:
            return self.coordinate_formats.get(text[:1].upper(), self.other_coordinate_format)
        if kind is TokenKind.NUMBER:
            return self.number_format
        if kind is TokenKind.WORD:
            return self.word_format
        return None

    def highlightBlock(self, text):
        """Apply syntax highlighting to a block of text."""
        self.lexer.reset(text)
        for token in self.lexer.tokens():
            token_text = token.text(text)
            if token.kind is TokenKind.WORD and token_text.startswith(';'):
                # Semicolon comments run to the end of the line
                self.setFormat(token.start, len(text) - token.start, self.comment_format)
                break
            fmt = self.format_for(token.kind, token_text)
            if fmt is not None:
                self.setFormat(token.start, token.end - token.start, fmt)


class LineNumberArea(QWidget):
    """Line number area widget for the editor."""

    def __init__(self, editor):
        super().__init__(editor)
        self.editor = editor

    def sizeHint(self):
        return QSize(self.editor.lineNumberAreaWidth(), 0)

    def paintEvent(self, event):
        self.editor.lineNumberAreaPaintEvent(event)


class Editor(QPlainTextEdit):
    """G-code editor that reports the caret line and accepts line highlights."""

    # 1-based line of the caret, emitted when the caret moves to another line
    caretLineChanged = Signal(int)

    def __init__(self, parent=None):
        super().__init__(parent)

        self.setup_dark_mode()
        self.lineNumberArea = LineNumberArea(self)

        self.highlighted_lines = set()
        self.error_lines = set()
        self._last_caret_line = 0
        self._quiet_caret = False

        self.setup_editor()
        self.highlighter = NcHighlighter(self.document())

        self.blockCountChanged.connect(self.updateLineNumberAreaWidth)
        self.updateRequest.connect(self.updateLineNumberArea)
        self.cursorPositionChanged.connect(self.on_cursor_position_changed)

    def setup_dark_mode(self):
        """Configure dark mode appearance."""
        palette = self.palette()
        palette.setColor(QPalette.Base, QColor('#2b2b2b'))
        palette.setColor(QPalette.Text, QColor('#f8f8f2'))
        palette.setColor(QPalette.Highlight, QColor('#44475a'))
        palette.setColor(QPalette.HighlightedText, QColor('#f8f8f2'))
        self.setPalette(palette)

    def setup_editor(self):
        """Configure the editor appearance and behavior."""
        self.setLineWrapMode(QPlainTextEdit.NoWrap)

        font = QFont("Consolas", 11)
        if not font.exactMatch():
            font = QFont("Courier New", 11)
        font.setStyleHint(QFont.StyleHint.Monospace)
        font.setFixedPitch(True)
        self.setFont(font)

        self.setTabStopDistance(self.fontMetrics().horizontalAdvance(' ') * 4)
        self.updateLineNumberAreaWidth(0)

    def on_cursor_position_changed(self):
        line_number = self.get_current_line_number()
        if line_number != self._last_caret_line:
            self._last_caret_line = line_number
            if not self._quiet_caret:
                self.caretLineChanged.emit(line_number)
        self.update_extra_selections()

    def highlight_lines(self, lines):
        """Highlight specific lines (the viewer's current selection)."""
        self.highlighted_lines = set(lines) if lines else set()
        self.update_extra_selections()

    def highlight_error_lines(self, lines):
        """Highlight lines with diagnostics."""
        self.error_lines = set(lines) if lines else set()
        self.update_extra_selections()
        self.lineNumberArea.update()

    def clear_error_highlights(self):
        self.error_lines.clear()
        self.update_extra_selections()
        self.lineNumberArea.update()

    def _line_selection(self, line_num, color):
        block = self.document().findBlockByNumber(line_num - 1)
        if not block.isValid():
            return None
        selection = QTextEdit.ExtraSelection()
        selection.format.setBackground(QColor(color))
        selection.format.setProperty(QTextFormat.FullWidthSelection, True)
        selection.cursor = self.textCursor()
        selection.cursor.setPosition(block.position())
        selection.cursor.clearSelection()
        return selection

    def update_extra_selections(self):
        """Update current line, error and viewer highlights."""
        selections = []

        cursor = self.textCursor()
        if not self.isReadOnly() and not cursor.hasSelection():
            selection = QTextEdit.ExtraSelection()
            selection.format.setBackground(QColor('#44475a'))
            selection.format.setProperty(QTextFormat.FullWidthSelection, True)
            selection.cursor = cursor
            selection.cursor.clearSelection()
            selections.append(selection)

        for line_num in sorted(self.error_lines):
            selection = self._line_selection(line_num, '#660000')
            if selection is not None:
                selections.append(selection)

        for line_num in sorted(self.highlighted_lines - self.error_lines):
            selection = self._line_selection(line_num, '#1e3a8a')
            if selection is not None:
                selections.append(selection)

        self.setExtraSelections(selections)

    # Line number area methods
    def lineNumberAreaWidth(self):
        """Calculate the width needed for line numbers."""
        digits = len(str(max(1, self.blockCount())))
        return 3 + self.fontMetrics().horizontalAdvance('9') * digits

    def updateLineNumberAreaWidth(self, _):
        self.setViewportMargins(self.lineNumberAreaWidth(), 0, 0, 0)

    def updateLineNumberArea(self, rect, dy):
        if dy:
            self.lineNumberArea.scroll(0, dy)
        else:
            self.lineNumberArea.update(0, rect.y(), self.lineNumberArea.width(), rect.height())
        if rect.contains(self.viewport().rect()):
            self.updateLineNumberAreaWidth(0)

    def resizeEvent(self, event):
        super().resizeEvent(event)
        cr = self.contentsRect()
        self.lineNumberArea.setGeometry(QRect(cr.left(), cr.top(), self.lineNumberAreaWidth(), cr.height()))

    def lineNumberAreaPaintEvent(self, event):
        painter = QPainter(self.lineNumberArea)
        painter.fillRect(event.rect(), QColor('#383838'))

        block = self.firstVisibleBlock()
        blockNumber = block.blockNumber()
        top = self.blockBoundingGeometry(block).translated(self.contentOffset()).top()
        bottom = top + self.blockBoundingRect(block).height()

        while block.isValid() and top <= event.rect().bottom():
            if block.isVisible() and bottom >= event.rect().top():
                if (blockNumber + 1) in self.error_lines:
                    painter.setPen(QColor('#ff6b6b'))
                else:
                    painter.setPen(QColor('#6c757d'))
                painter.drawText(0, int(top), self.lineNumberArea.width() - 3,
                                 self.fontMetrics().height(), Qt.AlignRight, str(blockNumber + 1))

            block = block.next()
            top = bottom
            bottom = top + self.blockBoundingRect(block).height()
            blockNumber += 1

    # Utility methods
    def goto_line(self, line_number, notify=False):
        """
        Jump to a 1-based line number.
        With ``notify`` False the move does not emit caretLineChanged, so a
        request coming from the viewer is not echoed back to it.
        """
        block = self.document().findBlockByNumber(line_number - 1)
        if line_number <= 0 or not block.isValid():
            return
        cursor = self.textCursor()
        cursor.setPosition(block.position())
        self._quiet_caret = not notify
        try:
            self.setTextCursor(cursor)
        finally:
            self._quiet_caret = False
        self.centerCursor()

    def get_current_line_number(self):
        """Get the current cursor line number."""
        return self.textCursor().blockNumber() + 1
