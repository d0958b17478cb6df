"""EditorHost implementation over a QPlainTextEdit."""

from __future__ import annotations

from typing import Callable

from PySide6.QtCore import QTimer
from PySide6.QtGui import QTextCursor
from PySide6.QtWidgets import QPlainTextEdit

from csfixer.formatting.editor_host import DocumentRef, Position, TextEdit, TextLine, TextRange


OPEN_FOR_CLOSE = {"}": "{", ")": "(", "]": "["}


class PlainTextEditorHost:
    def __init__(self, editor: QPlainTextEdit, document: DocumentRef) -> None:
        self._editor = editor
        self._document = document
        self._cursor_history: list[int] = []
        self._applying = False
        self._listeners: list[Callable[["PlainTextEditorHost", str], None]] = []
        self._editor.document().contentsChange.connect(self._on_contents_change)

    @property
    def editor(self) -> QPlainTextEdit:
        return self._editor

    @property
    def document(self) -> DocumentRef:
        return self._document

    def set_document(self, document: DocumentRef) -> None:
        self._document = document

    def add_change_listener(self, listener: Callable[["PlainTextEditorHost", str], None]) -> None:
        """Call ``listener(host, inserted_text)`` after user edits, not after our own edits."""
        self._listeners.append(listener)

    # ---------- Text model ----------

    def full_text(self) -> str:
        return self._editor.toPlainText()

    def line_count(self) -> int:
        return self._editor.document().blockCount()

    def line_at(self, line_number: int) -> TextLine:
        block = self._editor.document().findBlockByNumber(max(0, int(line_number)))
        return TextLine(line_number=block.blockNumber(), text=block.text())

    def offset_at(self, position: Position) -> int:
        block = self._editor.document().findBlockByNumber(max(0, position.line))
        return block.position() + min(max(0, position.character), block.length() - 1)

    def position_at(self, offset: int) -> Position:
        doc = self._editor.document()
        offset = max(0, min(int(offset), doc.characterCount() - 1))
        block = doc.findBlock(offset)
        return Position(block.blockNumber(), offset - block.position())

    def text_in_range(self, text_range: TextRange) -> str:
        cursor = self._cursor_for(text_range)
        return cursor.selectedText().replace("\u2029", "\n")

    # ---------- Selection ----------

    def selection_start(self) -> Position:
        return self.position_at(self._editor.textCursor().selectionStart())

    def selection_count(self) -> int:
        return 1 if self._editor.textCursor().hasSelection() else 0

    def cancel_selection(self) -> None:
        cursor = self._editor.textCursor()
        cursor.clearSelection()
        self._editor.setTextCursor(cursor)

    def jump_to_bracket(self) -> None:
        cursor = self._editor.textCursor()
        text = self._editor.toPlainText()
        pos = cursor.position()
        close_at = -1
        if pos > 0 and text[pos - 1] in OPEN_FOR_CLOSE:
            close_at = pos - 1
        elif pos < len(text) and text[pos] in OPEN_FOR_CLOSE:
            close_at = pos
        if close_at < 0:
            return

        closing = text[close_at]
        opening = OPEN_FOR_CLOSE[closing]
        depth = 0
        for idx in range(close_at, -1, -1):
            ch = text[idx]
            if ch == closing:
                depth += 1
            elif ch == opening:
                depth -= 1
                if depth == 0:
                    self._move_cursor(idx)
                    return

    def cursor_undo(self) -> None:
        if not self._cursor_history:
            return
        cursor = self._editor.textCursor()
        cursor.setPosition(self._cursor_history.pop())
        self._editor.setTextCursor(cursor)

    # ---------- Edits ----------

    def apply_edits(self, edits: list[TextEdit]) -> bool:
        if not edits:
            return False
        ordered = sorted(edits, key=lambda e: (e.range.start.line, e.range.start.character), reverse=True)
        self._applying = True
        cursor = QTextCursor(self._editor.document())
        cursor.beginEditBlock()
        try:
            for edit in ordered:
                cursor.setPosition(self.offset_at(edit.range.start))
                cursor.setPosition(self.offset_at(edit.range.end), QTextCursor.MoveMode.KeepAnchor)
                cursor.insertText(edit.new_text)
        finally:
            cursor.endEditBlock()
            self._applying = False
        return True

    # ---------- Internals ----------

    def _move_cursor(self, offset: int) -> None:
        cursor = self._editor.textCursor()
        self._cursor_history.append(cursor.position())
        cursor.setPosition(offset)
        self._editor.setTextCursor(cursor)

    def _cursor_for(self, text_range: TextRange) -> QTextCursor:
        cursor = QTextCursor(self._editor.document())
        cursor.setPosition(self.offset_at(text_range.start))
        cursor.setPosition(self.offset_at(text_range.end), QTextCursor.MoveMode.KeepAnchor)
        return cursor

    def _on_contents_change(self, position: int, _removed: int, added: int) -> None:
        if self._applying or not self._listeners or added <= 0:
            return
        inserted = self._editor.toPlainText()[position:position + added]
        # Listeners run once the editor has moved its own cursor past the inserted text.
        QTimer.singleShot(0, lambda text=inserted: self._notify(text))

    def _notify(self, inserted: str) -> None:
        for listener in list(self._listeners):
            listener(self, inserted)
