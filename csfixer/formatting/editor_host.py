"""Editor-facing types the formatting core depends on.

Concrete editors (a Qt code editor widget, a test double) implement
``EditorHost``; nothing in the formatting package touches widgets directly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Protocol


PHP_LANGUAGE_ID = "php"


@dataclass(slots=True, frozen=True, order=True)
class Position:
    line: int
    character: int

    def translate(self, line_delta: int = 0, character_delta: int = 0) -> "Position":
        return Position(self.line + line_delta, self.character + character_delta)


@dataclass(slots=True, frozen=True)
class TextRange:
    start: Position
    end: Position


@dataclass(slots=True, frozen=True)
class TextLine:
    line_number: int
    text: str

    @property
    def range(self) -> TextRange:
        return TextRange(Position(self.line_number, 0), Position(self.line_number, len(self.text)))


@dataclass(slots=True, frozen=True)
class TextEdit:
    range: TextRange
    new_text: str


@dataclass(slots=True, frozen=True)
class DocumentRef:
    path: str
    scheme: str = "file"
    language_id: str = PHP_LANGUAGE_ID
    workspace_root: str = ""

    @property
    def is_untitled(self) -> bool:
        return self.scheme == "untitled"

    @property
    def is_file(self) -> bool:
        return self.scheme == "file" and bool(self.path)

    @property
    def is_php(self) -> bool:
        return str(self.language_id or "").strip().lower() == PHP_LANGUAGE_ID

    @property
    def basename(self) -> str:
        return os.path.basename(str(self.path or "").replace("\\", "/"))


class EditorHost(Protocol):
    @property
    def document(self) -> DocumentRef:
        ...

    def full_text(self) -> str:
        ...

    def text_in_range(self, text_range: TextRange) -> str:
        ...

    def line_at(self, line_number: int) -> TextLine:
        ...

    def line_count(self) -> int:
        ...

    def offset_at(self, position: Position) -> int:
        ...

    def selection_start(self) -> Position:
        ...

    def selection_count(self) -> int:
        ...

    def jump_to_bracket(self) -> None:
        ...

    def cursor_undo(self) -> None:
        ...

    def apply_edits(self, edits: list[TextEdit]) -> bool:
        """Apply all edits as one undoable step; False when the editor refused."""
        ...

    def cancel_selection(self) -> None:
        ...


def full_document_range(host: EditorHost) -> TextRange:
    last = host.line_at(max(0, host.line_count() - 1))
    return TextRange(Position(0, 0), last.range.end)
