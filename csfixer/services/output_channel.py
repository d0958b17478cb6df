"""Output log and transient status for fixer runs."""

from __future__ import annotations

from PySide6.QtCore import QObject, Signal


class OutputChannel(QObject):
    lineAppended = Signal(str)
    cleared = Signal()
    statusChanged = Signal(str)
    statusHidden = Signal()
    revealRequested = Signal()

    STATUS_PREFIX = "PHP CS Fixer: "

    def __init__(self, parent: QObject | None = None, *, max_lines: int = 5000) -> None:
        super().__init__(parent)
        self._lines: list[str] = []
        self._max_lines = max(100, int(max_lines))
        self._status = ""

    @property
    def status(self) -> str:
        return self._status

    def lines(self) -> list[str]:
        return list(self._lines)

    def text(self) -> str:
        return "\n".join(self._lines)

    def append(self, text: str) -> None:
        for line in str(text or "").splitlines():
            self._lines.append(line)
            self.lineAppended.emit(line)
        overflow = len(self._lines) - self._max_lines
        if overflow > 0:
            del self._lines[:overflow]

    def clear(self) -> None:
        self._lines.clear()
        self.cleared.emit()

    def show_status(self, message: str) -> None:
        self._status = self.STATUS_PREFIX + str(message or "")
        self.statusChanged.emit(self._status)

    def hide_status(self) -> None:
        self._status = ""
        self.statusHidden.emit()

    def reveal(self) -> None:
        self.revealRequested.emit()
