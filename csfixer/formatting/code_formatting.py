"""Formatting result contracts and the shared orchestrator state."""

from __future__ import annotations

from dataclasses import dataclass, field


STATUS_CHANGED = "changed"
STATUS_UNCHANGED = "unchanged"
STATUS_FAILED = "failed"  # fixer reported a problem for this input
STATUS_ERROR = "error"  # the invocation itself broke

ERROR_MISSING_EXECUTABLE = "missing_executable"
ERROR_EXIT_CODE = "exit_code"
ERROR_TOOL_FAILURE = "tool_failure"
ERROR_PARSE_FAILURE = "parse_failure"


@dataclass(slots=True)
class FormatResult:
    status: str
    formatted_text: str = ""
    scratch_path: str = ""
    message: str = ""
    stderr: str = ""
    error_kind: str = ""
    exit_code: int | None = None
    debug_lines: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in (STATUS_CHANGED, STATUS_UNCHANGED)

    @property
    def changed(self) -> bool:
        return self.status == STATUS_CHANGED


@dataclass(slots=True)
class FormatterState:
    """Advisory flags shared by the formatter and the keystroke triggers.

    ``running`` only suppresses trigger re-entrancy; it is not a lock, and a
    new invocation may start as soon as the previous one clears it.
    """

    running: bool = False
    last_active_path: str = ""
