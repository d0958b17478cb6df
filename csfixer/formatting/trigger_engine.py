from __future__ import annotations

from typing import Callable

from csfixer.formatting.code_formatting import FormatResult, FormatterState
from csfixer.formatting.document_formatter import DocumentFormatter
from csfixer.formatting.editor_host import EditorHost, Position, TextEdit, TextRange
from csfixer.formatting.exclusion import is_excluded
from csfixer.formatting.fixer_config import FixerConfig
from csfixer.formatting.trigger_heuristics import (
    PROLOGUE,
    MIN_SEMICOLON_LINE_LENGTH,
    LineKind,
    TriggerCandidate,
    classify_line,
    guarded_wrapper,
    is_bracket_jump_mismatch,
    is_closing_brace_edit,
    is_semicolon_edit,
    is_statement_header,
    strip_guard,
    strip_prologue,
)


Job = Callable[[], FormatResult]
Submit = Callable[[Job, Callable[[FormatResult], None]], None]


class IncrementalTriggerEngine:
    """Reformats the code around a just-typed ``}`` or ``;`` as a partial fragment.

    The editor is only touched on the calling thread. ``submit`` runs the
    formatter job somewhere else and must deliver its result back on the
    calling thread.
    """

    def __init__(
        self,
        *,
        formatter: DocumentFormatter,
        state: FormatterState,
        config_provider: Callable[[], FixerConfig],
        submit: Submit,
        log: Callable[[str], None] | None = None,
    ) -> None:
        self._formatter = formatter
        self._state = state
        self._config_provider = config_provider
        self._submit = submit
        self._log = log or (lambda _line: None)

    def on_document_changed(self, host: EditorHost, inserted: str) -> None:
        document = host.document
        if not document.is_php or self._state.running:
            return
        config = self._config_provider()
        if is_excluded(config.exclude, document):
            return
        if config.auto_fix_by_bracket:
            self.fix_by_bracket(host, inserted)
        if config.auto_fix_by_semicolon:
            self.fix_by_semicolon(host, inserted)

    def fix_by_bracket(self, host: EditorHost, inserted: str) -> TriggerCandidate | None:
        candidate = self.bracket_candidate(host, inserted)
        if candidate is not None:
            self._submit_candidate(host, candidate)
        return candidate

    def fix_by_semicolon(self, host: EditorHost, inserted: str) -> TriggerCandidate | None:
        candidate = self.semicolon_candidate(host, inserted)
        if candidate is not None:
            self._submit_candidate(host, candidate)
        return candidate

    def bracket_candidate(self, host: EditorHost, inserted: str) -> TriggerCandidate | None:
        if not is_closing_brace_edit(inserted):
            return None

        original_start = host.selection_start()
        host.jump_to_bracket()
        start = host.selection_start()
        original_offset = host.offset_at(original_start)
        landing_offset = host.offset_at(start)
        if original_offset == landing_offset:
            return None

        next_char = host.text_in_range(TextRange(start, start.translate(0, 1)))
        if is_bracket_jump_mismatch(original_offset, landing_offset, next_char):
            host.cursor_undo()
            return None

        line = host.line_at(start.line)
        anchored = False
        if classify_line(line.text) is LineKind.BRACE_ONLY:
            if line.line_number > 0:
                previous = host.line_at(line.line_number - 1)
                if is_statement_header(previous.text):
                    line = previous
                    anchored = True
        else:
            anchored = classify_line(line.text) is LineKind.HEADER

        if anchored:
            start = Position(line.line_number, 0)
            wrapper = PROLOGUE
            unwrap = strip_prologue
        else:
            wrapper = guarded_wrapper(line.text)
            unwrap = strip_guard

        host.cursor_undo()
        end = host.selection_start()
        text_range = TextRange(start, end)
        return TriggerCandidate(
            range=text_range,
            wrapper=wrapper,
            fragment=host.text_in_range(text_range),
            unwrap=unwrap,
        )

    def semicolon_candidate(self, host: EditorHost, inserted: str) -> TriggerCandidate | None:
        if not is_semicolon_edit(inserted):
            return None
        line = host.line_at(host.selection_start().line)
        if len(line.text) < MIN_SEMICOLON_LINE_LENGTH:
            return None
        return TriggerCandidate(range=line.range, wrapper=PROLOGUE, fragment=line.text, unwrap=strip_prologue)

    def _submit_candidate(self, host: EditorHost, candidate: TriggerCandidate) -> None:
        document = host.document
        source_text = candidate.source_text
        self._state.running = True

        def job() -> FormatResult:
            return self._formatter.format(source_text, document, is_partial=True)

        def done(result: FormatResult) -> None:
            self._state.running = False
            for line in result.debug_lines:
                self._log(line)
            if not result.ok:
                self._log(f"[Format] partial format skipped: {result.message}")
                return
            replacement = candidate.replacement_for(result.formatted_text)
            if replacement is None:
                return
            if host.text_in_range(candidate.range) != candidate.fragment:
                self._log("[Format] document changed while formatting; partial result discarded")
                return
            if host.apply_edits([TextEdit(candidate.range, replacement)]) and host.selection_count() > 0:
                host.cancel_selection()

        self._submit(job, done)
