from __future__ import annotations

import concurrent.futures
import os
import queue
import re
from pathlib import Path
from typing import Callable

from PySide6.QtCore import QObject, QTimer, Signal

from csfixer.formatting.code_formatting import (
    ERROR_MISSING_EXECUTABLE,
    STATUS_ERROR,
    FormatResult,
    FormatterState,
)
from csfixer.formatting.document_formatter import DocumentFormatter, Runner
from csfixer.formatting.editor_host import (
    DocumentRef,
    EditorHost,
    TextEdit,
    TextRange,
    full_document_range,
)
from csfixer.formatting.exclusion import is_excluded
from csfixer.formatting.fixer_config import (
    FixerConfig,
    PlatformFacts,
    archive_update_due,
    resolve_fixer_config,
)
from csfixer.formatting.process_runner import run_process
from csfixer.formatting.trigger_engine import IncrementalTriggerEngine, Job
from csfixer.services.output_channel import OutputChannel
from csfixer.settings_models import BUNDLED_EXECUTABLE, FIXER_SECTION
from csfixer.settings_store import SettingsStore


MISSING_EXECUTABLE_MESSAGE = (
    "PHP CS Fixer: executablePath not found, please check your settings. "
    "It will set to built-in php-cs-fixer.phar. Try again!"
)
UPDATE_CHECK_DELAY_MS = 60_000

_PHP_OPEN_TAG_RE = re.compile(r"^\s*<\?php", re.IGNORECASE)
_LEADING_OPEN_TAG_RE = re.compile(r"^<\?php\r?\n")


class FormattingController(QObject):
    """Owns the fixer configuration, the running flag and every formatting entry point."""

    diffRequested = Signal(str, str)  # original_path, formatted_scratch_path
    executableMissing = Signal(str)
    archiveUpdateDue = Signal(str)  # archive path to refresh
    configReloaded = Signal(object)  # FixerConfig

    def __init__(
        self,
        settings: SettingsStore,
        *,
        platform: PlatformFacts | None = None,
        output: OutputChannel | None = None,
        active_editor: Callable[[], EditorHost | None] | None = None,
        workspace_folders: Callable[[], list[str]] | None = None,
        html_formatter: Callable[[str], str] | None = None,
        runner: Runner = run_process,
        scratch_dir: str | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._settings = settings
        self._platform = platform or PlatformFacts.current()
        self.output = output or OutputChannel(self)
        self._active_editor = active_editor or (lambda: None)
        self._workspace_folders = workspace_folders or (lambda: [])
        self._html_formatter = html_formatter
        self.state = FormatterState()
        self._config = resolve_fixer_config(self._settings.data, self._platform)

        self.formatter = DocumentFormatter(
            config_provider=lambda: self._config,
            state=self.state,
            runner=runner,
            scratch_dir=scratch_dir,
            workspace_folders=self._workspace_folders,
        )
        self.triggers = IncrementalTriggerEngine(
            formatter=self.formatter,
            state=self.state,
            config_provider=lambda: self._config,
            submit=self._submit,
            log=self.output.append,
        )

        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=2,
            thread_name_prefix="csfixer-format",
        )
        self._active_futures: set[concurrent.futures.Future] = set()
        self._result_queue: queue.Queue[tuple[Callable[[FormatResult], None], FormatResult]] = queue.Queue()
        self._result_pump = QTimer(self)
        self._result_pump.setInterval(35)
        self._result_pump.timeout.connect(self._drain_result_queue)
        self._result_pump.start()

        self._update_timer = QTimer(self)
        self._update_timer.setSingleShot(True)
        self._update_timer.timeout.connect(self.check_archive_update)

        self._settings.settingsChanged.connect(self.reload_settings)
        self.schedule_update_check()

    # ---------- Configuration ----------

    @property
    def config(self) -> FixerConfig:
        return self._config

    def reload_settings(self, _key: str = "") -> None:
        self._config = resolve_fixer_config(self._settings.data, self._platform)
        self.configReloaded.emit(self._config)

    def provides_document_formatting(self) -> bool:
        return self._config.document_formatting_provider

    def schedule_update_check(self, delay_ms: int = UPDATE_CHECK_DELAY_MS) -> None:
        self._update_timer.start(max(0, int(delay_ms)))

    def check_archive_update(self) -> bool:
        raw_executable = str(self._settings.get(f"{FIXER_SECTION}.executablePath", "") or "")
        if not archive_update_due(self._config, raw_executable):
            return False
        self.output.append("php-cs-fixer: check for updating...")
        archive = os.path.join(self._platform.extension_dir, "php-cs-fixer.phar")
        self.archiveUpdateDue.emit(archive)
        return True

    def record_archive_update(self, timestamp_ms: int) -> None:
        self._settings.update(f"{FIXER_SECTION}.lastDownload", int(timestamp_ms))

    # ---------- Editor events ----------

    def on_active_editor_changed(self, host: EditorHost | None) -> None:
        self.state.last_active_path = host.document.path if host is not None else ""

    def on_document_changed(self, host: EditorHost, inserted: str) -> None:
        self.triggers.on_document_changed(host, inserted)

    def on_will_save(self, host: EditorHost) -> list[TextEdit]:
        document = host.document
        if not document.is_php or not self._config.onsave or self._config.editor_format_on_save:
            return []
        return self.document_edits(host)

    # ---------- Formatting providers ----------

    def document_edits(self, host: EditorHost) -> list[TextEdit]:
        document = host.document
        if is_excluded(self._config.exclude, document):
            return []
        original_text = host.full_text()
        text_range = full_document_range(host)
        self._begin_visible_run("formatting")
        result = self.formatter.format(self._pre_format(original_text), document)
        self._finish_visible_run(result)
        if not result.ok:
            return []
        return self._edits_for(text_range, result.formatted_text, original_text)

    def range_edits(self, host: EditorHost, text_range: TextRange) -> list[TextEdit]:
        document = host.document
        if is_excluded(self._config.exclude, document):
            return []
        original_text = host.text_in_range(text_range)
        if not original_text.strip():
            return []
        source_text = original_text
        add_open_tag = _PHP_OPEN_TAG_RE.search(original_text) is None
        if add_open_tag:
            source_text = "<?php\n" + original_text

        self._begin_visible_run("formatting")
        result = self.formatter.format(source_text, document)
        self._finish_visible_run(result)
        if not result.ok:
            return []
        formatted = result.formatted_text
        if add_open_tag:
            formatted = _LEADING_OPEN_TAG_RE.sub("", formatted, count=1)
        return self._edits_for(text_range, formatted, original_text)

    # ---------- Commands ----------

    def command_format_document(self, host: EditorHost | None = None) -> bool:
        host = host or self._active_editor()
        if host is None or not host.document.is_php:
            return False
        document = host.document
        if is_excluded(self._config.exclude, document):
            return False
        original_text = host.full_text()
        text_range = full_document_range(host)
        source_text = self._pre_format(original_text)
        self._begin_visible_run("formatting")

        def done(result: FormatResult) -> None:
            self._finish_visible_run(result)
            if not result.ok:
                return
            if host.full_text() != original_text:
                self.output.append("[Format] document changed while formatting; result discarded")
                return
            edits = self._edits_for(text_range, result.formatted_text, original_text)
            if edits:
                host.apply_edits(edits)

        self._submit(lambda: self.formatter.format(source_text, document), done)
        return True

    def command_fix(self, path: str | None = None) -> bool:
        if not path:
            return self.command_format_document()
        target = self._resolve_command_target(path)
        if target is None:
            return False
        if os.path.isdir(target.path):
            self.output.reveal()
        self._begin_visible_run("fixing")
        self._submit(lambda: self.formatter.fix_in_place(target), self._finish_visible_run)
        return True

    def command_diff(self, path: str | None = None) -> bool:
        target = self._resolve_command_target(path)
        if target is None or not os.path.isfile(target.path):
            return False
        text = Path(target.path).read_text(encoding="utf-8")
        self._begin_visible_run("formatting")

        def done(result: FormatResult) -> None:
            self._finish_visible_run(result)
            if result.ok and result.scratch_path:
                self.diffRequested.emit(target.path, result.scratch_path)

        self._submit(lambda: self.formatter.format(text, target, is_diff=True), done)
        return True

    def command_show_output(self) -> None:
        self.output.reveal()

    # ---------- Scheduling ----------

    def flush(self, timeout: float | None = None) -> None:
        """Wait for outstanding jobs and deliver their results on this thread."""
        pending = list(self._active_futures)
        if pending:
            concurrent.futures.wait(pending, timeout=timeout)
        self._drain_result_queue()

    def shutdown(self) -> None:
        self._result_pump.stop()
        self._update_timer.stop()
        for fut in list(self._active_futures):
            fut.cancel()
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _submit(self, job: Job, done: Callable[[FormatResult], None]) -> None:
        future = self._executor.submit(self._run_job, job, done)
        self._active_futures.add(future)
        future.add_done_callback(self._active_futures.discard)

    def _run_job(self, job: Job, done: Callable[[FormatResult], None]) -> None:
        try:
            result = job()
        except Exception as exc:
            self.state.running = False
            result = FormatResult(status=STATUS_ERROR, message=str(exc) or exc.__class__.__name__)
        self._result_queue.put((done, result))

    def _drain_result_queue(self) -> None:
        while True:
            try:
                done, result = self._result_queue.get_nowait()
            except queue.Empty:
                return
            try:
                done(result)
            except Exception as exc:
                # A broken editor callback must not stop later results from being delivered.
                self.output.append(f"[Format] result handler failed: {exc}")

    # ---------- Helpers ----------

    def _resolve_command_target(self, path: str | None) -> DocumentRef | None:
        if path:
            return DocumentRef(path=str(path), workspace_root=self._workspace_root_for(str(path)))
        host = self._active_editor()
        if host is None or not host.document.is_php or not host.document.is_file:
            return None
        return host.document

    def _workspace_root_for(self, path: str) -> str:
        for root in self._workspace_folders():
            try:
                if os.path.commonpath([root, path]) == root:
                    return root
            except ValueError:
                continue
        return ""

    def _pre_format(self, text: str) -> str:
        if self._config.format_html and self._html_formatter is not None:
            return self._html_formatter(text)
        return text

    @staticmethod
    def _edits_for(text_range: TextRange, formatted: str, original: str) -> list[TextEdit]:
        if formatted and formatted != original:
            return [TextEdit(text_range, formatted)]
        return []

    def _begin_visible_run(self, label: str) -> None:
        self.output.clear()
        self.output.show_status(label)

    def _finish_visible_run(self, result: FormatResult) -> None:
        for line in result.debug_lines:
            self.output.append(line)
        if result.ok:
            self.output.hide_status()
            return
        self.output.show_status(result.message or "failed")
        if result.error_kind == ERROR_MISSING_EXECUTABLE:
            self._settings.update(f"{FIXER_SECTION}.executablePath", BUNDLED_EXECUTABLE)
            self.executableMissing.emit(MISSING_EXECUTABLE_MESSAGE)
