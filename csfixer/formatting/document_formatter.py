"""Whole-document formatting through a scratch copy of the text."""

from __future__ import annotations

import json
import os
import tempfile
from typing import Callable

from csfixer.formatting.code_formatting import (
    ERROR_PARSE_FAILURE,
    STATUS_CHANGED,
    STATUS_ERROR,
    FormatResult,
    FormatterState,
)
from csfixer.formatting.editor_host import DocumentRef
from csfixer.formatting.fixer_config import FixerConfig
from csfixer.formatting.invocation import InvocationRequest, build_args, resolve_executable
from csfixer.formatting.process_runner import (
    ProcessOutput,
    ProcessRunError,
    classify_failure,
    interpret_output,
    run_process,
)


PARTIAL_SCRATCH_NAME = "php-cs-fixer-partial.php"
UNTITLED_SCRATCH_NAME = "php-cs-fixer-untitled.php"

Runner = Callable[..., ProcessOutput]


class DocumentFormatter:
    def __init__(
        self,
        *,
        config_provider: Callable[[], FixerConfig],
        state: FormatterState,
        runner: Runner = run_process,
        scratch_dir: str | None = None,
        workspace_folders: Callable[[], list[str]] | None = None,
    ) -> None:
        self._config_provider = config_provider
        self._state = state
        self._runner = runner
        self._scratch_dir = scratch_dir or tempfile.gettempdir()
        self._workspace_folders = workspace_folders or (lambda: [])

    @property
    def scratch_dir(self) -> str:
        return self._scratch_dir

    def scratch_path_for(self, target: DocumentRef, *, is_partial: bool = False) -> str:
        # Partial fragments share one name; rapid successive triggers may still race on it.
        if is_partial:
            return os.path.join(self._scratch_dir, PARTIAL_SCRATCH_NAME)
        return os.path.join(self._scratch_dir, target.basename or UNTITLED_SCRATCH_NAME)

    def format(
        self,
        text: str,
        target: DocumentRef,
        *,
        is_diff: bool = False,
        is_partial: bool = False,
    ) -> FormatResult:
        self._state.running = True
        config = self._config_provider()
        scratch_path = self.scratch_path_for(target, is_partial=is_partial)
        request = InvocationRequest.for_document(target, scratch_path, is_diff=is_diff)
        debug: list[str] = []
        try:
            with open(scratch_path, "w", encoding="utf-8", newline="") as handle:
                handle.write(text)

            args = build_args(config, target, scratch_path, tmp_dir=self._scratch_dir)
            program = self._executable_for(config, target)
            debug.append(f"[Format] cmd: {program} {' '.join(args)}")
            debug.append(json.dumps(args, indent=2))
            try:
                output = self._runner(program, args, cwd=request.cwd or None)
            except ProcessRunError as exc:
                result = classify_failure(exc)
                debug.append(exc.stderr or str(exc))
                result.debug_lines = debug
                return result

            if output.stdout:
                debug.append(output.stdout)
            if request.mode == "diff":
                return FormatResult(status=STATUS_CHANGED, scratch_path=scratch_path, debug_lines=debug)

            try:
                result = interpret_output(output, original_text=text, scratch_path=scratch_path)
            except OSError as exc:
                result = FormatResult(
                    status=STATUS_ERROR,
                    message=f"Could not read formatted file: {exc}",
                    error_kind=ERROR_PARSE_FAILURE,
                )
            if not result.ok and result.stderr:
                debug.append(result.stderr)
            result.debug_lines = debug
            return result
        finally:
            self._state.running = False
            if request.mode != "diff":
                try:
                    os.unlink(scratch_path)
                except OSError:
                    pass

    def fix_in_place(self, target: DocumentRef) -> FormatResult:
        """Run the fixer on the real file or directory; the fixer rewrites it on disk."""
        self._state.running = True
        config = self._config_provider()
        try:
            args = build_args(config, target, target.path, tmp_dir=self._scratch_dir)
            program = self._executable_for(config, target)
            debug = [f"[Format] cmd: {program} {' '.join(args)}"]
            cwd = target.path if os.path.isdir(target.path) else os.path.dirname(target.path)
            try:
                output = self._runner(program, args, cwd=cwd or None)
            except ProcessRunError as exc:
                result = classify_failure(exc)
                debug.append(exc.stderr or str(exc))
                result.debug_lines = debug
                return result
            debug.extend(line for line in output.stdout.splitlines() if line.strip())
            return FormatResult(status=STATUS_CHANGED, stderr=output.stderr, debug_lines=debug)
        finally:
            self._state.running = False

    def _executable_for(self, config: FixerConfig, target: DocumentRef) -> str:
        folders = self._workspace_folders()
        if not folders:
            return config.executable_path
        workspace_root = target.workspace_root if target.is_file else ""
        return resolve_executable(config, workspace_root, folders[0])
