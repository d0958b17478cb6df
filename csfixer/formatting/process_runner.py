"""Run php-cs-fixer and interpret what it reports."""

from __future__ import annotations

import json
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

from csfixer.formatting.code_formatting import (
    ERROR_EXIT_CODE,
    ERROR_MISSING_EXECUTABLE,
    ERROR_PARSE_FAILURE,
    ERROR_TOOL_FAILURE,
    STATUS_CHANGED,
    STATUS_ERROR,
    STATUS_FAILED,
    STATUS_UNCHANGED,
    FormatResult,
)


EXIT_CODE_MESSAGES = {
    1: "General error (or PHP minimal requirement not matched).",
    16: "Configuration error of the application.",
    32: "Configuration error of a Fixer.",
    64: "Exception raised within the application.",
    255: "PHP Fatal error, click to show output.",
}

_PHP_FATAL_RE = re.compile(r"PHP (?:Fatal|Parse) error:\s*Uncaught Error:[^\r\n]+")
_LINE_SPLIT_RE = re.compile(r"\r?\n")


@dataclass(slots=True, frozen=True)
class ProcessOutput:
    stdout: str
    stderr: str
    exit_code: int = 0


class ProcessRunError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        stdout: str = "",
        stderr: str = "",
        missing: bool = False,
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.missing = missing


def run_process(program: str, args: list[str], *, cwd: str | None = None, timeout: float | None = None) -> ProcessOutput:
    cmd = [program, *args]
    try:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            cwd=cwd or None,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        raise ProcessRunError(f"Command not found: {program}", missing=True, stderr=str(exc)) from exc
    except OSError as exc:
        raise ProcessRunError(str(exc), stderr=str(exc)) from exc
    except subprocess.TimeoutExpired as exc:
        raise ProcessRunError(f"Command timed out after {timeout}s: {program}") from exc

    stdout = str(proc.stdout or "")
    stderr = str(proc.stderr or "")
    if proc.returncode != 0:
        raise ProcessRunError(
            f"Command failed with exit code {proc.returncode}: {program}",
            exit_code=proc.returncode,
            stdout=stdout,
            stderr=stderr,
        )
    return ProcessOutput(stdout=stdout, stderr=stderr, exit_code=proc.returncode)


def stderr_lines(stderr: str) -> list[str]:
    return [line for line in _LINE_SPLIT_RE.split(str(stderr or "")) if line]


def interpret_output(output: ProcessOutput, *, original_text: str, scratch_path: str) -> FormatResult:
    """Classify a clean exit: the JSON on stdout is a manifest, the scratch file holds the content."""
    try:
        payload = json.loads(output.stdout)
    except ValueError as exc:
        return FormatResult(
            status=STATUS_ERROR,
            message=f"Unexpected php-cs-fixer output: {exc}",
            stderr=output.stderr,
            error_kind=ERROR_PARSE_FAILURE,
        )
    files = payload.get("files") if isinstance(payload, dict) else None
    if not isinstance(files, list):
        return FormatResult(
            status=STATUS_ERROR,
            message="Unexpected php-cs-fixer output: no file list in report.",
            stderr=output.stderr,
            error_kind=ERROR_PARSE_FAILURE,
        )

    if files:
        formatted = Path(scratch_path).read_text(encoding="utf-8")
        return FormatResult(status=STATUS_CHANGED, formatted_text=formatted, stderr=output.stderr)

    lines = stderr_lines(output.stderr)
    if len(lines) > 1:
        # The first line is the "Loaded config" banner; the second names the actual problem.
        return FormatResult(
            status=STATUS_FAILED,
            message=lines[1],
            stderr=output.stderr,
            error_kind=ERROR_TOOL_FAILURE,
        )
    return FormatResult(status=STATUS_UNCHANGED, formatted_text=original_text, stderr=output.stderr)


def exit_code_message(exit_code: int | None, *, stdout: str = "", stderr: str = "") -> str | None:
    if exit_code == 1:
        return stdout or EXIT_CODE_MESSAGES[1]
    if exit_code == 255:
        match = _PHP_FATAL_RE.search(str(stderr or ""))
        return match.group(0) if match else EXIT_CODE_MESSAGES[255]
    return EXIT_CODE_MESSAGES.get(exit_code) if exit_code is not None else None


def classify_failure(error: ProcessRunError) -> FormatResult:
    if error.missing:
        return FormatResult(
            status=STATUS_ERROR,
            message="executablePath not found, please check your settings.",
            stderr=error.stderr,
            error_kind=ERROR_MISSING_EXECUTABLE,
        )
    message = exit_code_message(error.exit_code, stdout=error.stdout, stderr=error.stderr)
    if message is None:
        message = error.stderr or str(error)
    return FormatResult(
        status=STATUS_ERROR,
        message=message,
        stderr=error.stderr,
        error_kind=ERROR_EXIT_CODE,
        exit_code=error.exit_code,
    )
