"""Resolve host settings into an immutable php-cs-fixer configuration snapshot."""

from __future__ import annotations

import json
import os
import re
import shlex
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from csfixer.settings_models import BUNDLED_EXECUTABLE, DEFAULT_CONFIG_CANDIDATES, FIXER_SECTION
from csfixer.settings_store import dot_get


PATH_MODES = {"pathMode", "override"}
ARCHIVE_SUFFIX = ".phar"
UPDATE_INTERVAL_MS = 1000 * 3600 * 24 * 7

_ARCHIVE_COMMAND_RE = re.compile(r"^(.*\S)\s+(\S+\.phar)$", re.IGNORECASE)
_HOME_PREFIX_RE = re.compile(r"^~/")


@dataclass(slots=True, frozen=True)
class PlatformFacts:
    is_windows: bool
    home_dir: str
    extension_dir: str

    @classmethod
    def current(cls, extension_dir: str | Path | None = None) -> "PlatformFacts":
        if extension_dir is None:
            extension_dir = Path(__file__).resolve().parents[1]
        return cls(
            is_windows=sys.platform == "win32",
            home_dir=os.path.expanduser("~"),
            extension_dir=str(extension_dir),
        )


@dataclass(slots=True, frozen=True)
class FixerConfig:
    onsave: bool = False
    auto_fix_by_bracket: bool = True
    auto_fix_by_semicolon: bool = False
    executable_path: str = "php-cs-fixer"
    phar_path: str = ""
    rules: str = "@PSR12"
    config: str = DEFAULT_CONFIG_CANDIDATES
    format_html: bool = False
    document_formatting_provider: bool = True
    allow_risky: bool = False
    path_mode: str = "override"
    exclude: tuple[str, ...] = ()
    editor_format_on_save: bool = False
    last_download: int = 1
    interpreter_args: tuple[str, ...] = ()

    @property
    def uses_archive(self) -> bool:
        return bool(self.phar_path)


def default_executable(platform: PlatformFacts) -> str:
    return "php-cs-fixer.bat" if platform.is_windows else "php-cs-fixer"


def expand_home(value: str, home_dir: str) -> str:
    return _HOME_PREFIX_RE.sub(lambda _m: home_dir.rstrip("/\\") + "/", str(value or ""), count=1)


def resolve_fixer_config(settings: Mapping[str, Any], platform: PlatformFacts) -> FixerConfig:
    """Build a fresh snapshot; nothing is carried over from earlier snapshots."""

    def fixer(key: str, default: Any) -> Any:
        return dot_get(settings, f"{FIXER_SECTION}.{key}", default)

    executable = str(fixer("executablePath", default_executable(platform)) or "")
    if platform.is_windows:
        override = str(fixer("executablePathWindows", "") or "")
        if override:
            executable = override
    executable = executable.replace("${extensionPath}", platform.extension_dir)
    executable = expand_home(executable, platform.home_dir)

    phar_path = ""
    interpreter_args: list[str] = []
    if executable.endswith(ARCHIVE_SUFFIX):
        # Everything before the archive token is the interpreter command.
        command = _ARCHIVE_COMMAND_RE.match(executable.strip())
        if command is not None:
            phar_path = expand_home(command.group(2), platform.home_dir)
            interpreter_args = shlex.split(command.group(1), posix=not platform.is_windows)
            interpreter = interpreter_args.pop(0) if interpreter_args else ""
        else:
            phar_path = executable
            interpreter = str(dot_get(settings, "php.validate.executablePath", "php") or "")
        executable = interpreter.strip() or "php"

    rules = fixer("rules", "@PSR12")
    if isinstance(rules, (dict, list)):
        rules = json.dumps(rules, separators=(",", ":"))

    path_mode = str(fixer("pathMode", "override") or "override")
    if path_mode not in PATH_MODES:
        path_mode = "override"

    exclude = fixer("exclude", [])
    if isinstance(exclude, str):
        exclude = [exclude]
    if not isinstance(exclude, (list, tuple)):
        exclude = []

    try:
        last_download = int(fixer("lastDownload", 1) or 0)
    except (TypeError, ValueError):
        last_download = 1

    return FixerConfig(
        onsave=bool(fixer("onsave", False)),
        auto_fix_by_bracket=bool(fixer("autoFixByBracket", True)),
        auto_fix_by_semicolon=bool(fixer("autoFixBySemicolon", False)),
        executable_path=executable,
        phar_path=phar_path,
        rules=str(rules or ""),
        config=str(fixer("config", DEFAULT_CONFIG_CANDIDATES) or ""),
        format_html=bool(fixer("formatHtml", False)),
        document_formatting_provider=bool(fixer("documentFormattingProvider", True)),
        allow_risky=bool(fixer("allowRisky", False)),
        path_mode=path_mode,
        exclude=tuple(str(item) for item in exclude if str(item or "").strip()),
        editor_format_on_save=bool(dot_get(settings, "editor.formatOnSave", False)),
        last_download=last_download,
        interpreter_args=tuple(interpreter_args),
    )


def archive_update_due(config: FixerConfig, raw_executable: str, now_ms: int | None = None) -> bool:
    """True when the bundled archive is in use and was last refreshed over a week ago."""
    if config.last_download == 0:
        return False
    if str(raw_executable or "") != BUNDLED_EXECUTABLE:
        return False
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return config.last_download + UPDATE_INTERVAL_MS < now_ms
