"""Translate a configuration snapshot into php-cs-fixer command-line arguments."""

from __future__ import annotations

import os
import re
import tempfile
from dataclasses import dataclass
from typing import Callable

from csfixer.formatting.editor_host import DocumentRef
from csfixer.formatting.fixer_config import FixerConfig, expand_home


BASE_ARGS = ("fix", "--using-cache=no", "--format=json")
CONFIG_SEARCH_SUBDIR = ".vscode"

_WORKSPACE_TOKEN_RE = re.compile(r"^\$\{workspace(Root|Folder)\}")


@dataclass(slots=True, frozen=True)
class InvocationRequest:
    target: DocumentRef
    scratch_path: str
    cwd: str = ""
    mode: str = "fix"  # fix | diff

    @classmethod
    def for_document(cls, target: DocumentRef, scratch_path: str, *, is_diff: bool = False) -> "InvocationRequest":
        cwd = os.path.dirname(target.path) if target.is_file else ""
        return cls(target=target, scratch_path=scratch_path, cwd=cwd, mode="diff" if is_diff else "fix")


def config_candidates(config_list: str, workspace_root: str, home_dir: str | None = None) -> list[str]:
    """Full candidate list in search order; relative names expand under .vscode/ first."""
    if home_dir is None:
        home_dir = os.path.expanduser("~")
    names = [expand_home(name, home_dir) for name in str(config_list or "").split(";") if name != ""]

    search_roots: list[str] = []
    root = str(workspace_root or "")
    if root:
        search_roots = [f"{root}/{CONFIG_SEARCH_SUBDIR}/", f"{root}/"]

    files: list[str] = []
    for name in names:
        if os.path.isabs(name):
            files.append(name)
            continue
        for search_root in search_roots:
            files.append(search_root + name)
    return files


def find_config_file(
    config_list: str,
    workspace_root: str,
    *,
    exists: Callable[[str], bool] = os.path.exists,
    home_dir: str | None = None,
) -> str:
    for candidate in config_candidates(config_list, workspace_root, home_dir):
        if exists(candidate):
            return candidate
    return ""


def is_under_dir(path: str, directory: str) -> bool:
    directory = str(directory or "")
    return bool(directory) and str(path or "").startswith(directory)


def build_args(
    config: FixerConfig,
    target: DocumentRef,
    file_path: str = "",
    *,
    tmp_dir: str | None = None,
    exists: Callable[[str], bool] = os.path.exists,
    home_dir: str | None = None,
) -> list[str]:
    file_path = file_path or target.path
    if tmp_dir is None:
        tmp_dir = tempfile.gettempdir()

    args = list(BASE_ARGS)
    if config.phar_path:
        args[:0] = [*config.interpreter_args, config.phar_path]

    config_file = ""
    if config.config:
        config_file = find_config_file(
            config.config,
            target.workspace_root if target.is_file else "",
            exists=exists,
            home_dir=home_dir,
        )
    if config_file:
        args.append(f"--config={config_file}")
    elif config.rules:
        args.append(f"--rules={config.rules}")

    if config.allow_risky:
        args.append("--allow-risky=yes")

    # Scratch copies have no meaningful project path, so the configured finder must not filter them out.
    if is_under_dir(file_path, tmp_dir):
        args.append("--path-mode=override")
    else:
        args.append(f"--path-mode={config.path_mode}")
    args.append(file_path)
    return args


def resolve_executable(config: FixerConfig, workspace_root: str = "", fallback_root: str = "") -> str:
    """Expand a leading ${workspaceFolder}/${workspaceRoot} token in the executable path."""
    root = str(workspace_root or "") or str(fallback_root or "")
    if not root:
        return config.executable_path
    return _WORKSPACE_TOKEN_RE.sub(lambda _m: root, config.executable_path, count=1)
