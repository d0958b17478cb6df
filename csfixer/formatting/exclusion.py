from __future__ import annotations

import fnmatch
import os
from typing import Iterable

from csfixer.formatting.editor_host import DocumentRef


def _relative_path(path: str, workspace_root: str) -> str:
    root = str(workspace_root or "").replace("\\", "/").rstrip("/")
    if not root:
        return ""
    try:
        if os.path.commonpath([root, path]) != root:
            return ""
    except ValueError:
        return ""
    return path[len(root):].lstrip("/")


def path_matches(patterns: Iterable[str], path: str, *, workspace_root: str = "") -> bool:
    path_norm = str(path or "").replace("\\", "/")
    if not path_norm:
        return False
    rel = _relative_path(path_norm, workspace_root)
    for raw in patterns:
        pattern = str(raw or "").strip().replace("\\", "/")
        if not pattern:
            continue
        if fnmatch.fnmatchcase(path_norm, pattern):
            return True
        if rel and fnmatch.fnmatchcase(rel, pattern):
            return True
    return False


def is_excluded(patterns: Iterable[str], document: DocumentRef) -> bool:
    """True when a saved document matches any glob, by absolute or workspace-relative path.

    Globs use ``fnmatch`` rules: ``*`` also crosses ``/``, so ``legacy/*.php``
    covers ``legacy/a/b.php`` too. Untitled documents are never excluded.
    """
    patterns = tuple(patterns or ())
    if not patterns or not document.is_file or document.is_untitled:
        return False
    return path_matches(patterns, document.path, workspace_root=document.workspace_root)
