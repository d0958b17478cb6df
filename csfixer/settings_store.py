from __future__ import annotations

import json
from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

from PySide6.QtCore import QObject, Signal


class SettingsStoreError(RuntimeError):
    """Raised when a settings file cannot be loaded or saved."""


def deep_merge_defaults(data: Mapping[str, Any], defaults: Mapping[str, Any]) -> dict[str, Any]:
    """Merge defaults into data without overwriting explicitly provided values."""
    merged = deepcopy(dict(data))
    for key, default_value in defaults.items():
        if key not in merged:
            merged[key] = deepcopy(default_value)
            continue
        current = merged[key]
        if isinstance(current, dict) and isinstance(default_value, dict):
            merged[key] = deep_merge_defaults(current, default_value)
    return merged


def dot_get(data: Mapping[str, Any], key: str, default: Any = None) -> Any:
    if not key:
        return data
    current: Any = data
    for part in key.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current


def dot_set(data: dict[str, Any], key: str, value: Any) -> None:
    if not key:
        raise ValueError("Key cannot be empty.")
    current: dict[str, Any] = data
    parts = key.split(".")
    for part in parts[:-1]:
        next_value = current.get(part)
        if not isinstance(next_value, dict):
            next_value = {}
            current[part] = next_value
        current = next_value
    current[parts[-1]] = value


class SettingsStore(QObject):
    """JSON-backed host settings with dot-key access and change notification.

    Every successful ``set``/``load`` emits ``settingsChanged`` with the key that
    changed (empty for a full reload), so listeners can rebuild whatever they
    derived from the settings.
    """

    settingsChanged = Signal(str)

    def __init__(
        self,
        path: Path | None,
        defaults: Mapping[str, Any],
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.path = Path(path) if path is not None else None
        self.defaults: dict[str, Any] = deepcopy(dict(defaults))
        self.data: dict[str, Any] = deep_merge_defaults({}, self.defaults)
        self.last_error: str | None = None

    @property
    def persistent(self) -> bool:
        return self.path is not None

    def load(self) -> dict[str, Any]:
        loaded: dict[str, Any] = {}
        self.last_error = None
        if self.path is not None and self.path.exists():
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except Exception as exc:  # pragma: no cover - depends on user file contents
                # Keep the previous values; the broken file is left untouched.
                self.last_error = str(exc)
                return self.data
            if not isinstance(raw, dict):
                self.last_error = (
                    f"Settings root in '{self.path}' must be a JSON object, "
                    f"found {type(raw).__name__}."
                )
                return self.data
            loaded = raw

        self.data = deep_merge_defaults(loaded, self.defaults)
        self.settingsChanged.emit("")
        return self.data

    def save(self) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self.data, indent=2, sort_keys=True), encoding="utf-8")
            self.last_error = None
        except Exception as exc:
            raise SettingsStoreError(f"Could not write settings file '{self.path}': {exc}") from exc

    def get(self, key: str, default: Any = None) -> Any:
        return dot_get(self.data, key, default)

    def has(self, key: str) -> bool:
        marker = object()
        return self.get(key, marker) is not marker

    def update(self, key: str, value: Any, *, persist: bool = True) -> bool:
        if self.get(key) == value and self.has(key):
            return False
        dot_set(self.data, key, deepcopy(value))
        if persist:
            self.save()
        self.settingsChanged.emit(key)
        return True

    def snapshot(self) -> dict[str, Any]:
        return deepcopy(self.data)
