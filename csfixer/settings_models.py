from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, TypedDict

PathMode = Literal["pathMode", "override"]

FIXER_SECTION = "php-cs-fixer"
BUNDLED_EXECUTABLE = "${extensionPath}/php-cs-fixer.phar"
DEFAULT_CONFIG_CANDIDATES = ".php-cs-fixer.php;.php-cs-fixer.dist.php;.php_cs;.php_cs.dist"


class PhpCsFixerSettings(TypedDict, total=False):
    onsave: bool
    autoFixByBracket: bool
    autoFixBySemicolon: bool
    executablePath: str
    executablePathWindows: str
    rules: str | dict[str, Any]
    config: str
    formatHtml: bool
    documentFormattingProvider: bool
    allowRisky: bool
    pathMode: PathMode
    exclude: list[str]
    lastDownload: int


class PhpValidateSettings(TypedDict, total=False):
    executablePath: str


class PhpSettings(TypedDict, total=False):
    validate: PhpValidateSettings


class EditorSettings(TypedDict, total=False):
    formatOnSave: bool


# Keys mirror the host configuration sections, so "php-cs-fixer" is a valid key here.
HostSettings = TypedDict(
    "HostSettings",
    {
        "php-cs-fixer": PhpCsFixerSettings,
        "php": PhpSettings,
        "editor": EditorSettings,
    },
    total=False,
)


@dataclass(slots=True, frozen=True)
class SettingsPaths:
    app_dir: Path
    settings_filename: str = "settings.json"
    settings_file: Path = field(init=False)

    def __post_init__(self) -> None:
        app_dir = Path(self.app_dir).expanduser().resolve()
        object.__setattr__(self, "app_dir", app_dir)
        object.__setattr__(self, "settings_file", app_dir / self.settings_filename)


def default_host_settings() -> HostSettings:
    # executablePath is left unset: its default depends on the platform.
    defaults: HostSettings = {
        FIXER_SECTION: {
            "onsave": False,
            "autoFixByBracket": True,
            "autoFixBySemicolon": False,
            "executablePathWindows": "",
            "rules": "@PSR12",
            "config": DEFAULT_CONFIG_CANDIDATES,
            "formatHtml": False,
            "documentFormattingProvider": True,
            "allowRisky": False,
            "pathMode": "override",
            "exclude": [],
            "lastDownload": 1,
        },
        "php": {
            "validate": {
                "executablePath": "php",
            },
        },
        "editor": {
            "formatOnSave": False,
        },
    }
    return deepcopy(defaults)
