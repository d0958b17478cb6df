import os
import sys
from pathlib import Path

from PySide6.QtGui import QKeySequence, QShortcut
from PySide6.QtWidgets import QApplication, QPlainTextEdit

from csfixer.formatting import (
    DocumentFormatter,
    DocumentRef,
    FormattingController,
    FormatterState,
    PlatformFacts,
    resolve_fixer_config,
)
from csfixer.formatting.process_runner import run_process
from csfixer.settings_models import SettingsPaths, default_host_settings
from csfixer.settings_store import SettingsStore
from csfixer.ui.plain_text_host import PlainTextEditorHost


USAGE = "usage: main.py [--diff | --write | --edit] [--settings FILE] [--workspace DIR] FILE.php"
FORMAT_SHORTCUT = "Ctrl+Shift+I"


def _split_cli_args(argv: list[str]) -> tuple[dict, list[str]]:
    options = {"diff": False, "write": False, "edit": False, "settings": "", "workspace": ""}
    positional: list[str] = []
    it = iter(argv)
    for arg in it:
        if arg in ("--diff", "--write", "--edit"):
            options[arg[2:]] = True
        elif arg in ("--settings", "--workspace"):
            options[arg[2:]] = next(it, "")
        else:
            positional.append(arg)
    return options, positional


def _default_settings_path() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return SettingsPaths(app_dir=Path(base) / "csfixer").settings_file


def _canonical_existing_dir(path_value: str) -> str:
    text = str(path_value or "").strip()
    if not text:
        return ""
    candidate = Path(text).expanduser()
    if not candidate.is_dir():
        return ""
    return str(candidate.resolve())


def build_editor(
    target_path: Path,
    store: SettingsStore,
    workspace: str,
    *,
    runner=run_process,
    scratch_dir: str | None = None,
) -> tuple[QPlainTextEdit, PlainTextEditorHost, FormattingController]:
    """Plain-text editor wired to the formatter: keystroke triggers, save hook and a format shortcut."""
    editor = QPlainTextEdit()
    editor.setPlainText(target_path.read_text(encoding="utf-8"))
    editor.setWindowTitle(target_path.name)
    host = PlainTextEditorHost(editor, DocumentRef(path=str(target_path), workspace_root=workspace))

    controller = FormattingController(
        store,
        active_editor=lambda: host,
        workspace_folders=lambda: [workspace],
        runner=runner,
        scratch_dir=scratch_dir,
        parent=editor,
    )
    controller.on_active_editor_changed(host)
    controller.output.lineAppended.connect(lambda line: print(line, file=sys.stderr))
    controller.output.statusChanged.connect(lambda status: editor.setWindowTitle(f"{target_path.name} - {status}"))
    controller.output.statusHidden.connect(lambda: editor.setWindowTitle(target_path.name))
    host.add_change_listener(controller.on_document_changed)

    def save() -> None:
        edits = controller.on_will_save(host)
        if edits:
            host.apply_edits(edits)
        target_path.write_text(host.full_text(), encoding="utf-8")

    format_shortcut = QShortcut(QKeySequence(FORMAT_SHORTCUT), editor)
    format_shortcut.activated.connect(controller.command_format_document)
    save_shortcut = QShortcut(QKeySequence(QKeySequence.StandardKey.Save), editor)
    save_shortcut.activated.connect(save)
    return editor, host, controller


def _run_editor(target_path: Path, store: SettingsStore, workspace: str) -> int:
    app = QApplication.instance() or QApplication([sys.argv[0]])
    editor, _host, controller = build_editor(target_path, store, workspace)
    editor.resize(900, 700)
    editor.show()
    try:
        return app.exec()
    finally:
        controller.shutdown()


def main(argv: list[str]) -> int:
    options, positional = _split_cli_args(argv)
    if len(positional) != 1:
        print(USAGE, file=sys.stderr)
        return 2

    target_path = Path(positional[0]).expanduser().resolve()
    if not target_path.is_file():
        print(f"Not a file: {target_path}", file=sys.stderr)
        return 2

    store = SettingsStore(Path(options["settings"]) if options["settings"] else _default_settings_path(), default_host_settings())
    store.load()
    if store.last_error:
        print(f"[Settings] {store.last_error}", file=sys.stderr)

    workspace = _canonical_existing_dir(options["workspace"]) or str(target_path.parent)
    if options["edit"]:
        return _run_editor(target_path, store, workspace)

    config = resolve_fixer_config(store.data, PlatformFacts.current())
    formatter = DocumentFormatter(
        config_provider=lambda: config,
        state=FormatterState(),
        workspace_folders=lambda: [workspace],
    )
    document = DocumentRef(path=str(target_path), workspace_root=workspace)
    text = target_path.read_text(encoding="utf-8")
    result = formatter.format(text, document, is_diff=bool(options["diff"]))

    for line in result.debug_lines:
        print(line, file=sys.stderr)
    if not result.ok:
        print(f"PHP CS Fixer: {result.message or 'failed'}", file=sys.stderr)
        return 1

    if options["diff"]:
        print(result.scratch_path)
    elif options["write"]:
        if result.formatted_text != text:
            target_path.write_text(result.formatted_text, encoding="utf-8")
    else:
        sys.stdout.write(result.formatted_text)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
