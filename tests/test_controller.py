import time

import pytest

from csfixer.formatting.controller import MISSING_EXECUTABLE_MESSAGE, UPDATE_CHECK_DELAY_MS, FormattingController
from csfixer.formatting.editor_host import DocumentRef, Position, TextRange
from csfixer.formatting.process_runner import ProcessRunError
from csfixer.settings_models import BUNDLED_EXECUTABLE, default_host_settings
from csfixer.settings_store import SettingsStore

from tests._doubles import FakeEditorHost, FakeFixer


class ControllerRig:
    def __init__(self, fixer, *, platform, scratch_dir, project_dir, host=None, html_formatter=None) -> None:
        self.settings = SettingsStore(None, default_host_settings())
        self.fixer = fixer
        self.host = host
        self.controller = FormattingController(
            self.settings,
            platform=platform,
            active_editor=lambda: self.host,
            workspace_folders=lambda: [str(project_dir)],
            html_formatter=html_formatter,
            runner=fixer,
            scratch_dir=str(scratch_dir),
        )


@pytest.fixture
def make_rig(qapp, linux_platform, scratch_dir, project_dir):
    rigs: list[ControllerRig] = []

    def factory(fixer, **kwargs) -> ControllerRig:
        rig = ControllerRig(
            fixer,
            platform=linux_platform,
            scratch_dir=scratch_dir,
            project_dir=project_dir,
            **kwargs,
        )
        rigs.append(rig)
        return rig

    yield factory
    for rig in rigs:
        rig.controller.shutdown()


def _php_host(project_dir, text, **kwargs) -> FakeEditorHost:
    document = DocumentRef(path=str(project_dir / "demo.php"), workspace_root=str(project_dir))
    return FakeEditorHost(text, document=document, **kwargs)


def test_settings_change_rebuilds_config(make_rig) -> None:
    rig = make_rig(FakeFixer("<?php\n"))
    reloaded = []
    rig.controller.configReloaded.connect(reloaded.append)

    rig.settings.update("php-cs-fixer.rules", "@Symfony")

    assert rig.controller.config.rules == "@Symfony"
    assert reloaded[-1].rules == "@Symfony"


def test_format_document_command_applies_result(make_rig, project_dir) -> None:
    host = _php_host(project_dir, "<?php\n$a=1;")
    rig = make_rig(FakeFixer("<?php\n\n$a = 1;\n"), host=host)

    assert rig.controller.command_format_document() is True
    rig.controller.flush(timeout=5)

    assert host.text == "<?php\n\n$a = 1;\n"
    assert host.applied[0][0].range == TextRange(Position(0, 0), Position(1, 5))
    assert rig.controller.output.status == ""
    assert rig.controller.output.lines()[0].startswith("[Format] cmd: php-cs-fixer")
    assert rig.controller.state.running is False


def test_typing_during_format_keeps_new_text(make_rig, project_dir) -> None:
    host = _php_host(project_dir, "<?php\n$a=1;")
    rig = make_rig(FakeFixer("<?php\n\n$a = 1;\n"), host=host)

    rig.controller.command_format_document()
    host.text = "<?php\n$b=2;$a=1;"
    rig.controller.flush(timeout=5)

    assert host.text == "<?php\n$b=2;$a=1;"
    assert host.applied == []
    assert rig.controller.output.lines()[-1] == "[Format] document changed while formatting; result discarded"


def test_format_document_command_ignores_non_php_and_excluded(make_rig, project_dir) -> None:
    html = FakeEditorHost("<div>", document=DocumentRef(path=str(project_dir / "a.html"), language_id="html"))
    rig = make_rig(FakeFixer("<?php\n"), host=html)

    assert rig.controller.command_format_document() is False

    rig.settings.update("php-cs-fixer.exclude", ["**/demo.php"])
    assert rig.controller.command_format_document(_php_host(project_dir, "<?php")) is False
    assert rig.fixer.calls == []


def test_missing_executable_switches_to_bundled_archive(make_rig, project_dir, linux_platform) -> None:
    host = _php_host(project_dir, "<?php\n$a=1;")
    rig = make_rig(FakeFixer(error=ProcessRunError("Command not found", missing=True)), host=host)
    warnings: list[str] = []
    rig.controller.executableMissing.connect(warnings.append)

    rig.controller.command_format_document()
    rig.controller.flush(timeout=5)

    assert warnings == [MISSING_EXECUTABLE_MESSAGE]
    assert rig.settings.get("php-cs-fixer.executablePath") == BUNDLED_EXECUTABLE
    assert rig.controller.config.phar_path == f"{linux_platform.extension_dir}/php-cs-fixer.phar"
    assert rig.controller.output.status.startswith("PHP CS Fixer: ")
    assert host.applied == []


def test_will_save_respects_onsave_and_editor_format_on_save(make_rig, project_dir) -> None:
    host = _php_host(project_dir, "<?php\n$a=1;")
    rig = make_rig(FakeFixer("<?php\n$a = 1;\n"), host=host)

    assert rig.controller.on_will_save(host) == []

    rig.settings.update("php-cs-fixer.onsave", True)
    edits = rig.controller.on_will_save(host)
    assert [edit.new_text for edit in edits] == ["<?php\n$a = 1;\n"]

    rig.settings.update("editor.formatOnSave", True)
    assert rig.controller.on_will_save(host) == []


def test_document_edits_are_empty_when_nothing_changes(make_rig, project_dir) -> None:
    host = _php_host(project_dir, "<?php\n$a = 1;\n")
    rig = make_rig(FakeFixer(None), host=host)

    assert rig.controller.document_edits(host) == []
    assert len(rig.fixer.calls) == 1


def test_html_is_beautified_before_fixing(make_rig, project_dir) -> None:
    host = _php_host(project_dir, "<div><?php echo 1; ?></div>")
    fixer = FakeFixer("<div>\n<?php echo 1; ?>\n</div>")
    rig = make_rig(fixer, host=host, html_formatter=lambda text: text.replace("<div>", "<div>\n"))

    rig.controller.document_edits(host)
    assert fixer.seen_text == ["<div><?php echo 1; ?></div>"]

    rig.settings.update("php-cs-fixer.formatHtml", True)
    rig.controller.document_edits(host)
    assert fixer.seen_text[-1] == "<div>\n<?php echo 1; ?></div>"


def test_range_edits_add_and_strip_open_tag(make_rig, project_dir) -> None:
    host = _php_host(project_dir, "<?php\nif($a){\n$b=1;\n}")
    fixer = FakeFixer("<?php\n$b = 1;\n")
    rig = make_rig(fixer, host=host)
    selection = TextRange(Position(2, 0), Position(2, 5))

    edits = rig.controller.range_edits(host, selection)

    assert fixer.seen_text == ["<?php\n$b=1;"]
    assert edits[0].range == selection
    assert edits[0].new_text == "$b = 1;\n"


def test_whitespace_range_is_rejected(make_rig, project_dir) -> None:
    host = _php_host(project_dir, "<?php\n\n   \n")
    rig = make_rig(FakeFixer("<?php\n"), host=host)

    assert rig.controller.range_edits(host, TextRange(Position(1, 0), Position(2, 3))) == []
    assert rig.fixer.calls == []


def test_diff_command_reports_scratch_copy(make_rig, project_dir, scratch_dir) -> None:
    source = project_dir / "demo.php"
    source.write_text("<?php\n$a=1;", encoding="utf-8")
    rig = make_rig(FakeFixer("<?php\n\n$a = 1;\n"))
    requests: list[tuple[str, str]] = []
    rig.controller.diffRequested.connect(lambda original, formatted: requests.append((original, formatted)))

    assert rig.controller.command_diff(str(source)) is True
    rig.controller.flush(timeout=5)

    assert requests == [(str(source), str(scratch_dir / "demo.php"))]
    assert (scratch_dir / "demo.php").read_text(encoding="utf-8") == "<?php\n\n$a = 1;\n"
    assert source.read_text(encoding="utf-8") == "<?php\n$a=1;"


def test_diff_command_needs_a_saved_php_file(make_rig, project_dir) -> None:
    rig = make_rig(FakeFixer("<?php\n"))

    assert rig.controller.command_diff() is False
    assert rig.controller.command_diff(str(project_dir / "missing.php")) is False


def test_fix_command_on_directory_reveals_output(make_rig, project_dir) -> None:
    rig = make_rig(FakeFixer(None))
    revealed: list[bool] = []
    rig.controller.output.revealRequested.connect(lambda: revealed.append(True))

    assert rig.controller.command_fix(str(project_dir)) is True
    rig.controller.flush(timeout=5)

    assert revealed == [True]
    assert rig.fixer.calls[0]["args"][-1] == str(project_dir)
    assert rig.controller.output.status == ""


def test_fix_command_without_path_formats_active_document(make_rig, project_dir) -> None:
    host = _php_host(project_dir, "<?php\n$a=1;")
    rig = make_rig(FakeFixer("<?php\n$a = 1;\n"), host=host)

    assert rig.controller.command_fix() is True
    rig.controller.flush(timeout=5)

    assert host.text == "<?php\n$a = 1;\n"
    assert rig.fixer.calls[0]["args"][-1] != str(project_dir / "demo.php")


def test_keystroke_trigger_runs_through_executor(make_rig, project_dir) -> None:
    text = "<?php\nif($a){\n foo();\n}"
    host = _php_host(project_dir, text, bracket_target=text.index("{"))
    rig = make_rig(FakeFixer("<?php\n$__pcf__spliter = 0;\nif ($a) {\n    foo();\n}\n"), host=host)

    rig.controller.on_document_changed(host, "}")
    rig.controller.flush(timeout=5)

    assert host.text == "<?php\nif ($a) {\n    foo();\n}"
    assert rig.controller.state.running is False


def test_broken_result_handler_is_logged(make_rig, project_dir) -> None:
    host = _php_host(project_dir, "<?php\n$a=1;")

    def refuse(_edits):
        raise RuntimeError("editor closed")

    host.apply_edits = refuse
    rig = make_rig(FakeFixer("<?php\n$a = 1;\n"), host=host)

    rig.controller.command_format_document()
    rig.controller.flush(timeout=5)

    assert rig.controller.output.lines()[-1] == "[Format] result handler failed: editor closed"


def test_archive_update_check_and_record(make_rig, linux_platform) -> None:
    rig = make_rig(FakeFixer(None))
    due: list[str] = []
    rig.controller.archiveUpdateDue.connect(due.append)

    assert rig.controller.check_archive_update() is False

    rig.settings.update("php-cs-fixer.executablePath", BUNDLED_EXECUTABLE)
    assert rig.controller.check_archive_update() is True
    assert due == [f"{linux_platform.extension_dir}/php-cs-fixer.phar"]

    rig.controller.record_archive_update(10**13)
    assert rig.settings.get("php-cs-fixer.lastDownload") == 10**13
    assert rig.controller.check_archive_update() is False


def test_update_check_is_scheduled_on_startup(make_rig, qapp, linux_platform) -> None:
    rig = make_rig(FakeFixer(None))
    rig.settings.update("php-cs-fixer.executablePath", BUNDLED_EXECUTABLE)
    due: list[str] = []
    rig.controller.archiveUpdateDue.connect(due.append)

    assert rig.controller._update_timer.isActive()
    assert rig.controller._update_timer.remainingTime() > UPDATE_CHECK_DELAY_MS - 5000

    rig.controller.schedule_update_check(0)
    deadline = time.monotonic() + 5
    while not due and time.monotonic() < deadline:
        qapp.processEvents()
        time.sleep(0.01)

    assert due == [f"{linux_platform.extension_dir}/php-cs-fixer.phar"]
    assert not rig.controller._update_timer.isActive()


def test_active_editor_tracking(make_rig, project_dir) -> None:
    rig = make_rig(FakeFixer(None))

    rig.controller.on_active_editor_changed(_php_host(project_dir, "<?php"))
    assert rig.controller.state.last_active_path == str(project_dir / "demo.php")

    rig.controller.on_active_editor_changed(None)
    assert rig.controller.state.last_active_path == ""
    assert rig.controller.provides_document_formatting() is True
