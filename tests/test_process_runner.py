import json
import sys

import pytest

from csfixer.formatting.code_formatting import (
    ERROR_EXIT_CODE,
    ERROR_MISSING_EXECUTABLE,
    ERROR_PARSE_FAILURE,
    ERROR_TOOL_FAILURE,
    STATUS_CHANGED,
    STATUS_ERROR,
    STATUS_FAILED,
    STATUS_UNCHANGED,
)
from csfixer.formatting.process_runner import (
    EXIT_CODE_MESSAGES,
    ProcessOutput,
    ProcessRunError,
    classify_failure,
    exit_code_message,
    interpret_output,
    run_process,
)


def test_run_process_captures_output(tmp_path) -> None:
    output = run_process(sys.executable, ["-c", "import os; print(os.getcwd())"], cwd=str(tmp_path))

    assert output.exit_code == 0
    assert output.stdout.strip() == str(tmp_path.resolve())


def test_run_process_raises_with_exit_code_and_streams() -> None:
    script = "import sys; sys.stdout.write('out'); sys.stderr.write('boom'); sys.exit(16)"

    with pytest.raises(ProcessRunError) as info:
        run_process(sys.executable, ["-c", script])

    assert info.value.exit_code == 16
    assert info.value.stdout == "out"
    assert info.value.stderr == "boom"
    assert not info.value.missing


def test_run_process_marks_missing_program(tmp_path) -> None:
    with pytest.raises(ProcessRunError) as info:
        run_process(str(tmp_path / "no-such-fixer"), ["fix"])

    assert info.value.missing


def test_changed_report_reads_scratch_file(tmp_path) -> None:
    scratch = tmp_path / "demo.php"
    scratch.write_text("<?php\n\n$a = 1;\n", encoding="utf-8")
    stdout = json.dumps({"files": [{"name": str(scratch)}]})

    result = interpret_output(ProcessOutput(stdout, ""), original_text="<?php\n$a=1;", scratch_path=str(scratch))

    assert result.status == STATUS_CHANGED
    assert result.formatted_text == "<?php\n\n$a = 1;\n"


def test_empty_report_with_quiet_stderr_is_unchanged() -> None:
    output = ProcessOutput(json.dumps({"files": []}), "Loaded config default.\n")

    result = interpret_output(output, original_text="<?php\n", scratch_path="/unused")

    assert result.status == STATUS_UNCHANGED
    assert result.formatted_text == "<?php\n"


def test_empty_report_with_second_stderr_line_is_failure() -> None:
    stderr = "Loaded config default.\r\nFiles that were not fixed due to errors reported during linting before fixing:\n"

    result = interpret_output(ProcessOutput(json.dumps({"files": []}), stderr), original_text="", scratch_path="/unused")

    assert result.status == STATUS_FAILED
    assert result.error_kind == ERROR_TOOL_FAILURE
    assert result.message.startswith("Files that were not fixed")


def test_malformed_report_is_parse_failure() -> None:
    result = interpret_output(ProcessOutput("not json", ""), original_text="", scratch_path="/unused")

    assert result.status == STATUS_ERROR
    assert result.error_kind == ERROR_PARSE_FAILURE

    result = interpret_output(ProcessOutput("[]", ""), original_text="", scratch_path="/unused")
    assert result.error_kind == ERROR_PARSE_FAILURE


def test_exit_code_messages() -> None:
    assert exit_code_message(1, stdout="PHP needs to be 7.4") == "PHP needs to be 7.4"
    assert exit_code_message(1) == EXIT_CODE_MESSAGES[1]
    assert exit_code_message(16) == "Configuration error of the application."
    assert exit_code_message(32) == "Configuration error of a Fixer."
    assert exit_code_message(64) == "Exception raised within the application."
    assert exit_code_message(2) is None


def test_fatal_error_message_is_extracted() -> None:
    stderr = "noise\nPHP Fatal error:  Uncaught Error: Call to undefined function foo() in x.php:3\nStack trace:"

    assert exit_code_message(255, stderr=stderr) == (
        "PHP Fatal error:  Uncaught Error: Call to undefined function foo() in x.php:3"
    )
    parse_error = "PHP Parse error:  Uncaught Error: syntax error, unexpected end of file in y.php:9\nStack trace:"
    assert exit_code_message(255, stderr=parse_error) == (
        "PHP Parse error:  Uncaught Error: syntax error, unexpected end of file in y.php:9"
    )
    assert exit_code_message(255, stderr="nothing useful") == EXIT_CODE_MESSAGES[255]


def test_classify_failure() -> None:
    missing = classify_failure(ProcessRunError("gone", missing=True))
    assert missing.error_kind == ERROR_MISSING_EXECUTABLE

    config = classify_failure(ProcessRunError("bad", exit_code=16))
    assert config.error_kind == ERROR_EXIT_CODE
    assert config.exit_code == 16
    assert config.message == EXIT_CODE_MESSAGES[16]

    other = classify_failure(ProcessRunError("bad", exit_code=3, stderr="details"))
    assert other.message == "details"


def test_run_process_replaces_undecodable_output() -> None:
    script = "import sys; sys.stdout.buffer.write(b'caf\\xe9 {}'); sys.stderr.buffer.write(b'\\xff')"

    output = run_process(sys.executable, ["-c", script])

    assert output.stdout == "caf\ufffd {}"
    assert output.stderr == "\ufffd"
