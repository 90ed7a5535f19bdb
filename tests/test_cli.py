"""
Tests for the synvm command line.

Run with: uv run pytest tests/test_cli.py
"""

import io
import logging
import sys

from synvm import cli
from synvm.isa import ADD, HALT, OUT, POP, Literal, Register, encode_program, words_to_bytes


class Stdio:
    """Stands in for sys.stdin/sys.stdout with binary buffers."""

    def __init__(self, data=b""):
        self.buffer = io.BytesIO(data)


def write_image(tmp_path, instructions, extra=()):
    image = tmp_path / "challenge.bin"
    image.write_bytes(words_to_bytes(encode_program(instructions) + list(extra)))
    return image


def test_run(tmp_path, monkeypatch):
    image = write_image(tmp_path, [OUT(Literal(ord('h'))), OUT(Literal(ord('i'))), HALT()])
    stdout = Stdio()
    monkeypatch.setattr(sys, "stdin", Stdio())
    monkeypatch.setattr(sys, "stdout", stdout)

    assert cli.main(["run", str(image)]) == 0
    assert stdout.buffer.getvalue() == b"hi"


def test_run_reports_fault(tmp_path, monkeypatch, capsys):
    image = write_image(tmp_path, [POP(Register(0))])
    monkeypatch.setattr(sys, "stdin", Stdio())
    monkeypatch.setattr(sys, "stdout", Stdio())

    assert cli.main(["run", str(image)]) == 1
    err = capsys.readouterr().err
    assert "error: Stack underflow at ip 0x0000" in err


def test_run_missing_image(tmp_path, capsys):
    assert cli.main(["run", str(tmp_path / "nope.bin")]) == 1
    assert "error: Error loading memory" in capsys.readouterr().err


def test_trace_logging(tmp_path, monkeypatch, caplog):
    image = write_image(tmp_path, [ADD(Register(0), Register(1), Literal(4)), HALT()])
    monkeypatch.setattr(sys, "stdin", Stdio())
    monkeypatch.setattr(sys, "stdout", Stdio())

    with caplog.at_level(logging.DEBUG, logger="synvm.trace"):
        assert cli.main(["run", "--trace", str(image)]) == 0
    messages = [r.getMessage() for r in caplog.records if r.name == "synvm.trace"]
    assert messages == ["0x0000 ADD(R0, R1, 0x4)", "0x0004 HALT"]


def test_disasm(tmp_path, capsys):
    image = write_image(tmp_path, [ADD(Register(0), Register(1), Literal(4)), OUT(Register(0))], extra=[0x7777])
    assert cli.main(["disasm", str(image), "--count", "3"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        "0x0000  ADD(R0, R1, 0x4)",
        "0x0004  OUT(R0)",
        "0x0006  .word 0x7777",
    ]


def test_fuzz(capsys):
    assert cli.main(["fuzz", "-n", "20", "-s", "7", "--max-steps", "100"]) == 0
    assert "Total tests run:           20" in capsys.readouterr().out


def test_configure_logging_env(monkeypatch):
    monkeypatch.setenv("SYNVM_LOG", "debug")
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.append(kw))
    cli.configure_logging(None)
    assert calls[0]["level"] == "DEBUG"

    cli.configure_logging("info")
    assert calls[1]["level"] == "INFO"


def test_unknown_log_level_rejected(monkeypatch, capsys):
    assert cli.resolve_log_level("info") == "INFO"

    try:
        cli.main(["--log-level", "bogus", "fuzz", "-n", "1"])
        assert False, "Should have raised"
    except SystemExit as e:
        assert e.code == 2
    assert "--log-level" in capsys.readouterr().err

    monkeypatch.setenv("SYNVM_LOG", "bogus")
    try:
        cli.resolve_log_level(None)
        assert False, "Should have raised"
    except ValueError as e:
        assert "unknown log level: BOGUS" in str(e)

    try:
        cli.main(["fuzz", "-n", "1"])
        assert False, "Should have raised"
    except SystemExit as e:
        assert e.code == 2
    assert "unknown log level: BOGUS" in capsys.readouterr().err
