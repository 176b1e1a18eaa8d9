#!/usr/bin/env python3
"""
Tests for reprompt.py - the command-line entry point.

The clipboard backend is replaced with an in-memory one; everything else
(settings, .env loading, logging, exit codes) runs for real.
"""

import logging
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import reprompt
from clipboard_backends import ClipboardError
from reprompt import EXIT_FAILED, EXIT_OK, EXIT_ROLLED_BACK, main, setup_logging


BOX = "╭──────╮\n│ text │\n╰──────╯"

ENV_VARS = (
    "REPROMPT_BACKEND",
    "REPROMPT_CLIPBOARD_TIMEOUT",
    "REPROMPT_MIN_KEEP_RATIO",
    "REPROMPT_MOJIBAKE_MIN_SCORE",
    "REPROMPT_TABLE_PIPE_MIN",
    "REPROMPT_LOG_FILE",
)


class MemoryPort:
    name = "memory"

    def __init__(self, text="", broken=False, fail_writes=False):
        self.text = text
        self.broken = broken
        self.fail_writes = fail_writes
        self.writes = []

    def read(self):
        if self.broken:
            raise ClipboardError("no clipboard here")
        return self.text

    def write(self, text):
        self.writes.append(text)
        if self.fail_writes:
            raise ClipboardError("write refused")
        self.text = text


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    """Run from an empty directory with no REPROMPT_* settings in play."""
    monkeypatch.chdir(tmp_path)
    for name in ENV_VARS:
        # setenv first so the variable is removed again at teardown even if
        # load_dotenv() sets it during the test
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    root = logging.getLogger()
    level = root.level
    with patch('reprompt.init'):
        yield tmp_path
    for handler in reprompt._handlers:
        root.removeHandler(handler)
        handler.close()
    reprompt._handlers.clear()
    root.setLevel(level)


def run(port, *argv):
    with patch('reprompt.detect_backend', return_value=port):
        return main(list(argv))


class TestExitCodes:
    def test_commit(self, capsys):
        port = MemoryPort(BOX)
        assert run(port) == EXIT_OK
        assert port.text == "text"
        assert "✨" in capsys.readouterr().out

    def test_nothing_to_do(self, capsys):
        port = MemoryPort("plain")
        assert run(port) == EXIT_OK
        assert port.writes == []
        assert capsys.readouterr().out == ""

    def test_rolled_back(self, capsys):
        port = MemoryPort(BOX, fail_writes=True)
        assert run(port) == EXIT_ROLLED_BACK
        err = capsys.readouterr().err
        assert "WriteFailed" in err
        assert "could not be restored" in err

    def test_validation_rejected(self, capsys):
        port = MemoryPort("╭──╮\n╰──╯")
        assert run(port) == EXIT_ROLLED_BACK
        assert "ValidationRejected" in capsys.readouterr().err
        assert port.writes == []

    def test_backend_unavailable(self, capsys):
        assert run(MemoryPort(broken=True)) == EXIT_FAILED
        assert "BackendUnavailable" in capsys.readouterr().err


class TestOptions:
    def test_dry_run_prints_and_does_not_write(self, capsys):
        port = MemoryPort(BOX)
        assert run(port, "--dry-run") == EXIT_OK
        assert capsys.readouterr().out == "text\n"
        assert port.writes == []
        assert port.text == BOX

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert reprompt.__version__ in capsys.readouterr().out

    def test_verbose_logs_phases(self, capsys):
        run(MemoryPort(BOX), "-v")
        assert "SNAPSHOTTING" in capsys.readouterr().err


class TestEnvironment:
    def test_dotenv_settings_applied(self, isolated):
        (isolated / ".env").write_text("REPROMPT_TABLE_PIPE_MIN=2\n")
        port = MemoryPort("| foo |")
        assert run(port) == EXIT_OK
        assert port.writes == []

    def test_dotenv_log_file(self, isolated):
        log_path = isolated / "logs" / "reprompt.log"
        (isolated / ".env").write_text(f"REPROMPT_LOG_FILE={log_path}\n")

        run(MemoryPort(BOX))

        content = log_path.read_text(encoding="utf-8")
        assert "COMMITTING" in content
        assert "Settings(" in content


class TestSetupLogging:
    def test_repeated_setup_does_not_stack_handlers(self):
        setup_logging()
        setup_logging()
        assert len(reprompt._handlers) == 1

    def test_file_handler_added(self, isolated):
        setup_logging(verbose=False, log_file=str(isolated / "run.log"))
        assert len(reprompt._handlers) == 2
        logging.getLogger("clipboard_txn").debug("hello file")
        assert "hello file" in (isolated / "run.log").read_text(encoding="utf-8")
