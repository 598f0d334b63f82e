from __future__ import annotations

"""
Unit tests for the Main Entry Point and Global Supervisor.
"""

import sys
from unittest.mock import patch

import pytest

from journal_transcriber import main as entry


def test_main_delegates_to_cli():
    with patch("journal_transcriber.interface.cli.app.main", return_value=0) as cli_main:
        assert entry.main() == 0
    cli_main.assert_called_once_with()


def test_supervisor_is_installed():
    assert sys.excepthook is entry.global_exception_handler


def test_supervisor_reports_and_exits(capsys):
    """TC-01: Fatal errors are printed with their trace and exit with 1."""
    try:
        raise RuntimeError("disk on fire")
    except RuntimeError as e:
        with pytest.raises(SystemExit) as exc_info:
            entry.global_exception_handler(type(e), e, e.__traceback__)

    assert exc_info.value.code == 1
    err = capsys.readouterr().err
    assert "CRITICAL ERROR (JOURNAL TRANSCRIBER)" in err
    assert "disk on fire" in err


def test_unexpected_cli_crash_goes_through_supervisor():
    with patch("journal_transcriber.interface.cli.app.main", side_effect=RuntimeError("boom")):
        with pytest.raises(SystemExit):
            entry.main()
