"""Tests for the command line entry point."""

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

import main
from exceptions import StorageUnavailable
from services.scheduler import PassReport

STARTED = datetime(2025, 6, 9, 6, 0, tzinfo=timezone.utc)


@pytest.fixture
def no_pool():
    with patch.object(main, "init_pool"), patch.object(main, "close_pool") as close:
        yield close


def test_run_now_subcommand_passes_the_date():
    with patch.object(main, "run_now", return_value=0) as run_now, patch.object(main, "run_bot") as run_bot:
        assert main.main(["run-now", "--date", "2025-06-09"]) == 0

    run_now.assert_called_once_with(date(2025, 6, 9))
    run_bot.assert_not_called()


def test_bot_is_the_default_command():
    with patch.object(main, "run_bot") as run_bot:
        assert main.main([]) == 0
    run_bot.assert_called_once()


def test_log_level_override():
    with patch.object(main, "run_bot"), patch.object(main, "configure_logging") as configure:
        main.main(["--log-level", "DEBUG", "bot"])
    configure.assert_called_once_with("DEBUG")


def test_completed_pass_exits_zero(no_pool, capsys):
    report = PassReport(today=date(2025, 6, 9), started_at=STARTED, sent=2, due=2)
    with patch.object(main, "run_single_pass", AsyncMock(return_value=report)):
        assert main.run_now(date(2025, 6, 9)) == 0

    assert "sent=2" in capsys.readouterr().out
    no_pool.assert_called_once()


def test_aborted_pass_exits_one(no_pool, capsys):
    report = PassReport(today=date(2025, 6, 9), started_at=STARTED, aborted=True)
    report.failures.append("#3 @ 2025-06-10: boom")
    with patch.object(main, "run_single_pass", AsyncMock(return_value=report)):
        assert main.run_now(date(2025, 6, 9)) == 1

    out = capsys.readouterr().out
    assert "aborted" in out
    assert "#3 @ 2025-06-10" in out


def test_unreachable_database_exits_one():
    with patch.object(main, "init_pool", side_effect=StorageUnavailable("down")):
        assert main.run_now() == 1
