"""Tests for the Command Line Interface (CLI) module."""

import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from gsync import cli
from gsync.config import SessionConfig, Settings


@pytest.fixture(autouse=True)
def reset_logger() -> None:
    """Removes handlers installed by setup_logging between tests."""
    yield
    logging.getLogger("gsync").handlers.clear()


def test_parser_positional_and_flags() -> None:
    """Verifies the command line surface."""
    args = cli.build_parser().parse_args(
        ["feature", "host:/repo", "-u", "-m", "main", "-p", "Ship it"]
    )

    assert args.branch == "feature"
    assert args.repository_uri == "host:/repo"
    assert args.update is True
    assert args.master == "main"
    assert args.pull_message == "Ship it"


def test_parser_single_flag() -> None:
    """Verifies the fold-on-quit variant of update mode."""
    args = cli.build_parser().parse_args(["feature", "-s"])

    assert args.single is True
    assert args.update is False


def test_parser_allows_bare_launch() -> None:
    """Verifies that both positionals are optional (reused from last launch)."""
    args = cli.build_parser().parse_args([])

    assert args.branch is None
    assert args.repository_uri is None
    assert args.update is False
    assert args.single is False


def test_help_includes_server_setup(capsys: pytest.CaptureFixture) -> None:
    """Verifies that the operator guidance is part of --help."""
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["--help"])

    out = capsys.readouterr().out
    assert "receive.denyCurrentBranch updateInstead" in out
    assert "gsync alexander rt.com:/var/www/html/alexander" in out


def test_main_runs_session_and_exits_with_its_code(
    tmp_path: Path, mocker: MagicMock
) -> None:
    """Verifies the wiring from arguments to a session run."""
    mocker.patch("gsync.cli.console")
    mocker.patch("gsync.cli.find_root", return_value=tmp_path)
    mocker.patch("gsync.cli.Settings.load", return_value=Settings())
    mocker.patch("gsync.cli.setup_logging")
    conf = SessionConfig(branch="feature", root=tmp_path)
    mock_resolve = mocker.patch("gsync.cli.resolve_session", return_value=conf)
    mock_session = mocker.patch("gsync.cli.Session")
    mock_session.return_value.run.return_value = 1

    with pytest.raises(SystemExit) as exc:
        cli.main(["feature", "-u"])

    assert exc.value.code == 1
    mock_resolve.assert_called_once_with(
        tmp_path,
        branch="feature",
        repository_uri=None,
        master=None,
        update=True,
        single=False,
        pull_message=None,
    )
    assert mock_session.call_args[0][0] is conf


def test_find_root_outside_repository(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that running outside a git working tree is fatal."""
    mocker.patch("gsync.cli.console")
    mocker.patch.object(Path, "cwd", return_value=tmp_path)

    with pytest.raises(SystemExit):
        cli.find_root()


def test_setup_logging_writes_to_rotating_file(
    tmp_path: Path, mocker: MagicMock
) -> None:
    """Verifies that records land in the session log file."""
    log_file = tmp_path / "state" / "gsync.log"
    mocker.patch("gsync.cli.LOG_FILE", log_file)

    cli.setup_logging(verbose=False, max_log_size=1024)
    logging.getLogger("gsync").info("PUSHED site: feature_origin")
    for handler in logging.getLogger("gsync").handlers:
        handler.flush()

    assert "INFO: PUSHED site: feature_origin" in log_file.read_text()
