"""Tests for the pull and teardown/fold flows."""

from pathlib import Path
from unittest.mock import MagicMock, call

import pytest

from gsync import ops
from gsync.config import SessionConfig
from gsync.git_wrapper import GitError, GitResult, Outcome
from gsync.repository import Repository

COMMENT = "gsync:auto:commit:feature:site"


@pytest.fixture
def git(mocker: MagicMock) -> MagicMock:
    mocker.patch("gsync.ops.console")
    return mocker.patch("gsync.repository.GitRepo").return_value


@pytest.fixture
def repository(tmp_path: Path) -> Repository:
    return Repository(root=tmp_path / "site", prepared_revision="prepared")


def test_pull_squashes_mirror_into_master(
    tmp_path: Path, git: MagicMock, repository: Repository
) -> None:
    """Verifies that pull checks out the working branch and commits the squash."""
    git.has_staged_changes.return_value = True
    conf = SessionConfig(branch="feature", root=tmp_path, pull_message="Ship it")

    assert ops.pull(repository, conf) == Outcome.SUCCEEDED

    git.checkout.assert_called_once_with("master")
    git.merge_squash.assert_called_once_with("feature")
    git.commit.assert_called_once_with("Ship it")


def test_pull_conflict_is_left_for_operator(
    tmp_path: Path, git: MagicMock, repository: Repository
) -> None:
    """Verifies that a conflicting merge is reported, not committed or aborted."""
    git.merge_squash.side_effect = GitError("CONFLICT (content)")
    conf = SessionConfig(branch="feature", root=tmp_path, pull_message="Ship it")

    assert ops.pull(repository, conf) == Outcome.IGNORED_FAILURE

    git.commit.assert_not_called()
    git.execute.assert_not_called()


def test_pull_with_nothing_to_merge(
    tmp_path: Path, git: MagicMock, repository: Repository
) -> None:
    """Verifies that an empty squash does not create an empty commit."""
    git.has_staged_changes.return_value = False
    conf = SessionConfig(branch="feature", root=tmp_path, pull_message="Ship it")

    assert ops.pull(repository, conf) == Outcome.NOT_APPLICABLE
    git.commit.assert_not_called()


def test_teardown_normal_mode_only_restores_branch(
    tmp_path: Path, git: MagicMock, repository: Repository
) -> None:
    """Verifies that without single mode the history is never rewritten."""
    git.rev_parse.return_value = "moved"
    conf = SessionConfig(branch="feature", root=tmp_path)

    assert ops.teardown(repository, conf) == Outcome.SUCCEEDED

    git.checkout.assert_called_once_with("master")
    git.rebase.assert_not_called()


def test_teardown_update_mode_never_folds(
    tmp_path: Path, git: MagicMock, repository: Repository
) -> None:
    """Verifies that plain update mode leaves the working branch history alone."""
    git.rev_parse.return_value = "moved"
    conf = SessionConfig(branch="feature", root=tmp_path, update=True)

    assert ops.teardown(repository, conf) == Outcome.SUCCEEDED

    git.checkout.assert_called_once_with("master")
    git.rebase.assert_not_called()


def test_teardown_single_mode_skips_fold_when_unchanged(
    tmp_path: Path, git: MagicMock, repository: Repository
) -> None:
    """Verifies that a session without commits leaves the working branch alone."""
    git.rev_parse.return_value = "prepared"
    conf = SessionConfig(branch="feature", root=tmp_path, update=True, single=True)

    assert ops.teardown(repository, conf) == Outcome.SUCCEEDED
    git.rebase.assert_not_called()


def test_teardown_folds_auto_commits(
    tmp_path: Path, git: MagicMock, repository: Repository
) -> None:
    """Verifies the rebase + reset loop collapses stacked auto-commits into one."""
    git.rev_parse.return_value = "moved"
    # HEAD~1 is an auto-commit twice, then the operator's last real commit.
    git.commit_message.side_effect = [COMMENT, COMMENT, "Add login form"]
    conf = SessionConfig(branch="feature", root=tmp_path, update=True, single=True)

    assert ops.teardown(repository, conf) == Outcome.SUCCEEDED

    git.checkout.assert_called_once_with("master")
    git.rebase.assert_called_once_with("feature")
    assert git.reset_soft.call_args_list == [call("HEAD^"), call("HEAD^")]
    git.amend_no_edit.assert_called_once()


def test_teardown_fold_failure_keeps_master_checked_out(
    tmp_path: Path, git: MagicMock, repository: Repository
) -> None:
    """Verifies that a failed fold is reported and the rebase is abandoned."""
    git.rev_parse.return_value = "moved"
    git.rebase.side_effect = GitError("conflict")
    git.execute.return_value = GitResult(ok=True)
    conf = SessionConfig(branch="feature", root=tmp_path, update=True, single=True)

    assert ops.teardown(repository, conf) == Outcome.IGNORED_FAILURE

    git.checkout.assert_called_once_with("master")
    git.execute.assert_called_once_with(["rebase", "--abort"])
    git.amend_no_edit.assert_not_called()


def test_teardown_checkout_failure(
    tmp_path: Path, git: MagicMock, repository: Repository
) -> None:
    """Verifies that a failed checkout is reported without attempting a fold."""
    git.checkout.side_effect = GitError("local changes would be overwritten")
    conf = SessionConfig(branch="feature", root=tmp_path, update=True, single=True)

    assert ops.teardown(repository, conf) == Outcome.IGNORED_FAILURE
    git.rebase.assert_not_called()
