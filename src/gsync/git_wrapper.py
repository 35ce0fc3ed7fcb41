import enum
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class GitError(RuntimeError):
    """Raised when a git command exits with a non-zero status."""


class PushError(GitError):
    """Raised when the mirror branch cannot be pushed to its remote."""


class Outcome(enum.Enum):
    """Result of a best-effort operation.

    Attributes:
        SUCCEEDED: The operation ran and git reported success.
        NOT_APPLICABLE: There was nothing to do (e.g. the branch did not exist).
        IGNORED_FAILURE: git failed, and the failure is a valid outcome.
    """

    SUCCEEDED = "succeeded"
    NOT_APPLICABLE = "not-applicable"
    IGNORED_FAILURE = "ignored-failure"


@dataclass(frozen=True)
class GitResult:
    """The captured result of a single git invocation.

    Attributes:
        ok (bool): True if the command exited with status 0.
        output (str): Trimmed stdout on success, trimmed stderr (or stdout) on failure.
        returncode (int): The exit status, or -1 if the process could not be spawned.
    """

    ok: bool
    output: str = ""
    returncode: int = 0

    def __bool__(self) -> bool:
        return self.ok


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    Every command runs with the repository root as an explicit working directory,
    so several instances (a superproject and its submodules) can be driven from
    one process without ever changing the process-wide cwd.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git entry.
        """
        self.path = path
        # Submodules carry a `.git` file rather than a directory.
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    def execute(self, args: list[str], quiet: bool = True) -> GitResult:
        """Runs a git command and reports the outcome without raising.

        Args:
            args (list[str]): Arguments to pass to the git command.
            quiet (bool, optional): Capture the child's output. When False the
                                    child inherits this process's streams.
                                    Defaults to True.

        Returns:
            GitResult: Success flag, trimmed output and exit status.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=quiet,
                text=True,
            )
        except OSError as e:
            logger.debug(f"Could not spawn git {' '.join(args)}: {e}")
            return GitResult(ok=False, output=str(e), returncode=-1)

        if res.returncode != 0:
            detail = ((res.stderr or "") or (res.stdout or "")).strip() if quiet else ""
            return GitResult(ok=False, output=detail, returncode=res.returncode)
        return GitResult(ok=True, output=(res.stdout or "").strip() if quiet else "")

    def _run(self, args: list[str], quiet: bool = True) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            quiet (bool, optional): Whether to capture and return stdout.
                                    Defaults to True.

        Returns:
            str: The stripped stdout of the command when captured, otherwise ''.

        Raises:
            GitError: If the git command returns a non-zero exit code.
        """
        res = self.execute(args, quiet=quiet)
        if not res.ok:
            raise GitError(
                f"git {' '.join(args)} failed ({res.returncode}): {res.output}"
            )
        return res.output

    def _query(self, args: list[str]) -> str | None:
        """Runs a read-only query, mapping failure to None."""
        res = self.execute(args)
        return res.output if res.ok and res.output else None

    # --- Queries ---

    def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision to a full SHA-1 hash.

        Args:
            rev (str): The revision to parse (e.g., 'HEAD', 'master').

        Returns:
            Optional[str]: The full SHA-1 hash, or None if it could not be resolved.
        """
        return self._query(["rev-parse", rev])

    def status_porcelain(self) -> list[str]:
        """Returns the lines of `git status --porcelain`."""
        output = self._query(["status", "--porcelain"])
        return output.splitlines() if output else []

    def remote_url(self, remote: str) -> str | None:
        """Returns the configured URL of a remote, or None if it is not configured."""
        return self._query(["config", "--get", f"remote.{remote}.url"])

    def tracking_remote(self, branch: str) -> str | None:
        """Returns the name of the remote a local branch tracks, if any."""
        return self._query(["config", "--get", f"branch.{branch}.remote"])

    def branch_exists(self, branch: str) -> bool:
        """Checks whether a local branch (or any revision) can be verified."""
        return self.execute(["rev-parse", "--verify", branch]).ok

    def show_toplevel(self) -> Path | None:
        """Returns the root of the working tree containing this path."""
        output = self._query(["rev-parse", "--show-toplevel"])
        return Path(output) if output else None

    def commit_message(self, rev: str) -> str:
        """Returns the full message body of a commit.

        Raises:
            GitError: If the revision does not exist.
        """
        return self._run(["log", "--format=%B", "-n", "1", rev])

    def submodules(self) -> list[tuple[str, str]]:
        """Lists submodules declared in `.gitmodules`.

        Returns:
            list[tuple[str, str]]: (name, relative path) pairs in manifest order.
                                   Empty if there is no manifest.
        """
        if not (self.path / ".gitmodules").exists():
            return []
        output = self._query(
            ["config", "--file", ".gitmodules", "--get-regexp", r"\.path$"]
        )
        if not output:
            return []

        modules = []
        for line in output.splitlines():
            key, _, rel_path = line.strip().partition(" ")
            # submodule.<name>.path <path>
            if not key.startswith("submodule.") or not rel_path:
                continue
            name = key[len("submodule.") : -len(".path")]
            modules.append((name, rel_path.strip()))
        return modules

    def config_get(self, key: str) -> str | None:
        """Reads a repository-local config value."""
        return self._query(["config", "--local", "--get", key])

    def config_set(self, key: str, value: str) -> None:
        """Writes a repository-local config value."""
        self._run(["config", "--local", key, value])

    # --- Mutations ---

    def remote_add(self, remote: str, uri: str) -> None:
        """Registers a new remote."""
        self._run(["remote", "add", remote, uri])

    def remote_set_url(self, remote: str, uri: str) -> None:
        """Points an existing remote at a new URI."""
        self._run(["remote", "set-url", remote, uri])

    def checkout(self, branch: str) -> None:
        """Checks out a branch."""
        self._run(["checkout", branch])

    def try_checkout(self, branch: str) -> Outcome:
        """Checks out a branch, tolerating failure (e.g. the branch is missing).

        Returns:
            Outcome: SUCCEEDED or IGNORED_FAILURE.
        """
        res = self.execute(["checkout", branch])
        if res.ok:
            return Outcome.SUCCEEDED
        logger.debug(f"Checkout of '{branch}' in {self.path.name} ignored: {res.output}")
        return Outcome.IGNORED_FAILURE

    def delete_branch(self, branch: str, exists: bool = True) -> Outcome:
        """Force-deletes a local branch on a best-effort basis.

        Args:
            branch (str): The branch to delete.
            exists (bool, optional): Whether the branch is known to exist.
                                     Defaults to True.

        Returns:
            Outcome: NOT_APPLICABLE if the branch does not exist, otherwise
                     SUCCEEDED or IGNORED_FAILURE.
        """
        if not exists:
            return Outcome.NOT_APPLICABLE
        res = self.execute(["branch", "-D", branch])
        if res.ok:
            return Outcome.SUCCEEDED
        logger.debug(f"Deleting '{branch}' in {self.path.name} ignored: {res.output}")
        return Outcome.IGNORED_FAILURE

    def create_branch(
        self, branch: str, start: str | None = None, track: bool = False
    ) -> None:
        """Creates a local branch.

        Args:
            branch (str): The new branch name.
            start (Optional[str], optional): The start point. Defaults to HEAD.
            track (bool, optional): Set up tracking of `start` (`-t`).
                                    Defaults to False.
        """
        cmd = ["branch", branch]
        if start:
            if track:
                cmd.append("-t")
            cmd.append(start)
        self._run(cmd)

    def fetch(self, remote: str) -> None:
        """Fetches all refs of a remote."""
        self._run(["fetch", remote])

    def push(
        self,
        remote: str,
        refspec: str,
        force: bool = False,
        set_upstream: bool = False,
    ) -> None:
        """Pushes a refspec to a remote.

        Raises:
            PushError: If git rejects the push or the remote is unreachable.
        """
        cmd = ["push"]
        if set_upstream:
            cmd.append("-u")
        cmd.extend([remote, refspec])
        if force:
            cmd.append("--force")
        cmd.append("-q")
        res = self.execute(cmd)
        if not res.ok:
            raise PushError(f"git push {remote} {refspec} failed: {res.output}")

    def add_all(self) -> None:
        """Stages all changes, including deletions and untracked files."""
        self._run(["add", "-A"])

    def has_staged_changes(self) -> bool:
        """Returns True if the index differs from HEAD."""
        return not self.execute(["diff", "--cached", "--quiet"]).ok

    def commit(self, message: str, amend: bool = False) -> None:
        """Creates a commit, or amends HEAD in place.

        Args:
            message (str): The commit message.
            amend (bool, optional): Replace HEAD instead of adding a commit.
                                    Defaults to False.
        """
        cmd = ["commit"]
        if amend:
            cmd.append("--amend")
        cmd.extend(["-q", "-m", message])
        self._run(cmd)

    def amend_no_edit(self) -> None:
        """Folds the index into HEAD, keeping its message."""
        self._run(["commit", "--amend", "--no-edit"])

    def merge_squash(self, branch: str) -> None:
        """Squash-merges a branch into HEAD. Changes are staged, not committed."""
        self._run(["merge", "--squash", branch])

    def rebase(self, upstream: str) -> None:
        """Rebases the current branch onto `upstream` without an editor."""
        self._run(["rebase", upstream])

    def reset_soft(self, rev: str) -> None:
        """Moves HEAD to `rev`, keeping the index and working tree."""
        self._run(["reset", "--soft", rev])
