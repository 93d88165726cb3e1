"""Error types and exit code classification."""

from enum import IntEnum
from pathlib import Path


class ExitCode(IntEnum):
    """Process exit codes reported by the CLI."""

    OK = 0
    FAILURE = 1
    NOT_A_REPO = 2
    ALREADY_EXISTS = 3
    NOT_FOUND = 4

    @property
    def is_success(self) -> bool:
        """Check if this represents successful completion."""
        return self == ExitCode.OK


class TrenchError(Exception):
    """Base class for all errors raised by trench."""

    exit_code: ExitCode = ExitCode.FAILURE


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------


class GitError(TrenchError):
    """Base class for git adapter failures."""


class NotARepoError(GitError):
    exit_code = ExitCode.NOT_A_REPO

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(f"not a git repository: {self.path}")


class BranchAlreadyExistsError(GitError):
    exit_code = ExitCode.ALREADY_EXISTS

    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(f"branch already exists: {branch}")


class RemoteBranchAlreadyExistsError(GitError):
    exit_code = ExitCode.ALREADY_EXISTS

    def __init__(self, branch: str, remote: str):
        self.branch = branch
        self.remote = remote
        super().__init__(f"branch already exists on remote: {remote}/{branch}")


class BaseBranchNotFoundError(GitError):
    exit_code = ExitCode.NOT_FOUND

    def __init__(self, base: str):
        self.base = base
        super().__init__(f"base branch not found: {base}")


class WorktreeNotFoundError(GitError):
    exit_code = ExitCode.NOT_FOUND

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"worktree not found: {name}")


class VcsError(GitError):
    """Underlying git failure passed through unchanged."""


# ---------------------------------------------------------------------------
# State store
# ---------------------------------------------------------------------------


class StateError(TrenchError):
    """Base class for state store failures."""


class MigrationError(StateError):
    """Schema migration could not be applied."""


class RecordNotFoundError(StateError):
    exit_code = ExitCode.NOT_FOUND

    def __init__(self, table: str, record_id: int):
        self.table = table
        self.record_id = record_id
        super().__init__(f"{table} record with id {record_id} not found")


class CrossRepoEventError(StateError):
    def __init__(self, repo_id: int, worktree_id: int):
        self.repo_id = repo_id
        self.worktree_id = worktree_id
        super().__init__(f"worktree {worktree_id} does not belong to repo {repo_id}")


class WorktreePathTrackedError(StateError):
    """A recorded worktree, active or removed, already owns the path."""

    exit_code = ExitCode.ALREADY_EXISTS

    def __init__(self, path: Path, removed: bool):
        self.path = Path(path)
        self.removed = removed
        state = "a removed" if removed else "an active"
        super().__init__(
            f"worktree path already tracked by {state} worktree: {self.path} "
            "(choose another branch name or worktree template)"
        )


class RepoNotTrackedError(StateError):
    exit_code = ExitCode.NOT_FOUND

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(f"repository not tracked by trench: {self.path}")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigError(TrenchError):
    """Configuration file is unreadable or invalid."""


class ConfigExistsError(ConfigError):
    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(f"{self.path.name} already exists. Use --force to overwrite.")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class InvalidTagError(TrenchError):
    def __init__(self, argument: str, reason: str):
        self.argument = argument
        super().__init__(f"invalid tag argument '{argument}': {reason}")
