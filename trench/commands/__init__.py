"""Orchestration of worktree operations across git, the store and hooks."""

from pathlib import Path

from ..errors import RepoNotTrackedError, WorktreeNotFoundError
from ..git import RepoInfo, discover
from ..hooks import HookContext
from ..paths import sanitize_branch
from ..state import Database, Repo, Worktree


def resolve_repo(cwd: Path, db: Database) -> tuple[RepoInfo, Repo]:
    """Discover the repo at ``cwd`` and load its store record.

    Raises:
        NotARepoError: ``cwd`` is not inside a repository.
        RepoNotTrackedError: trench has never created a worktree here.
    """
    info = discover(cwd)
    repo = db.get_repo_by_path(info.path)
    if repo is None:
        raise RepoNotTrackedError(info.path)
    return info, repo


def resolve_worktree(db: Database, repo_id: int, identifier: str) -> Worktree:
    """Find an active worktree by name or branch, then by the sanitized identifier."""
    worktree = db.find_worktree_by_identifier(repo_id, identifier)
    if worktree is None:
        sanitized = sanitize_branch(identifier)
        if sanitized != identifier:
            worktree = db.find_worktree_by_identifier(repo_id, sanitized)
    if worktree is None:
        raise WorktreeNotFoundError(identifier)
    return worktree


def hook_context(info: RepoInfo, worktree: Worktree) -> HookContext:
    return HookContext(
        worktree_path=Path(worktree.path),
        worktree_name=worktree.name,
        branch=worktree.branch,
        repo_name=info.name,
        repo_path=info.path,
        base_branch=worktree.base_branch,
    )
