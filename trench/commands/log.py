"""Show the event history of a repository or one worktree."""

from pathlib import Path

from ..state import Database, Event
from . import resolve_repo, resolve_worktree

DEFAULT_LIMIT = 20


def execute(
    cwd: Path,
    db: Database,
    identifier: str | None = None,
    limit: int | None = DEFAULT_LIMIT,
) -> list[Event]:
    """Events newest first, optionally limited to the worktree ``identifier``."""
    _, repo = resolve_repo(cwd, db)
    worktree_id = None
    if identifier is not None:
        worktree_id = resolve_worktree(db, repo.id, identifier).id
    return db.list_events(repo.id, worktree_id=worktree_id, limit=limit)
