"""Switch to a managed worktree."""

import time
from dataclasses import dataclass
from pathlib import Path

from ..state import Database, WorktreeUpdate
from . import resolve_repo, resolve_worktree

CURRENT_WORKTREE_KEY = "current_worktree"


@dataclass
class SwitchResult:
    name: str
    path: Path


def execute(identifier: str, cwd: Path, db: Database) -> SwitchResult:
    """Resolve ``identifier``, mark the worktree as accessed and remember it.

    The returned path is printed by the CLI so a shell wrapper can ``cd``.
    """
    _, repo = resolve_repo(cwd, db)
    worktree = resolve_worktree(db, repo.id, identifier)
    db.update_worktree(worktree.id, WorktreeUpdate(last_accessed=int(time.time())))
    db.set_session(CURRENT_WORKTREE_KEY, worktree.name)
    return SwitchResult(name=worktree.name, path=Path(worktree.path))
