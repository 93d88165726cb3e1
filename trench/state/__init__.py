"""Persistent state for repos, worktrees, events, tags and session values."""

from .database import Database
from .migrations import LATEST_VERSION
from .models import UNCHANGED, Event, Repo, Worktree, WorktreeUpdate

__all__ = [
    "Database",
    "Event",
    "LATEST_VERSION",
    "Repo",
    "UNCHANGED",
    "Worktree",
    "WorktreeUpdate",
]
