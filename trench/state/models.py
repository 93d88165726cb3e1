"""Records stored in the trench database."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Final


class _Unchanged:
    """Marker for an update field that should be left as it is."""

    _instance: _Unchanged | None = None

    def __new__(cls) -> _Unchanged:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNCHANGED"

    def __bool__(self) -> bool:
        return False


UNCHANGED: Final = _Unchanged()


@dataclass
class Repo:
    id: int
    name: str
    path: str
    default_base: str | None
    created_at: int


@dataclass
class Worktree:
    id: int
    repo_id: int
    name: str
    branch: str
    path: str
    base_branch: str | None
    managed: bool
    adopted_at: int | None
    last_accessed: int | None
    removed_at: int | None
    created_at: int

    @property
    def is_removed(self) -> bool:
        return self.removed_at is not None


@dataclass
class Event:
    id: int
    repo_id: int
    worktree_id: int | None
    event_type: str
    payload: dict[str, Any] | None
    created_at: int


@dataclass
class WorktreeUpdate:
    """Partial update for a worktree row.

    Each field has three states: ``UNCHANGED`` (the default) leaves the
    column alone, ``None`` sets it to NULL and any other value is written.
    ``managed`` is not nullable, so it only accepts ``UNCHANGED`` or a bool.

    Example:
        WorktreeUpdate(base_branch=None)        # clear base_branch
        WorktreeUpdate(last_accessed=1700000000)
    """

    last_accessed: int | None | _Unchanged = field(default=UNCHANGED)
    adopted_at: int | None | _Unchanged = field(default=UNCHANGED)
    managed: bool | _Unchanged = field(default=UNCHANGED)
    base_branch: str | None | _Unchanged = field(default=UNCHANGED)
    removed_at: int | None | _Unchanged = field(default=UNCHANGED)

    def changes(self) -> dict[str, Any]:
        """Return the columns this update writes, in declaration order."""
        values = {
            "last_accessed": self.last_accessed,
            "adopted_at": self.adopted_at,
            "managed": self.managed,
            "base_branch": self.base_branch,
            "removed_at": self.removed_at,
        }
        return {column: value for column, value in values.items() if value is not UNCHANGED}
