"""Add, remove and show worktree tags."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..errors import InvalidTagError
from ..state import Database
from . import resolve_repo, resolve_worktree


class TagAction(str, Enum):
    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class TagOp:
    action: TagAction
    name: str


@dataclass
class TagResult:
    worktree_name: str
    tags: list[str]
    changed: bool


def parse_tag_args(args: list[str]) -> list[TagOp]:
    """Parse ``+name`` (add) and ``-name`` (remove) arguments.

    Raises:
        InvalidTagError: An argument has no prefix or an empty name.
    """
    ops = []
    for arg in args:
        if arg[:1] == "+":
            action = TagAction.ADD
        elif arg[:1] == "-":
            action = TagAction.REMOVE
        else:
            raise InvalidTagError(arg, "must start with '+' (add) or '-' (remove)")
        name = arg[1:]
        if not name:
            raise InvalidTagError(arg, "tag name cannot be empty")
        ops.append(TagOp(action, name))
    return ops


def execute(identifier: str, args: list[str], cwd: Path, db: Database) -> TagResult:
    """Apply tag operations to a worktree; with no ``args`` just list its tags."""
    ops = parse_tag_args(args)
    _, repo = resolve_repo(cwd, db)
    worktree = resolve_worktree(db, repo.id, identifier)

    for op in ops:
        if op.action is TagAction.ADD:
            db.add_tag(worktree.id, op.name)
        else:
            db.remove_tag(worktree.id, op.name)

    return TagResult(worktree_name=worktree.name, tags=db.list_tags(worktree.id), changed=bool(ops))
