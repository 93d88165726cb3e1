"""List managed and unmanaged worktrees of the current repository."""

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .. import git
from ..errors import GitError
from ..state import Database, Worktree

logger = logging.getLogger(__name__)


@dataclass
class ListEntry:
    name: str
    branch: str
    path: str
    base_branch: str | None = None
    managed: bool = True
    tags: list[str] = field(default_factory=list)
    ahead: int | None = None
    behind: int | None = None
    dirty: int | None = None

    @property
    def status(self) -> str:
        if self.dirty is None:
            return "-"
        return "clean" if self.dirty == 0 else f"~{self.dirty}"

    @property
    def ahead_behind(self) -> str:
        if self.ahead is None or self.behind is None:
            return "-"
        return f"+{self.ahead}/-{self.behind}"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("base_branch")
        data["status"] = self.status
        return data

    def porcelain_fields(self) -> list[str]:
        return [
            self.name,
            self.branch,
            self.path,
            self.status,
            "-" if self.ahead is None else str(self.ahead),
            "-" if self.behind is None else str(self.behind),
            "-" if self.dirty is None else str(self.dirty),
            "true" if self.managed else "false",
        ]


def _canonical(path: str | Path) -> Path:
    path = Path(path)
    try:
        return path.resolve(strict=True)
    except OSError:
        return path


def _managed_entry(db: Database, worktree: Worktree) -> ListEntry:
    return ListEntry(
        name=worktree.name,
        branch=worktree.branch,
        path=worktree.path,
        base_branch=worktree.base_branch,
        managed=True,
        tags=db.list_tags(worktree.id),
    )


def _add_status(repo_path: Path, entry: ListEntry) -> None:
    if entry.branch:
        try:
            counts = git.ahead_behind(repo_path, entry.branch, entry.base_branch)
        except GitError as e:
            logger.warning("ahead/behind for '%s': %s", entry.branch, e)
            counts = None
        if counts is not None:
            entry.ahead, entry.behind = counts

    try:
        entry.dirty = git.dirty_count(Path(entry.path))
    except GitError as e:
        logger.warning("dirty count for '%s': %s", entry.path, e)


def execute(
    cwd: Path,
    db: Database,
    tag: str | None = None,
    with_status: bool = False,
) -> list[ListEntry]:
    """Managed worktrees first, then worktrees git knows that trench does not.

    With ``tag`` only managed worktrees carrying it are listed. With
    ``with_status`` each entry gets ahead/behind counts and a dirty count.
    """
    info = git.discover(cwd)
    repo = db.get_repo_by_path(info.path)

    managed: list[Worktree] = []
    if repo is not None:
        managed = db.list_worktrees_by_tag(repo.id, tag) if tag else db.list_worktrees(repo.id)

    entries = [_managed_entry(db, worktree) for worktree in managed]

    if tag is None:
        known = {_canonical(worktree.path) for worktree in managed}
        for found in git.list_worktrees(info.path):
            if _canonical(found.path) in known:
                continue
            entries.append(
                ListEntry(
                    name=found.name,
                    branch=found.branch or "",
                    path=str(found.path),
                    managed=False,
                )
            )

    if with_status:
        for entry in entries:
            _add_status(info.path, entry)

    return entries
