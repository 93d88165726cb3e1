"""Remove a managed worktree."""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from .. import git
from ..config import ResolvedConfig
from ..hooks import HookEvent, HookFailedError, HookResult, run_hook
from ..state import Database, Worktree, WorktreeUpdate
from . import hook_context, resolve_repo, resolve_worktree

logger = logging.getLogger(__name__)


@dataclass
class RemoveResult:
    worktree: Worktree
    branch_deleted: bool = False
    hooks: list[HookResult] = field(default_factory=list)
    post_hook_error: HookFailedError | None = None


def execute(
    identifier: str,
    cwd: Path,
    db: Database,
    config: ResolvedConfig,
    prune: bool = False,
) -> RemoveResult:
    """Remove the worktree matching ``identifier`` (name or branch).

    The directory is deleted and git's worktree bookkeeping pruned; the
    store row is soft-deleted and a ``removed`` event recorded. The branch
    is kept unless ``prune`` or ``git.auto_prune`` is set, in which case
    it is deleted locally and on origin.

    Raises:
        RepoNotTrackedError: trench has no record of this repository.
        WorktreeNotFoundError: No active worktree matches ``identifier``.
        HookFailedError: ``pre_remove`` failed; nothing was removed.
    """
    info, repo = resolve_repo(cwd, db)
    worktree = resolve_worktree(db, repo.id, identifier)
    context = hook_context(info, worktree)
    result = RemoveResult(worktree=worktree)

    pre_hook = config.hook(HookEvent.PRE_REMOVE)
    if pre_hook is not None:
        result.hooks.append(
            run_hook(
                HookEvent.PRE_REMOVE,
                pre_hook,
                context,
                default_timeout_secs=config.hook_timeout_secs,
            )
        )

    worktree_path = Path(worktree.path)
    if worktree_path.exists():
        git.remove_worktree(info.path, worktree_path)
    else:
        logger.debug("worktree directory %s already gone", worktree_path)

    result.worktree = db.update_worktree(worktree.id, WorktreeUpdate(removed_at=int(time.time())))
    db.insert_event(repo.id, worktree.id, "removed", {"branch": worktree.branch})

    if prune or config.auto_prune:
        git.delete_branch(info.path, worktree.branch, remote=git.DEFAULT_REMOTE)
        result.branch_deleted = True

    post_hook = config.hook(HookEvent.POST_REMOVE)
    if post_hook is not None:
        try:
            result.hooks.append(
                run_hook(
                    HookEvent.POST_REMOVE,
                    post_hook,
                    context,
                    default_timeout_secs=config.hook_timeout_secs,
                )
            )
        except HookFailedError as e:
            result.hooks.append(e.result)
            result.post_hook_error = e

    return result
