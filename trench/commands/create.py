"""Create a worktree for a new branch."""

import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .. import git
from ..config import HooksConfig, ResolvedConfig
from ..errors import TrenchError, WorktreePathTrackedError
from ..hooks import HookContext, HookEvent, HookFailedError, HookResult, run_hook
from ..paths import render_worktree_path, sanitize_branch
from ..state import Database, Worktree

logger = logging.getLogger(__name__)


@dataclass
class DryRunPlan:
    """What ``create`` would do, computed without touching anything."""

    branch: str
    base_branch: str
    worktree_path: Path
    repo_name: str
    hooks: HooksConfig | None = None

    def to_dict(self) -> dict[str, Any]:
        hooks = None
        if self.hooks is not None:
            hooks = self.hooks.model_dump(by_alias=True, exclude_none=True)
        return {
            "dry_run": True,
            "branch": self.branch,
            "base_branch": self.base_branch,
            "worktree_path": str(self.worktree_path),
            "repo_name": self.repo_name,
            "hooks": hooks,
        }


@dataclass
class CreateResult:
    worktree: Worktree
    path: Path
    hooks: list[HookResult] = field(default_factory=list)
    post_hook_error: HookFailedError | None = None


def _target(info: git.RepoInfo, branch: str, config: ResolvedConfig) -> Path:
    relative = render_worktree_path(config.worktree_template, info.name, branch)
    return config.worktree_root / relative


def _base(info: git.RepoInfo, from_: str | None, config: ResolvedConfig) -> str:
    return from_ or config.default_base or info.default_branch


def plan(branch: str, from_: str | None, cwd: Path, config: ResolvedConfig) -> DryRunPlan:
    """Resolve repo, base and path for ``--dry-run``. No git, store or hook activity."""
    info = git.discover(cwd)
    return DryRunPlan(
        branch=branch,
        base_branch=_base(info, from_, config),
        worktree_path=_target(info, branch, config),
        repo_name=info.name,
        hooks=config.hooks,
    )


def _check_path_free(db: Database, target: Path) -> None:
    existing = db.get_worktree_by_path(target.resolve())
    if existing is not None:
        raise WorktreePathTrackedError(Path(existing.path), removed=existing.is_removed)


def _undo_create(info: git.RepoInfo, branch: str, target: Path) -> None:
    """Remove the worktree and branch ``create`` just made, logging failures."""
    try:
        if target.exists():
            git.remove_worktree(info.path, target)
        git.delete_branch(info.path, branch)
    except TrenchError as e:
        logger.warning("could not undo worktree %s on %s: %s", target, branch, e)


def _record(
    db: Database,
    info: git.RepoInfo,
    name: str,
    branch: str,
    base: str,
    target: Path,
) -> Worktree:
    repo = db.get_repo_by_path(info.path)
    if repo is None:
        repo = db.insert_repo(info.name, info.path, info.default_branch)
    worktree = db.insert_worktree(repo.id, name, branch, target, base_branch=base)
    db.insert_event(repo.id, worktree.id, "created", {"branch": branch, "base": base})
    logger.debug("recorded worktree %s (id=%d)", worktree.name, worktree.id)
    return worktree


def execute(
    branch: str,
    from_: str | None,
    cwd: Path,
    db: Database,
    config: ResolvedConfig,
) -> CreateResult:
    """Create ``branch`` from its base and check it out in a new worktree.

    Steps: discover the repo, render the target path, refuse a path the
    store already records, run ``pre_create`` (failure cancels), create
    branch and worktree, record repo, worktree and a ``created`` event,
    then run ``post_create`` with the repo root as the copy source.

    When recording fails the new worktree and branch are removed again
    before the error is raised. A ``post_create`` failure leaves the
    worktree in place and is returned in ``post_hook_error``.

    Raises:
        NotARepoError: ``cwd`` is not inside a repository.
        WorktreePathTrackedError: A recorded worktree owns the target path.
        BranchAlreadyExistsError: The branch exists locally.
        RemoteBranchAlreadyExistsError: The branch exists on origin.
        BaseBranchNotFoundError: The base branch cannot be found.
        HookFailedError: ``pre_create`` failed.
    """
    info = git.discover(cwd)
    target = _target(info, branch, config)
    base = _base(info, from_, config)
    name = sanitize_branch(branch)
    _check_path_free(db, target)

    hook_results: list[HookResult] = []
    context = HookContext(
        worktree_path=target,
        worktree_name=name,
        branch=branch,
        repo_name=info.name,
        repo_path=info.path,
        base_branch=base,
    )

    pre_hook = config.hook(HookEvent.PRE_CREATE)
    if pre_hook is not None:
        hook_results.append(
            run_hook(
                HookEvent.PRE_CREATE,
                pre_hook,
                context,
                default_timeout_secs=config.hook_timeout_secs,
            )
        )

    target.parent.mkdir(parents=True, exist_ok=True)
    git.create_worktree(info.path, branch, base, target)
    target = target.resolve()
    context.worktree_path = target

    try:
        worktree = _record(db, info, name, branch, base, target)
    except (TrenchError, sqlite3.Error):
        _undo_create(info, branch, target)
        raise

    result = CreateResult(worktree=worktree, path=target, hooks=hook_results)

    post_hook = config.hook(HookEvent.POST_CREATE)
    if post_hook is not None:
        try:
            result.hooks.append(
                run_hook(
                    HookEvent.POST_CREATE,
                    post_hook,
                    context,
                    source_dir=info.path,
                    default_timeout_secs=config.hook_timeout_secs,
                )
            )
        except HookFailedError as e:
            result.hooks.append(e.result)
            result.post_hook_error = e

    return result
