"""Git operations using GitPython."""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .errors import (
    BaseBranchNotFoundError,
    BranchAlreadyExistsError,
    NotARepoError,
    RemoteBranchAlreadyExistsError,
    VcsError,
    WorktreeNotFoundError,
)

logger = logging.getLogger(__name__)

DEFAULT_REMOTE = "origin"
FALLBACK_BRANCH = "main"


@dataclass
class RepoInfo:
    """A discovered repository."""

    name: str
    path: Path
    remote_url: str | None
    default_branch: str


@dataclass
class WorktreeEntry:
    """A working tree as git sees it."""

    name: str
    path: Path
    branch: str | None
    is_main: bool


def _open(repo_path: Path) -> Repo:
    try:
        return Repo(repo_path)
    except (InvalidGitRepositoryError, NoSuchPathError) as e:
        raise NotARepoError(repo_path) from e


def _ref_exists(repo: Repo, ref: str) -> bool:
    """Check a fully qualified ref (``refs/heads/x``) without raising."""
    try:
        repo.git.show_ref("--verify", "--quiet", ref)
    except GitCommandError:
        return False
    return True


def _has_remote(repo: Repo, remote: str) -> bool:
    return any(r.name == remote for r in repo.remotes)


def discover(path: Path) -> RepoInfo:
    """Find the repository containing ``path``.

    Walks up from ``path`` to the repository root. From inside a linked
    worktree the main working tree is returned, so every checkout of one
    repository maps to the same root.

    Raises:
        NotARepoError: No repository was found, it is bare, or its root
            cannot be canonicalized.
    """
    try:
        repo = Repo(path, search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError) as e:
        raise NotARepoError(path) from e

    if repo.bare or repo.working_tree_dir is None:
        raise NotARepoError(path)

    common_dir = Path(repo.common_dir)
    if common_dir.name == ".git":
        workdir = common_dir.parent
    else:
        workdir = Path(repo.working_tree_dir)

    try:
        root = workdir.resolve(strict=True)
    except OSError as e:
        raise NotARepoError(path) from e

    remote_url = None
    if _has_remote(repo, DEFAULT_REMOTE):
        remote_url = repo.remote(DEFAULT_REMOTE).url

    try:
        default_branch = Repo(root).active_branch.name
    except TypeError:
        # Detached HEAD
        default_branch = FALLBACK_BRANCH

    return RepoInfo(
        name=root.name,
        path=root,
        remote_url=remote_url,
        default_branch=default_branch,
    )


def _refresh_remote(repo: Repo, remote: str) -> None:
    """Fetch and prune remote-tracking refs, tolerating failure.

    Offline machines and unreachable remotes keep using cached refs.
    """
    if not _has_remote(repo, remote):
        return
    try:
        repo.git.fetch(remote, "--prune")
    except GitCommandError as e:
        logger.debug("fetch %s failed, using cached refs: %s", remote, e)


def create_worktree(repo_path: Path, branch: str, base: str, target_path: Path) -> None:
    """Create ``branch`` from ``base`` and check it out at ``target_path``.

    The branch and the worktree are created together or not at all: when
    adding the worktree fails, the freshly created branch is deleted before
    the error is raised.

    Raises:
        BranchAlreadyExistsError: ``branch`` exists locally.
        RemoteBranchAlreadyExistsError: ``origin/<branch>`` exists.
        BaseBranchNotFoundError: ``base`` is neither a local nor an origin branch.
        VcsError: git failed while creating the branch or worktree.
    """
    repo = _open(repo_path)

    if _ref_exists(repo, f"refs/heads/{branch}"):
        raise BranchAlreadyExistsError(branch)

    _refresh_remote(repo, DEFAULT_REMOTE)

    if _ref_exists(repo, f"refs/remotes/{DEFAULT_REMOTE}/{branch}"):
        raise RemoteBranchAlreadyExistsError(branch, DEFAULT_REMOTE)

    for candidate in (f"refs/heads/{base}", f"refs/remotes/{DEFAULT_REMOTE}/{base}"):
        if _ref_exists(repo, candidate):
            base_commit = repo.commit(candidate).hexsha
            break
    else:
        raise BaseBranchNotFoundError(base)

    try:
        repo.git.branch(branch, base_commit)
    except GitCommandError as e:
        raise VcsError(str(e)) from e

    try:
        repo.git.worktree("add", str(target_path), branch)
    except GitCommandError as e:
        logger.debug("worktree add failed, deleting branch %s", branch)
        try:
            repo.git.branch("-D", branch)
        except GitCommandError as rollback_error:
            raise VcsError(
                f"failed to add worktree at {target_path}: {e}; "
                f"deleting branch {branch} also failed: {rollback_error}"
            ) from e
        raise VcsError(f"failed to add worktree at {target_path}: {e}") from e

    logger.debug("created worktree %s on %s from %s", target_path, branch, base)


def remove_worktree(repo_path: Path, worktree_path: Path) -> None:
    """Delete a worktree directory and prune git's bookkeeping for it.

    The branch checked out in the worktree is left alone.

    Raises:
        WorktreeNotFoundError: ``worktree_path`` does not exist.
    """
    worktree_path = Path(worktree_path)
    if not worktree_path.exists():
        raise WorktreeNotFoundError(str(worktree_path))

    repo = _open(repo_path)
    shutil.rmtree(worktree_path)
    try:
        repo.git.worktree("prune")
    except GitCommandError as e:
        raise VcsError(str(e)) from e


def delete_branch(repo_path: Path, branch: str, remote: str | None = None) -> None:
    """Delete a local branch and, when ``remote`` is given, its remote copy."""
    repo = _open(repo_path)
    try:
        if _ref_exists(repo, f"refs/heads/{branch}"):
            repo.git.branch("-D", branch)
        if remote is not None and _ref_exists(repo, f"refs/remotes/{remote}/{branch}"):
            repo.git.push(remote, "--delete", branch)
    except GitCommandError as e:
        raise VcsError(str(e)) from e


def _parse_worktree_list(output: str) -> list[dict[str, str]]:
    """Parse ``git worktree list --porcelain`` into one dict per worktree."""
    blocks: list[dict[str, str]] = []
    current: dict[str, str] = {}
    for line in output.splitlines():
        if line.startswith("worktree "):
            if current:
                blocks.append(current)
            current = {"path": line[len("worktree ") :]}
        elif line.startswith("HEAD "):
            current["head"] = line[len("HEAD ") :]
        elif line.startswith("branch "):
            current["branch"] = line[len("branch ") :].removeprefix("refs/heads/")
        elif line in ("bare", "detached"):
            current[line] = "1"
    if current:
        blocks.append(current)
    return blocks


def list_worktrees(repo_path: Path) -> list[WorktreeEntry]:
    """List the main working tree followed by every linked worktree."""
    repo = _open(repo_path)
    try:
        output = repo.git.worktree("list", "--porcelain")
    except GitCommandError as e:
        raise VcsError(str(e)) from e

    entries = []
    for index, block in enumerate(_parse_worktree_list(output)):
        if "bare" in block:
            continue
        path = Path(block["path"])
        if path.exists():
            path = path.resolve()
        entries.append(
            WorktreeEntry(
                name=path.name,
                path=path,
                branch=block.get("branch"),
                is_main=index == 0,
            )
        )
    return entries


def _upstream_of(repo: Repo, branch: str) -> str | None:
    try:
        return repo.git.rev_parse("--symbolic-full-name", f"{branch}@{{upstream}}").strip() or None
    except GitCommandError:
        return None


def ahead_behind(
    repo_path: Path,
    branch: str,
    base_override: str | None = None,
) -> tuple[int, int] | None:
    """Count commits unique to ``branch`` and to its reference branch.

    The reference is the branch's configured upstream, else the local
    ``base_override`` branch, else ``origin/<base_override>``. Returns None
    when no reference can be established.
    """
    repo = _open(repo_path)
    local = f"refs/heads/{branch}"
    if not _ref_exists(repo, local):
        return None

    reference = _upstream_of(repo, local)
    if reference is None and base_override:
        for candidate in (
            f"refs/heads/{base_override}",
            f"refs/remotes/{DEFAULT_REMOTE}/{base_override}",
        ):
            if _ref_exists(repo, candidate):
                reference = candidate
                break
    if reference is None:
        return None

    try:
        counts = repo.git.rev_list("--left-right", "--count", f"{local}...{reference}")
    except GitCommandError as e:
        raise VcsError(str(e)) from e
    ahead, behind = counts.split()
    return int(ahead), int(behind)


def dirty_count(worktree_path: Path) -> int:
    """Count modified, added, deleted, renamed and untracked paths."""
    repo = _open(worktree_path)
    try:
        status = repo.git.status("--porcelain", "--untracked-files=all")
    except GitCommandError as e:
        raise VcsError(str(e)) from e
    return sum(1 for line in status.splitlines() if line.strip())
