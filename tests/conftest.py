"""Pytest fixtures for trench tests."""

import subprocess
import tempfile
from pathlib import Path

import pytest

from trench.config import DEFAULT_HOOK_TIMEOUT_SECS, ResolvedConfig, reset_settings
from trench.paths import DEFAULT_WORKTREE_TEMPLATE
from trench.state import Database


def run_git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def _configure_identity(path: Path) -> None:
    run_git(path, "config", "user.email", "test@test.com")
    run_git(path, "config", "user.name", "Test")
    run_git(path, "config", "commit.gpgsign", "false")


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def git():
    """Run a git command and return its stripped stdout."""
    return run_git


@pytest.fixture
def temp_git_repo(temp_dir):
    """Create a repository with one commit on ``main``."""
    repo = temp_dir / "repo"
    repo.mkdir()
    run_git(repo, "init")
    _configure_identity(repo)

    (repo / "README.md").write_text("# Test")
    run_git(repo, "add", ".")
    run_git(repo, "commit", "-m", "Initial commit")
    run_git(repo, "branch", "-M", "main")

    return repo


@pytest.fixture
def remote_repo(temp_dir, temp_git_repo):
    """Bare ``origin`` for ``temp_git_repo``, with ``main`` pushed."""
    remote = temp_dir / "remote.git"
    run_git(temp_dir, "init", "--bare", str(remote))
    run_git(temp_git_repo, "remote", "add", "origin", str(remote))
    run_git(temp_git_repo, "push", "-u", "origin", "main")
    return remote


@pytest.fixture
def worktree_root(temp_dir):
    root = temp_dir / "worktrees"
    root.mkdir()
    return root


@pytest.fixture
def db():
    """In-memory store, closed after the test."""
    database = Database.open_in_memory()
    yield database
    database.close()


@pytest.fixture
def config(worktree_root):
    """Resolved config with no hooks, rooted in the temp directory."""
    return ResolvedConfig(
        worktree_root=worktree_root,
        worktree_template=DEFAULT_WORKTREE_TEMPLATE,
        default_base=None,
        auto_prune=False,
        hook_timeout_secs=DEFAULT_HOOK_TIMEOUT_SECS,
        hooks=None,
    )


@pytest.fixture
def trench_env(temp_dir, worktree_root, monkeypatch):
    """Point Settings at the temp directory and reset the cached instance."""
    monkeypatch.setenv("TRENCH_DATA_DIR", str(temp_dir / "data"))
    monkeypatch.setenv("TRENCH_GLOBAL_CONFIG", str(temp_dir / "global.yaml"))
    monkeypatch.setenv("TRENCH_WORKTREE_ROOT", str(worktree_root))
    monkeypatch.delenv("TRENCH_DB_PATH", raising=False)
    reset_settings()
    yield temp_dir
    reset_settings()
