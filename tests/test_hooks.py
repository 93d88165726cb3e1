"""Tests for running whole hooks."""

import pytest

from trench.config import HookDefinition
from trench.hooks import HookContext, HookEvent, HookFailedError, HookTimeoutError, run_hook


@pytest.fixture
def context(temp_dir):
    repo = temp_dir / "repo"
    worktree = temp_dir / "worktree"
    repo.mkdir()
    worktree.mkdir()
    return HookContext(
        worktree_path=worktree,
        worktree_name="feature-auth",
        branch="feature/auth",
        repo_name="repo",
        repo_path=repo,
        base_branch="main",
    )


class TestHookEvent:
    """Tests for HookEvent."""

    def test_six_events(self):
        assert [e.value for e in HookEvent] == [
            "pre_create",
            "post_create",
            "pre_sync",
            "post_sync",
            "pre_remove",
            "post_remove",
        ]

    def test_is_pre(self):
        assert HookEvent.PRE_REMOVE.is_pre
        assert not HookEvent.POST_CREATE.is_pre


class TestHookContext:
    """Tests for hook environment variables."""

    def test_env_vars(self, context):
        env = context.env_vars(HookEvent.POST_CREATE)

        assert env == {
            "TRENCH_WORKTREE_PATH": str(context.worktree_path),
            "TRENCH_WORKTREE_NAME": "feature-auth",
            "TRENCH_BRANCH": "feature/auth",
            "TRENCH_REPO_NAME": "repo",
            "TRENCH_REPO_PATH": str(context.repo_path),
            "TRENCH_BASE_BRANCH": "main",
            "TRENCH_EVENT": "post_create",
        }

    def test_cwd_falls_back_to_repo(self, context):
        assert context.cwd == context.worktree_path

        context.worktree_path = context.worktree_path / "not-yet"
        assert context.cwd == context.repo_path


class TestRunHook:
    """Tests for run_hook."""

    def test_steps_run_in_order(self, context):
        (context.repo_path / ".env").write_text("A=1")
        hook = HookDefinition(
            copy=[".env"],
            run=["cat .env > from_run.txt"],
            shell="cat from_run.txt > from_shell.txt\necho $TRENCH_EVENT >> from_shell.txt",
        )

        result = run_hook(HookEvent.POST_CREATE, hook, context, source_dir=context.repo_path)

        assert [f.name for f in result.copy.copied] == [".env"]
        assert (context.worktree_path / "from_shell.txt").read_text() == "A=1post_create\n"
        assert [c.command for c in result.commands] == [hook.run[0], hook.shell]
        assert result.duration_secs >= 0

    def test_copy_skipped_without_source(self, context):
        (context.repo_path / ".env").write_text("A=1")
        hook = HookDefinition(copy=[".env"])

        result = run_hook(HookEvent.PRE_CREATE, hook, context)

        assert result.copy is None
        assert not (context.worktree_path / ".env").exists()

    def test_run_failure_skips_shell(self, context):
        hook = HookDefinition(run=["echo first", "exit 4"], shell="touch never")

        with pytest.raises(HookFailedError) as exc_info:
            run_hook(HookEvent.PRE_REMOVE, hook, context)

        error = exc_info.value
        assert error.event is HookEvent.PRE_REMOVE
        assert error.step == "run"
        assert error.exit_code == 4
        assert [c.command for c in error.result.commands] == ["echo first", "exit 4"]
        assert error.result.shell is None
        assert not (context.worktree_path / "never").exists()

    def test_shell_failure(self, context):
        hook = HookDefinition(run=["true"], shell="exit 9")

        with pytest.raises(HookFailedError) as exc_info:
            run_hook(HookEvent.POST_CREATE, hook, context)

        assert exc_info.value.step == "shell"
        assert exc_info.value.exit_code == 9
        assert len(exc_info.value.result.commands) == 2

    def test_timeout_covers_run_and_shell(self, context):
        hook = HookDefinition(run=["sleep 0.2"], shell="sleep 30", timeout_secs=1)

        with pytest.raises(HookTimeoutError) as exc_info:
            run_hook(HookEvent.POST_CREATE, hook, context)

        error = exc_info.value
        assert error.step == "shell"
        assert error.timeout_secs == 1
        assert error.exit_code == 1
        assert error.result.duration_secs < 10

    def test_default_timeout(self, context):
        hook = HookDefinition(run=["sleep 30"])

        with pytest.raises(HookTimeoutError) as exc_info:
            run_hook(HookEvent.POST_CREATE, hook, context, default_timeout_secs=1)

        assert exc_info.value.timeout_secs == 1
