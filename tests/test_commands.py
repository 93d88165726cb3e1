"""Tests for the worktree commands."""

from dataclasses import replace

import pytest

from trench.commands import create, init, list_cmd, log, remove, switch, tag
from trench.config import PROJECT_CONFIG_FILENAME, HookDefinition, HooksConfig
from trench.errors import (
    BranchAlreadyExistsError,
    ConfigError,
    ConfigExistsError,
    ExitCode,
    InvalidTagError,
    NotARepoError,
    RepoNotTrackedError,
    StateError,
    WorktreeNotFoundError,
    WorktreePathTrackedError,
)
from trench.hooks import HookFailedError


def _with_hooks(config, **hooks):
    return replace(config, hooks=HooksConfig(**hooks))


@pytest.fixture
def created(temp_git_repo, db, config):
    """A worktree for ``feature/auth`` created through the command."""
    return create.execute("feature/auth", None, temp_git_repo, db, config)


class TestCreate:
    """Tests for create."""

    def test_create_records_everything(self, temp_git_repo, db, config, worktree_root, created):
        expected = (worktree_root / "repo" / "feature-auth").resolve()

        assert created.path == expected
        assert (expected / "README.md").exists()
        repo = db.get_repo_by_path(temp_git_repo)
        assert repo.default_base == "main"
        worktree = db.get_worktree_by_path(expected)
        assert worktree.name == "feature-auth"
        assert worktree.branch == "feature/auth"
        assert worktree.base_branch == "main"
        events = db.list_events(repo.id)
        assert [(e.event_type, e.payload) for e in events] == [
            ("created", {"branch": "feature/auth", "base": "main"})
        ]

    def test_from_branch_and_default_base(self, temp_git_repo, db, config, git):
        git(temp_git_repo, "branch", "develop")

        explicit = create.execute("one", "develop", temp_git_repo, db, config)
        develop_config = replace(config, default_base="develop")
        configured = create.execute("two", None, temp_git_repo, db, develop_config)

        assert explicit.worktree.base_branch == "develop"
        assert configured.worktree.base_branch == "develop"

    def test_existing_branch(self, temp_git_repo, db, config, git):
        git(temp_git_repo, "branch", "taken")

        with pytest.raises(BranchAlreadyExistsError):
            create.execute("taken", None, temp_git_repo, db, config)
        assert db.get_repo_by_path(temp_git_repo) is None

    def test_not_a_repo(self, temp_dir, db, config):
        with pytest.raises(NotARepoError):
            create.execute("x", None, temp_dir, db, config)

    def test_bad_template(self, temp_git_repo, db, config):
        with pytest.raises(ConfigError):
            create.execute("x", None, temp_git_repo, db, replace(config, worktree_template="/abs"))

    def test_dry_run_touches_nothing(self, temp_git_repo, db, config, worktree_root, git):
        hooks = HooksConfig(post_create=HookDefinition(run=["make"]))

        plan = create.plan("feature/x", None, temp_git_repo, replace(config, hooks=hooks))

        assert plan.worktree_path == worktree_root / "repo" / "feature-x"
        assert plan.base_branch == "main"
        assert plan.to_dict()["hooks"] == {"post_create": {"run": ["make"]}}
        assert not plan.worktree_path.exists()
        assert git(temp_git_repo, "branch", "--list", "feature/x") == ""

    def test_post_create_copies_and_runs(self, temp_git_repo, db, config):
        (temp_git_repo / ".env").write_text("TOKEN=1")
        hooked = _with_hooks(
            config,
            post_create=HookDefinition(copy=[".env"], run=['echo "$TRENCH_BRANCH" > branch.txt']),
        )

        result = create.execute("feature/hooks", None, temp_git_repo, db, hooked)

        assert (result.path / ".env").read_text() == "TOKEN=1"
        assert (result.path / "branch.txt").read_text() == "feature/hooks\n"
        assert result.post_hook_error is None

    def test_pre_create_failure_cancels(self, temp_git_repo, db, config, worktree_root, git):
        hooked = _with_hooks(config, pre_create=HookDefinition(run=["exit 3"]))

        with pytest.raises(HookFailedError) as exc_info:
            create.execute("feature/no", None, temp_git_repo, db, hooked)

        assert exc_info.value.exit_code == 3
        assert git(temp_git_repo, "branch", "--list", "feature/no") == ""
        assert not (worktree_root / "repo" / "feature-no").exists()
        assert db.get_repo_by_path(temp_git_repo) is None

    def test_recreate_after_removal_refuses_before_git(
        self, temp_git_repo, db, config, created, git
    ):
        remove.execute("feature-auth", temp_git_repo, db, config, prune=True)
        hooked = _with_hooks(config, pre_create=HookDefinition(run=["touch pre-ran"]))

        with pytest.raises(WorktreePathTrackedError) as exc_info:
            create.execute("feature/auth", None, temp_git_repo, db, hooked)

        assert exc_info.value.removed is True
        assert exc_info.value.exit_code == ExitCode.ALREADY_EXISTS
        assert git(temp_git_repo, "branch", "--list", "feature/auth") == ""
        assert not created.path.exists()
        assert not (temp_git_repo / "pre-ran").exists()
        assert str(created.path) not in git(temp_git_repo, "worktree", "list")

    def test_store_failure_undoes_branch_and_worktree(
        self, temp_git_repo, db, config, worktree_root, git, monkeypatch
    ):
        def fail_insert_worktree(*args, **kwargs):
            raise StateError("disk full")

        monkeypatch.setattr(db, "insert_worktree", fail_insert_worktree)

        with pytest.raises(StateError, match="disk full"):
            create.execute("feature/undo", None, temp_git_repo, db, config)

        assert git(temp_git_repo, "branch", "--list", "feature/undo") == ""
        assert not (worktree_root / "repo" / "feature-undo").exists()
        assert "feature-undo" not in git(temp_git_repo, "worktree", "list")

        # The branch is free again once the store recovers
        monkeypatch.undo()
        result = create.execute("feature/undo", None, temp_git_repo, db, config)
        assert result.path.exists()

    def test_post_create_failure_keeps_worktree(self, temp_git_repo, db, config):
        hooked = _with_hooks(config, post_create=HookDefinition(run=["exit 5"]))

        result = create.execute("feature/kept", None, temp_git_repo, db, hooked)

        assert result.post_hook_error.exit_code == 5
        assert result.path.exists()
        assert db.get_worktree_by_path(result.path) is not None


class TestRemove:
    """Tests for remove."""

    def test_remove(self, temp_git_repo, db, config, created, git):
        result = remove.execute("feature-auth", temp_git_repo, db, config)

        assert not created.path.exists()
        assert result.worktree.removed_at is not None
        assert result.branch_deleted is False
        assert git(temp_git_repo, "branch", "--list", "feature/auth") != ""
        repo = db.get_repo_by_path(temp_git_repo)
        assert db.list_worktrees(repo.id) == []
        assert db.count_events(repo.id, event_type="removed") == 1

    def test_remove_by_branch_and_prune(self, temp_git_repo, db, config, created, git):
        result = remove.execute("feature/auth", temp_git_repo, db, config, prune=True)

        assert result.branch_deleted is True
        assert git(temp_git_repo, "branch", "--list", "feature/auth") == ""

    def test_auto_prune_from_config(self, temp_git_repo, db, config, created, git):
        remove.execute("feature-auth", temp_git_repo, db, replace(config, auto_prune=True))

        assert git(temp_git_repo, "branch", "--list", "feature/auth") == ""

    def test_directory_already_gone(self, temp_git_repo, db, config, created):
        import shutil

        shutil.rmtree(created.path)

        result = remove.execute("feature-auth", temp_git_repo, db, config)

        assert result.worktree.removed_at is not None

    def test_unknown_worktree(self, temp_git_repo, db, config, created):
        with pytest.raises(WorktreeNotFoundError):
            remove.execute("nope", temp_git_repo, db, config)

    def test_untracked_repo(self, temp_git_repo, db, config):
        with pytest.raises(RepoNotTrackedError):
            remove.execute("anything", temp_git_repo, db, config)

    def test_pre_remove_failure_cancels(self, temp_git_repo, db, config, created):
        hooked = _with_hooks(config, pre_remove=HookDefinition(shell="exit 2"))

        with pytest.raises(HookFailedError):
            remove.execute("feature-auth", temp_git_repo, db, hooked)

        assert created.path.exists()
        assert db.get_worktree_by_path(created.path).removed_at is None

    def test_post_remove_runs_in_repo_root(self, temp_git_repo, db, config, created):
        hooked = _with_hooks(
            config, post_remove=HookDefinition(run=["echo $TRENCH_EVENT > removed.txt"])
        )

        remove.execute("feature-auth", temp_git_repo, db, hooked)

        assert (temp_git_repo / "removed.txt").read_text() == "post_remove\n"


class TestSwitch:
    """Tests for switch."""

    def test_switch_updates_access_and_session(self, temp_git_repo, db, created):
        result = switch.execute("feature/auth", temp_git_repo, db)

        assert result.path == created.path
        assert result.name == "feature-auth"
        assert db.get_worktree(created.worktree.id).last_accessed is not None
        assert db.get_session("current_worktree") == "feature-auth"

    def test_switch_unknown(self, temp_git_repo, db, created):
        with pytest.raises(WorktreeNotFoundError):
            switch.execute("missing", temp_git_repo, db)


class TestList:
    """Tests for list."""

    def test_managed_and_unmanaged(self, temp_git_repo, db, created, worktree_root, git):
        manual = worktree_root / "manual"
        git(temp_git_repo, "worktree", "add", "-b", "manual", str(manual))

        entries = list_cmd.execute(temp_git_repo, db)

        assert (entries[0].name, entries[0].managed) == ("feature-auth", True)
        assert {(e.name, e.managed) for e in entries[1:]} == {("repo", False), ("manual", False)}
        assert len(entries) == 3
        assert entries[0].dirty is None

    def test_untracked_repo_lists_git_worktrees(self, temp_git_repo, db):
        entries = list_cmd.execute(temp_git_repo, db)

        assert [(e.name, e.branch, e.managed) for e in entries] == [("repo", "main", False)]

    def test_tag_filter_lists_managed_only(self, temp_git_repo, db, config, created):
        create.execute("other", None, temp_git_repo, db, config)
        tag.execute("feature-auth", ["+wip"], temp_git_repo, db)

        entries = list_cmd.execute(temp_git_repo, db, tag="wip")

        assert [(e.name, e.tags) for e in entries] == [("feature-auth", ["wip"])]

    def test_status(self, temp_git_repo, db, created, git):
        (created.path / "new.txt").write_text("x")
        git(created.path, "add", ".")
        git(created.path, "commit", "-m", "work")
        (created.path / "dirty.txt").write_text("y")

        entry = list_cmd.execute(temp_git_repo, db, with_status=True)[0]

        assert (entry.ahead, entry.behind, entry.dirty) == (1, 0, 1)
        assert entry.ahead_behind == "+1/-0"
        assert entry.status == "~1"
        assert entry.porcelain_fields() == [
            "feature-auth",
            "feature/auth",
            str(created.path),
            "~1",
            "1",
            "0",
            "1",
            "true",
        ]


class TestTag:
    """Tests for tag parsing and tagging."""

    def test_parse(self):
        ops = tag.parse_tag_args(["+wip", "-done"])

        assert ops == [
            tag.TagOp(tag.TagAction.ADD, "wip"),
            tag.TagOp(tag.TagAction.REMOVE, "done"),
        ]

    @pytest.mark.parametrize("arg", ["+", "-", "bare"])
    def test_parse_invalid(self, arg):
        with pytest.raises(InvalidTagError):
            tag.parse_tag_args([arg])

    def test_add_remove_list(self, temp_git_repo, db, created):
        added = tag.execute("feature-auth", ["+wip", "+review"], temp_git_repo, db)
        removed = tag.execute("feature-auth", ["-wip"], temp_git_repo, db)
        listed = tag.execute("feature-auth", [], temp_git_repo, db)

        assert added.tags == ["review", "wip"]
        assert removed.tags == ["review"]
        assert listed.tags == ["review"]
        assert listed.changed is False


class TestLog:
    """Tests for log."""

    def test_repo_and_worktree_history(self, temp_git_repo, db, config, created):
        create.execute("other", None, temp_git_repo, db, config)
        remove.execute("feature-auth", temp_git_repo, db, config)

        repo_events = log.execute(temp_git_repo, db)
        other_events = log.execute(temp_git_repo, db, "other")

        assert [e.event_type for e in repo_events] == ["removed", "created", "created"]
        assert [e.payload["branch"] for e in other_events] == ["other"]

    def test_limit(self, temp_git_repo, db, config, created):
        create.execute("other", None, temp_git_repo, db, config)

        assert len(log.execute(temp_git_repo, db, limit=1)) == 1


class TestInit:
    """Tests for init."""

    def test_writes_scaffold_at_root(self, temp_git_repo):
        nested = temp_git_repo / "sub"
        nested.mkdir()

        path = init.execute(nested)

        assert path == temp_git_repo / PROJECT_CONFIG_FILENAME
        text = path.read_text()
        for section in ("# git:", "# worktrees:", "# hooks:", "#   post_remove:"):
            assert section in text

    def test_refuses_overwrite(self, temp_git_repo):
        init.execute(temp_git_repo)

        with pytest.raises(ConfigExistsError, match="--force"):
            init.execute(temp_git_repo)

    def test_force_overwrites(self, temp_git_repo):
        path = temp_git_repo / PROJECT_CONFIG_FILENAME
        path.write_text("old")

        init.execute(temp_git_repo, force=True)

        assert path.read_text() != "old"
