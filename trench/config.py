"""Configuration loading with pydantic-settings and YAML config files.

Three layers, highest precedence first:

1. ``.trench.yaml`` at the repository root (project, usually committed)
2. ``~/.config/trench/config.yaml`` (global, per user)
3. ``Settings`` defaults, overridable with ``TRENCH_*`` environment variables

Sections merge field by field, except ``hooks``: project hooks replace the
global hooks entirely.
"""

from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError
from .paths import DEFAULT_WORKTREE_TEMPLATE

PROJECT_CONFIG_FILENAME = ".trench.yaml"
DEFAULT_HOOK_TIMEOUT_SECS = 120


class Settings(BaseSettings):
    """Process-level settings from the environment and an optional .env file."""

    model_config = SettingsConfigDict(
        env_prefix="TRENCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".local/share/trench")
    db_path: Path | None = None
    global_config: Path = Field(default_factory=lambda: Path.home() / ".config/trench/config.yaml")

    # Worktree layout
    worktree_root: Path = Field(default_factory=lambda: Path.home() / ".worktrees")
    worktree_template: str = DEFAULT_WORKTREE_TEMPLATE

    # Hooks
    hook_timeout_secs: int = Field(default=DEFAULT_HOOK_TIMEOUT_SECS, gt=0)

    log_level: str = "INFO"

    @model_validator(mode="after")
    def _derive_db_path(self) -> "Settings":
        if self.db_path is None:
            self.db_path = self.data_dir / "trench.db"
        return self


# Global settings instance (lazy loaded)
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset global settings instance (for testing)."""
    global _settings
    _settings = None


# ---------------------------------------------------------------------------
# Config files
# ---------------------------------------------------------------------------


class HookDefinition(BaseModel):
    """One lifecycle hook. Steps run in order: copy, run, shell."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    # "copy" would shadow BaseModel.copy
    copy_patterns: list[str] | None = Field(default=None, alias="copy")
    run: list[str] | None = None
    shell: str | None = None
    timeout_secs: int | None = Field(default=None, gt=0)

    @property
    def is_empty(self) -> bool:
        return not (self.copy_patterns or self.run or self.shell)


class HooksConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    pre_create: HookDefinition | None = None
    post_create: HookDefinition | None = None
    pre_sync: HookDefinition | None = None
    post_sync: HookDefinition | None = None
    pre_remove: HookDefinition | None = None
    post_remove: HookDefinition | None = None

    def get(self, event: str) -> HookDefinition | None:
        """Hook for a lifecycle event name (``HookEvent`` values work too)."""
        return getattr(self, str(getattr(event, "value", event)), None)


class GitSection(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    default_base: str | None = None
    auto_prune: bool | None = None


class WorktreesSection(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    root: str | None = None
    template: str | None = None


class TrenchConfig(BaseModel):
    """Contents of a global or project config file."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    git: GitSection = Field(default_factory=GitSection)
    worktrees: WorktreesSection = Field(default_factory=WorktreesSection)
    hooks: HooksConfig | None = None


def load_config_file(path: Path) -> TrenchConfig | None:
    """Load a YAML config file. Returns None if it does not exist.

    Raises:
        ConfigError: The file is not valid YAML or does not match the schema.
    """
    path = Path(path).expanduser()
    if not path.exists():
        return None

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")

    try:
        return TrenchConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration in {path}:\n{e}") from e


@dataclass(frozen=True)
class ResolvedConfig:
    """Effective configuration for one invocation."""

    worktree_root: Path
    worktree_template: str
    default_base: str | None
    auto_prune: bool
    hook_timeout_secs: int
    hooks: HooksConfig | None

    def hook(self, event: str) -> HookDefinition | None:
        if self.hooks is None:
            return None
        return self.hooks.get(event)


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def resolve_config(settings: Settings, repo_root: Path | None = None) -> ResolvedConfig:
    """Merge the project file, the global file and ``settings``."""
    global_file = load_config_file(settings.global_config) or TrenchConfig()
    project_file = TrenchConfig()
    if repo_root is not None:
        project_file = load_config_file(Path(repo_root) / PROJECT_CONFIG_FILENAME) or TrenchConfig()

    root = _first(project_file.worktrees.root, global_file.worktrees.root)
    hooks = project_file.hooks if project_file.hooks is not None else global_file.hooks

    return ResolvedConfig(
        worktree_root=Path(root).expanduser() if root else settings.worktree_root.expanduser(),
        worktree_template=_first(
            project_file.worktrees.template,
            global_file.worktrees.template,
            settings.worktree_template,
        ),
        default_base=_first(project_file.git.default_base, global_file.git.default_base),
        auto_prune=bool(_first(project_file.git.auto_prune, global_file.git.auto_prune, False)),
        hook_timeout_secs=settings.hook_timeout_secs,
        hooks=hooks,
    )


SCAFFOLD = """\
# trench project configuration
# Uncomment and modify the sections you need.
# This file is meant to be committed to version control.
#
# Precedence:
#   CLI flags > .trench.yaml > ~/.config/trench/config.yaml > defaults

# --- Git -------------------------------------------------------------

# git:
#   default_base: main      # Base branch for new worktrees
#   auto_prune: false       # Delete the branch (local and origin) on remove

# --- Worktrees -------------------------------------------------------

# worktrees:
#   root: ~/.worktrees
#   template: "{{ repo }}/{{ branch | sanitize }}"

# --- Hooks -----------------------------------------------------------
#
# Six lifecycle hooks: pre_create, post_create, pre_sync, post_sync,
# pre_remove, post_remove.
#
# Each hook supports:
#   copy          glob patterns to copy from the repo root (prefix with ! to exclude)
#   run           commands to execute sequentially
#   shell         an inline shell script
#   timeout_secs  max seconds for run + shell combined (default: 120)
#
# Execution order within a hook: copy, run, shell.
# If any step fails (non-zero exit), the hook stops.
#
# Pre-hooks cancel the operation on failure.
# Project hooks replace global hooks completely; they are not merged.

# hooks:
#   pre_create:
#     run: []
#   post_create:
#     copy: [".env*", "!.env.example"]
#     run: ["bun install"]
#     timeout_secs: 300
#   pre_sync:
#     run: []
#   post_sync:
#     run: []
#   pre_remove:
#     shell: "pkill -f 'next dev' || true"
#   post_remove:
#     run: []
"""
