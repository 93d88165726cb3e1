"""Worktree naming and path template rendering."""

import re
from pathlib import Path, PurePosixPath

from jinja2 import Environment, StrictUndefined, TemplateError

from .errors import ConfigError

DEFAULT_WORKTREE_TEMPLATE = "{{ repo }}/{{ branch | sanitize }}"

_DASHED = re.compile(r"[/@ ]")
_DASH_RUNS = re.compile(r"-{2,}")


def sanitize_branch(branch: str) -> str:
    """Turn a branch name into a safe single directory name.

    ``/``, ``@`` and spaces become dashes, ``..`` sequences are replaced,
    runs of dashes collapse, leading/trailing dashes are trimmed and single
    dots are kept.

    Examples:
        feature/auth -> feature-auth
        a..b -> a-b
        v2.1.3 -> v2.1.3
    """
    value = branch.replace("..", "-")
    value = _DASHED.sub("-", value)
    value = _DASH_RUNS.sub("-", value)
    return value.strip("-")


def _environment() -> Environment:
    env = Environment(undefined=StrictUndefined)
    # Only ``sanitize`` is offered to path templates
    env.filters = {"sanitize": sanitize_branch}
    return env


_ENV = _environment()


def render_worktree_path(template: str, repo: str, branch: str) -> Path:
    """Render a worktree path template into a relative path.

    Supported variables are ``repo`` and ``branch``; the only filter is
    ``sanitize``. The rendered path must stay relative and must not climb
    out of the worktree root.

    Raises:
        ConfigError: The template is malformed, uses an unknown variable or
            filter, or renders an absolute or escaping path.
    """
    try:
        rendered = _ENV.from_string(template).render(repo=repo, branch=branch)
    except TemplateError as e:
        raise ConfigError(f"invalid worktree template {template!r}: {e}") from e

    relative = PurePosixPath(rendered)
    segments = rendered.split("/")
    if relative.is_absolute() or "" in segments or ".." in segments:
        raise ConfigError(f"worktree template must render a relative path, got {rendered!r}")
    return Path(*relative.parts)
