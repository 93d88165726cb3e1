"""trench: a headless-first Git worktree manager."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("trench")
except PackageNotFoundError:
    __version__ = "0.0.0"
