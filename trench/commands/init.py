"""Scaffold a project configuration file."""

from pathlib import Path

from .. import git
from ..config import PROJECT_CONFIG_FILENAME, SCAFFOLD
from ..errors import ConfigExistsError


def execute(cwd: Path, force: bool = False) -> Path:
    """Write a commented ``.trench.yaml`` at the repository root.

    Raises:
        NotARepoError: ``cwd`` is not inside a repository.
        ConfigExistsError: The file exists and ``force`` is False.
    """
    root = git.discover(cwd).path
    path = root / PROJECT_CONFIG_FILENAME
    if path.exists() and not force:
        raise ConfigExistsError(path)
    path.write_text(SCAFFOLD)
    return path
