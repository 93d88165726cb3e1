"""Copy step: carry untracked files (``.env`` and friends) into a new worktree."""

from __future__ import annotations

import fnmatch
import logging
import os
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class CopiedFile:
    """One file copied by the copy step."""

    name: str
    source: Path
    destination: Path


@dataclass
class CopyResult:
    copied: list[CopiedFile] = field(default_factory=list)


def _compile(patterns: list[str]) -> re.Pattern[str] | None:
    """Compile glob patterns into one regex matching any of them.

    ``*`` also matches ``/``, so ``*.env`` matches at any depth. A leading
    ``**/`` additionally matches files at the root.
    """
    if not patterns:
        return None
    alternatives = []
    for pattern in patterns:
        alternatives.append(fnmatch.translate(pattern))
        if pattern.startswith("**/"):
            alternatives.append(fnmatch.translate(pattern[3:]))
    return re.compile("|".join(f"(?:{alt})" for alt in alternatives))


def _split_patterns(patterns: list[str]) -> tuple[list[str], list[str]]:
    includes = [p for p in patterns if not p.startswith("!")]
    excludes = [p[1:] for p in patterns if p.startswith("!") and len(p) > 1]
    return includes, excludes


def execute_copy_step(source_dir: Path, dest_dir: Path, patterns: list[str]) -> CopyResult:
    """Copy files under ``source_dir`` matching ``patterns`` into ``dest_dir``.

    Patterns are matched against paths relative to ``source_dir``; patterns
    prefixed with ``!`` exclude. Symbolic links are neither followed nor
    copied, and ``dest_dir`` is skipped when it lies inside ``source_dir``.
    Relative paths and file permissions are preserved.

    Example:
        execute_copy_step(repo, worktree, [".env*", "!.env.example"])
    """
    source_dir = Path(source_dir)
    dest_dir = Path(dest_dir)
    includes, excludes = _split_patterns(patterns)
    include_re = _compile(includes)
    exclude_re = _compile(excludes)

    result = CopyResult()
    if include_re is None:
        return result

    try:
        skip_dir = dest_dir.resolve()
    except OSError:
        skip_dir = dest_dir

    pending = [source_dir]
    while pending:
        current = pending.pop()
        with os.scandir(current) as entries:
            for entry in sorted(entries, key=lambda e: e.name):
                if entry.is_symlink():
                    continue
                path = Path(entry.path)
                if entry.is_dir(follow_symlinks=False):
                    if path.resolve() != skip_dir:
                        pending.append(path)
                    continue
                if not entry.is_file(follow_symlinks=False):
                    continue

                relative = path.relative_to(source_dir).as_posix()
                if not include_re.fullmatch(relative):
                    continue
                if exclude_re is not None and exclude_re.fullmatch(relative):
                    continue

                destination = dest_dir / relative
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(path, destination)
                logger.debug("copied %s -> %s", path, destination)
                result.copied.append(
                    CopiedFile(name=relative, source=path, destination=destination)
                )

    return result
