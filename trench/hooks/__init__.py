"""Lifecycle hooks: copy files, run commands and scripts around worktree operations."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from ..config import DEFAULT_HOOK_TIMEOUT_SECS, HookDefinition
from ..errors import ExitCode, TrenchError
from .copy import CopiedFile, CopyResult, execute_copy_step
from .run import (
    CommandOutput,
    RunResult,
    RunStepError,
    StepTimeoutError,
    execute_run_step,
    execute_shell_step,
)

logger = logging.getLogger(__name__)


class HookEvent(str, Enum):
    """Lifecycle points at which a hook can fire."""

    PRE_CREATE = "pre_create"
    POST_CREATE = "post_create"
    PRE_SYNC = "pre_sync"
    POST_SYNC = "post_sync"
    PRE_REMOVE = "pre_remove"
    POST_REMOVE = "post_remove"

    @property
    def is_pre(self) -> bool:
        """Pre hooks cancel the operation when they fail."""
        return self.value.startswith("pre_")

    def __str__(self) -> str:
        return self.value


@dataclass
class HookContext:
    """What a hook knows about the worktree it runs for."""

    worktree_path: Path
    worktree_name: str
    branch: str
    repo_name: str
    repo_path: Path
    base_branch: str | None = None

    def env_vars(self, event: HookEvent) -> dict[str, str]:
        return {
            "TRENCH_WORKTREE_PATH": str(self.worktree_path),
            "TRENCH_WORKTREE_NAME": self.worktree_name,
            "TRENCH_BRANCH": self.branch,
            "TRENCH_REPO_NAME": self.repo_name,
            "TRENCH_REPO_PATH": str(self.repo_path),
            "TRENCH_BASE_BRANCH": self.base_branch or "",
            "TRENCH_EVENT": event.value,
        }

    @property
    def cwd(self) -> Path:
        """The worktree when it exists (post-create, pre-remove), else the repo root."""
        if self.worktree_path.is_dir():
            return self.worktree_path
        return self.repo_path


@dataclass
class HookResult:
    """Everything a hook did, possibly cut short by a failure."""

    event: HookEvent
    copy: CopyResult | None = None
    run: RunResult | None = None
    shell: RunResult | None = None
    duration_secs: float = 0.0

    @property
    def commands(self) -> list[CommandOutput]:
        executed: list[CommandOutput] = []
        for step in (self.run, self.shell):
            if step is not None:
                executed.extend(step.executed)
        return executed


class HookFailedError(TrenchError):
    """A hook step failed. ``result`` holds the partial results."""

    def __init__(
        self,
        event: HookEvent,
        step: str,
        result: HookResult,
        exit_code: int | None = None,
        reason: str | None = None,
    ):
        self.event = event
        self.step = step
        self.result = result
        self.command_exit_code = exit_code
        message = f"{event.value} hook failed in {step} step"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)

    @property
    def exit_code(self) -> int:
        """Exit with the failing command's code when it is a usable status."""
        if self.command_exit_code is not None and 0 < self.command_exit_code < 256:
            return self.command_exit_code
        return ExitCode.FAILURE


class HookTimeoutError(HookFailedError):
    def __init__(
        self,
        event: HookEvent,
        step: str,
        result: HookResult,
        timeout_secs: int,
        command: str,
    ):
        self.timeout_secs = timeout_secs
        self.command = command
        super().__init__(
            event,
            step,
            result,
            reason=f"`{command}` exceeded {timeout_secs}s timeout",
        )


def run_hook(
    event: HookEvent,
    hook: HookDefinition,
    context: HookContext,
    source_dir: Path | None = None,
    default_timeout_secs: int = DEFAULT_HOOK_TIMEOUT_SECS,
) -> HookResult:
    """Run a hook's steps in order: copy, run, shell.

    The copy step reads from ``source_dir`` (skipped when None) and writes
    into the worktree. Commands run in ``context.cwd`` with the TRENCH_*
    variables set. ``hook.timeout_secs`` (or ``default_timeout_secs``)
    bounds the run and shell steps together.

    Raises:
        HookFailedError: A step failed; later steps did not run.
        HookTimeoutError: The timeout expired; the running command was killed.
    """
    result = HookResult(event=event)
    started = time.monotonic()
    timeout_secs = hook.timeout_secs or default_timeout_secs
    deadline = started + timeout_secs
    env_vars = context.env_vars(event)
    logger.debug("running %s hook for %s", event.value, context.worktree_name)

    try:
        if hook.copy_patterns and source_dir is not None:
            try:
                result.copy = execute_copy_step(
                    source_dir, context.worktree_path, hook.copy_patterns
                )
            except OSError as e:
                raise HookFailedError(event, "copy", result, reason=str(e)) from e

        if hook.run:
            try:
                result.run = execute_run_step(hook.run, context.cwd, env_vars, deadline)
            except (RunStepError, StepTimeoutError) as e:
                result.run = e.results
                _raise_step_failure(event, "run", result, e, timeout_secs)

        if hook.shell:
            try:
                result.shell = execute_shell_step(hook.shell, context.cwd, env_vars, deadline)
            except (RunStepError, StepTimeoutError) as e:
                result.shell = e.results
                _raise_step_failure(event, "shell", result, e, timeout_secs)
    finally:
        result.duration_secs = time.monotonic() - started

    return result


def _raise_step_failure(
    event: HookEvent,
    step: str,
    result: HookResult,
    error: RunStepError | StepTimeoutError,
    timeout_secs: int,
) -> None:
    if isinstance(error, StepTimeoutError):
        raise HookTimeoutError(event, step, result, timeout_secs, error.command) from error
    raise HookFailedError(event, step, result, error.exit_code, str(error)) from error


__all__ = [
    "CommandOutput",
    "CopiedFile",
    "CopyResult",
    "HookContext",
    "HookEvent",
    "HookFailedError",
    "HookResult",
    "HookTimeoutError",
    "RunResult",
    "RunStepError",
    "StepTimeoutError",
    "execute_copy_step",
    "execute_run_step",
    "execute_shell_step",
    "run_hook",
]
