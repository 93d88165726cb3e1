"""Run and shell steps: execute hook commands with streamed, captured output."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

logger = logging.getLogger(__name__)


@dataclass
class CommandOutput:
    """Captured result of one command."""

    command: str
    stdout: str
    stderr: str
    exit_code: int

    @property
    def success(self) -> bool:
        return self.exit_code == 0


@dataclass
class RunResult:
    """Every command executed by a step, in order."""

    executed: list[CommandOutput] = field(default_factory=list)


class RunStepError(Exception):
    """A command exited non-zero. ``results`` includes the failing command."""

    def __init__(self, command: str, exit_code: int, results: RunResult):
        self.command = command
        self.exit_code = exit_code
        self.results = results
        super().__init__(f"command failed: `{command}` exited with code {exit_code}")


class StepTimeoutError(Exception):
    """The deadline passed while ``command`` was running; it has been killed."""

    def __init__(self, command: str, results: RunResult):
        self.command = command
        self.results = results
        super().__init__(f"command timed out: `{command}`")


def _drain(stream: IO[str], sink_name: str, buffer: list[str]) -> None:
    """Copy lines from a child pipe to ``sys.<sink_name>`` and ``buffer``."""
    for line in stream:
        buffer.append(line)
        # Looked up per line so redirected streams (tests, CliRunner) see the output
        sink = getattr(sys, sink_name)
        try:
            sink.write(line)
        except UnicodeEncodeError:
            sink.write(line.encode("ascii", "backslashreplace").decode("ascii"))
        sink.flush()
    stream.close()


def _remaining(deadline: float | None) -> float | None:
    if deadline is None:
        return None
    return max(0.0, deadline - time.monotonic())


def _kill_group(process: subprocess.Popen[str]) -> None:
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _run_command(
    command: str,
    cwd: Path,
    env: dict[str, str],
    deadline: float | None,
) -> CommandOutput | None:
    """Run one command via ``sh -c``. Returns None when the deadline expired."""
    logger.debug("running %r in %s", command, cwd)
    process = subprocess.Popen(
        ["sh", "-c", command],
        cwd=cwd,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        encoding="utf-8",
        errors="replace",
        bufsize=1,
        start_new_session=True,
    )

    stdout_lines: list[str] = []
    stderr_lines: list[str] = []
    readers = [
        threading.Thread(target=_drain, args=(process.stdout, "stdout", stdout_lines), daemon=True),
        threading.Thread(target=_drain, args=(process.stderr, "stderr", stderr_lines), daemon=True),
    ]
    for reader in readers:
        reader.start()

    for reader in readers:
        reader.join(_remaining(deadline))

    timed_out = any(reader.is_alive() for reader in readers)
    if not timed_out:
        try:
            exit_code = process.wait(timeout=_remaining(deadline))
        except subprocess.TimeoutExpired:
            timed_out = True

    if timed_out:
        _kill_group(process)
        for reader in readers:
            reader.join()
        process.wait()
        return None

    return CommandOutput(
        command=command,
        stdout="".join(stdout_lines),
        stderr="".join(stderr_lines),
        exit_code=exit_code,
    )


def _child_env(env_vars: dict[str, str]) -> dict[str, str]:
    env = dict(os.environ)
    env.update(env_vars)
    return env


def execute_run_step(
    commands: list[str],
    cwd: Path,
    env_vars: dict[str, str],
    deadline: float | None = None,
) -> RunResult:
    """Run ``commands`` one after another, stopping at the first failure.

    Each command runs through ``sh -c`` in ``cwd`` and its own process
    group, with ``env_vars`` added to the inherited environment. Output is
    echoed live and captured per command.

    Args:
        commands: Shell command strings.
        cwd: Working directory for every command.
        env_vars: Extra environment variables.
        deadline: ``time.monotonic()`` value after which the running
            command's process group is killed.

    Raises:
        RunStepError: A command exited non-zero.
        StepTimeoutError: The deadline passed.
    """
    env = _child_env(env_vars)
    result = RunResult()
    for command in commands:
        output = _run_command(command, cwd, env, deadline)
        if output is None:
            raise StepTimeoutError(command, result)
        result.executed.append(output)
        if not output.success:
            raise RunStepError(command, output.exit_code, result)
    return result


def execute_shell_step(
    script: str,
    cwd: Path,
    env_vars: dict[str, str],
    deadline: float | None = None,
) -> RunResult:
    """Run an inline multi-line script. Same contract as ``execute_run_step``."""
    return execute_run_step([script], cwd, env_vars, deadline)
