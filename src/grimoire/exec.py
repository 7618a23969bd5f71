"""Subprocess helpers for git, tmux, gh, and worktree shell commands.

Every external call goes through ``run_with_runner`` so tests can substitute a
``CommandRunner``. A missing executable yields ``None`` rather than raising;
callers decide whether that is fatal.
"""

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Protocol

from . import log

TIMEOUT_EXIT_CODE = 124
NOT_FOUND_EXIT_CODE = 127


@dataclass(frozen=True)
class CommandRequest:
    argv: tuple[str, ...]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    capture_output: bool = True
    text: bool = True
    timeout_seconds: float | None = None
    shell: bool = False


@dataclass(frozen=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Combined stdout and stderr, the way git reports merge results."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class CommandRunner(Protocol):
    def run(self, request: CommandRequest) -> CommandResult | None: ...


def _as_text(value: object) -> str:
    return value if isinstance(value, str) else ""


class SubprocessCommandRunner:
    """Runs requests with ``subprocess.run``; timeouts map to exit code 124."""

    def run(self, request: CommandRequest) -> CommandResult | None:
        options: dict[str, object] = {"cwd": request.cwd, "env": request.env, "check": False}
        if request.capture_output:
            options.update(capture_output=True, text=request.text)
        if request.timeout_seconds is not None:
            options["timeout"] = request.timeout_seconds
        target: str | list[str]
        if request.shell:
            options["shell"] = True
            target = " ".join(request.argv)
        else:
            target = list(request.argv)
        log.command(request.argv, cwd=request.cwd)
        try:
            completed = subprocess.run(target, **options)
        except FileNotFoundError:
            return None
        except subprocess.TimeoutExpired as exc:
            return CommandResult(
                request.argv,
                TIMEOUT_EXIT_CODE,
                _as_text(exc.stdout),
                _as_text(exc.stderr),
                timed_out=True,
            )
        return CommandResult(
            request.argv,
            completed.returncode,
            _as_text(completed.stdout),
            _as_text(completed.stderr),
        )


_DEFAULT_COMMAND_RUNNER: CommandRunner = SubprocessCommandRunner()


def run_with_runner(
    request: CommandRequest, *, runner: CommandRunner | None = None
) -> CommandResult | None:
    return (runner or _DEFAULT_COMMAND_RUNNER).run(request)


def child_env(
    overrides: Mapping[str, str] | None = None, *, drop: Iterable[str] = ()
) -> dict[str, str]:
    """Return a copy of the current environment with ``overrides`` applied.

    Variables named in ``drop`` are removed first.

    Example:
        >>> env = child_env({"GRIMOIRE_WORKTREE": "feat"}, drop=["HOME"])
        >>> env["GRIMOIRE_WORKTREE"], "HOME" in env
        ('feat', False)
    """
    dropped = set(drop)
    env = {key: value for key, value in os.environ.items() if key not in dropped}
    env.update(overrides or {})
    return env


def try_run_command(
    cmd: list[str],
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult | None:
    """Run ``cmd`` and return ``None`` if the executable is missing.

    Example:
        >>> try_run_command(["true"]).returncode
        0
    """
    return run_with_runner(CommandRequest(argv=tuple(cmd), cwd=cwd, env=env))


def run_shell(
    command: str,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    *,
    capture_output: bool = True,
) -> CommandResult:
    """Run a shell command line; a missing shell is reported as exit 127."""
    request = CommandRequest(
        argv=(command,),
        cwd=cwd,
        env=env,
        capture_output=capture_output,
        shell=True,
    )
    result = run_with_runner(request)
    if result is None:
        return CommandResult(request.argv, NOT_FOUND_EXIT_CODE, "", "")
    return result
