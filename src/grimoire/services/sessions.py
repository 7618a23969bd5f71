"""Agent processes bound to worktrees.

A session is recorded on the worktree's state entry. Headless agents are run
under ``python -m grimoire.supervise``, which owns the agent child and records
its exit, so ``refresh_session_status`` only has to infer a crash when the
supervisor itself vanished without reporting.
"""

from __future__ import annotations

import os
import shlex
import signal
import subprocess
import sys
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from .. import config, git, log, paths
from .. import exec as exec_util
from ..models import AgentSession, SessionMode, SessionStatus
from ..term import tmux
from .errors import (
    GitCommandError,
    InvalidTransitionError,
    NotFoundError,
    ProcessSignalError,
    SessionAlreadyRunningError,
)
from .state import WorktreeStateService
from .worktrees import SESSION_ENV_VAR, WORKTREE_ENV_VAR, WORKTREE_PATH_ENV_VAR


def is_pid_alive(pid: int) -> bool:
    """Probe a pid with signal 0.

    Example:
        >>> is_pid_alive(os.getpid())
        True
    """
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def new_session_id() -> str:
    return f"sess_{uuid.uuid4().hex[:8]}"


class SupervisedProcess:
    """Handle owning a pid and, when we started it, its exit status.

    Adopted handles (pid only) fall back to the signal-0 check; handles we
    started use ``Popen.poll`` so an exited-but-unreaped child is never
    reported alive.
    """

    def __init__(
        self, pid: int, popen: subprocess.Popen | None = None, *, group: bool = False
    ) -> None:
        self.pid = pid
        self._popen = popen
        self._group = group

    @classmethod
    def start(
        cls,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        log_path: Path | None = None,
        detached: bool = True,
    ) -> SupervisedProcess:
        stdout = None
        handle = None
        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handle = log_path.open("a", encoding="utf-8")
            stdout = handle
        elif detached:
            stdout = subprocess.DEVNULL
        try:
            popen = subprocess.Popen(
                list(argv),
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdin=subprocess.DEVNULL if detached else None,
                stdout=stdout,
                stderr=subprocess.STDOUT if stdout is not None else None,
                start_new_session=detached,
            )
        finally:
            if handle is not None:
                handle.close()
        log.debug(f"started pid {popen.pid}: {' '.join(argv)}")
        return cls(popen.pid, popen, group=detached)

    @classmethod
    def adopt(cls, pid: int, *, group: bool = False) -> SupervisedProcess:
        return cls(pid, group=group)

    def poll(self) -> int | None:
        """Return the exit code if known, else ``None`` while running."""
        if self._popen is not None:
            return self._popen.poll()
        return None if is_pid_alive(self.pid) else -1

    def is_alive(self) -> bool:
        return self.poll() is None

    def wait(self, timeout: float | None = None) -> int | None:
        if self._popen is None:
            raise RuntimeError("cannot wait on an adopted process")
        try:
            return self._popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def send(self, sig: int) -> bool:
        """Deliver ``sig``; return ``False`` when the process is already gone."""
        try:
            if self._group:
                os.killpg(self.pid, sig)
            else:
                os.kill(self.pid, sig)
        except ProcessLookupError:
            return False
        except PermissionError as exc:
            raise ProcessSignalError(self.pid, str(exc)) from exc
        return True

    def terminate(self) -> bool:
        return self.send(signal.SIGTERM)

    def kill(self) -> bool:
        return self.send(signal.SIGKILL)


@dataclass(frozen=True)
class SpawnRequest:
    """What to run for an agent session.

    ``command`` is a shell command line, already sandbox-wrapped if needed.
    """

    command: str
    mode: SessionMode = "headless"
    prompt: str | None = None
    cleanup_paths: tuple[Path, ...] = ()


def session_env(name: str, worktree_path: Path, session_id: str) -> dict[str, str]:
    return exec_util.child_env(
        {
            WORKTREE_ENV_VAR: name,
            WORKTREE_PATH_ENV_VAR: str(worktree_path),
            SESSION_ENV_VAR: session_id,
        }
    )


def agent_command(prompt: str, *, skip_permissions: bool = False) -> str:
    """Return the headless agent command line.

    Example:
        >>> agent_command("fix bug")
        "claude --print 'fix bug'"
    """
    parts = ["claude", "--print"]
    if skip_permissions:
        parts.append("--dangerously-skip-permissions")
    parts.append(prompt)
    return " ".join(shlex.quote(part) for part in parts)


def tmux_command(request: SpawnRequest) -> str:
    """Return the window command, removing cleanup paths when the agent exits.

    Example:
        >>> tmux_command(SpawnRequest("claude 'x'", mode="tmux", cleanup_paths=(Path("/tmp/p.json"),)))
        "claude 'x'; rm -f /tmp/p.json"
    """
    if not request.cleanup_paths:
        return request.command
    targets = " ".join(shlex.quote(str(path)) for path in request.cleanup_paths)
    return f"{request.command}; rm -f {targets}"


class AgentSessionService:
    """Spawn, observe, and stop the agent bound to a worktree."""

    def __init__(self, state: WorktreeStateService | None = None) -> None:
        self.state = state or WorktreeStateService()

    def _locate(self, worktree_path: Path) -> tuple[Path, str]:
        repo_root = git.main_repo_root(worktree_path)
        if repo_root is None:
            raise GitCommandError(f"{worktree_path} is not inside a git repository")
        return repo_root, worktree_path.name

    def get_session(self, worktree_path: Path) -> AgentSession | None:
        repo_root, name = self._locate(worktree_path)
        entry = self.state.get_entry(repo_root, name)
        return entry.session if entry else None

    def update_session(
        self, worktree_path: Path, partial: Mapping[str, object]
    ) -> AgentSession:
        repo_root, name = self._locate(worktree_path)
        with self.state.transaction(repo_root) as state:
            entry = state.find(name)
            if entry is None or entry.session is None:
                raise NotFoundError("session", name)
            data = entry.session.model_dump()
            data.update(partial)
            entry.session = AgentSession.model_validate(data)
            return entry.session

    def _transition(
        self,
        repo_root: Path,
        name: str,
        session_id: str,
        target: SessionStatus,
        *,
        exit_code: int | None = None,
    ) -> AgentSession | None:
        """Move the named session forward; stale or finished sessions are left alone."""
        now = config.utc_now()
        with self.state.transaction(repo_root) as state:
            entry = state.find(name)
            if entry is None or entry.session is None:
                return None
            if entry.session.session_id != session_id:
                return entry.session
            try:
                entry.session = entry.session.transition(
                    target, ended_at=now, exit_code=exit_code
                )
            except InvalidTransitionError:
                return entry.session
            entry.completed_at = entry.completed_at or now
            session = entry.session
        log.transition(f"session {session_id} on {name}", "running", target)
        return session

    def record_exit(
        self, repo_root: Path, name: str, session_id: str, exit_code: int
    ) -> AgentSession | None:
        target: SessionStatus = "stopped" if exit_code == 0 else "crashed"
        return self._transition(repo_root, name, session_id, target, exit_code=exit_code)

    def refresh_session_status(self, worktree_path: Path) -> AgentSession | None:
        """Re-derive the status of a running session from pid liveness."""
        repo_root, name = self._locate(worktree_path)
        return self.refresh(repo_root, name)

    def refresh(self, repo_root: Path, name: str) -> AgentSession | None:
        entry = self.state.get_entry(repo_root, name)
        if entry is None or entry.session is None:
            return None
        session = entry.session
        if session.is_terminal or is_pid_alive(session.pid):
            return session
        return self._transition(repo_root, name, session.session_id, "crashed")

    def spawn(self, worktree_path: Path, request: SpawnRequest) -> AgentSession:
        """Start an agent for the worktree and record it as running.

        ``request.cleanup_paths`` are removed once the agent ends, or right away
        when the launch fails.

        Raises:
            SessionAlreadyRunningError: A live session is already recorded.
        """
        try:
            return self._launch(worktree_path, request)
        except BaseException:
            for cleanup in request.cleanup_paths:
                cleanup.unlink(missing_ok=True)
            raise

    def _launch(self, worktree_path: Path, request: SpawnRequest) -> AgentSession:
        repo_root, name = self._locate(worktree_path)
        existing = self.refresh(repo_root, name)
        if existing is not None and existing.status == "running":
            raise SessionAlreadyRunningError(name, existing.pid)

        session_id = new_session_id()
        env = session_env(name, worktree_path, session_id)
        log_file = paths.session_log_path(worktree_path)
        tmux_window: str | None = None

        # Hold the lock across launch so the supervisor cannot report an exit
        # before the running record exists.
        with self.state.transaction(repo_root) as state:
            if request.mode == "tmux":
                tmux_window = tmux.window_name(name)
                pid = tmux.new_window(tmux_window, worktree_path, tmux_command(request))
                if pid is None:
                    raise ProcessSignalError(0, "could not open tmux window")
            else:
                supervisor = [
                    sys.executable,
                    "-m",
                    "grimoire.supervise",
                    "--repo",
                    str(repo_root),
                    "--worktree",
                    name,
                    "--session",
                    session_id,
                    "--log",
                    str(log_file),
                ]
                for cleanup in request.cleanup_paths:
                    supervisor.extend(["--cleanup", str(cleanup)])
                supervisor.extend(["--", "sh", "-c", request.command])
                pid = SupervisedProcess.start(supervisor, cwd=worktree_path, env=env).pid

            now = config.utc_now()
            session = AgentSession(
                session_id=session_id,
                pid=pid,
                mode=request.mode,
                status="running",
                started_at=now,
                prompt=request.prompt,
                log_file=str(log_file),
                tmux_window=tmux_window,
            )
            entry = state.find(name)
            if entry is None:
                raise NotFoundError("worktree state entry", name)
            entry.session = session
            entry.spawned_at = now
            entry.completed_at = None
        log.debug(f"session {session_id} on {name}: pid {pid}")
        return session

    def run_interactive(
        self, worktree_path: Path, request: SpawnRequest
    ) -> AgentSession | None:
        """Run the agent in the foreground and record how it ended."""
        repo_root, name = self._locate(worktree_path)
        existing = self.refresh(repo_root, name)
        if existing is not None and existing.status == "running":
            raise SessionAlreadyRunningError(name, existing.pid)
        session_id = new_session_id()
        process = SupervisedProcess.start(
            ["sh", "-c", request.command],
            cwd=worktree_path,
            env=session_env(name, worktree_path, session_id),
            detached=False,
        )
        now = config.utc_now()
        self.state.update_worktree(
            repo_root,
            name,
            {
                "session": AgentSession(
                    session_id=session_id,
                    pid=process.pid,
                    mode="interactive",
                    started_at=now,
                    prompt=request.prompt,
                ),
                "spawned_at": now,
                "completed_at": None,
            },
        )
        code = process.wait()
        ended = self.record_exit(repo_root, name, session_id, code if code is not None else 1)
        return ended if ended is not None else self.get_session(worktree_path)

    def terminate(self, worktree_path: Path, *, force: bool = False) -> AgentSession:
        """Signal the running agent and mark its session stopped.

        Raises:
            NotFoundError: No session is recorded or it is not running.
            ProcessSignalError: The signal could not be delivered.
        """
        repo_root, name = self._locate(worktree_path)
        session = self.refresh(repo_root, name)
        if session is None or session.status != "running":
            raise NotFoundError(
                "running session",
                name,
                recovery_hint=f"check `grim wt ps` for {name}",
            )
        process = SupervisedProcess.adopt(session.pid, group=session.mode == "headless")
        # Record the stop and signal under one lock so the supervisor's exit
        # report (signal exit code, read as a crash) lands on a final record.
        with self.state.transaction(repo_root) as state:
            entry = state.find(name)
            current = entry.session if entry is not None else None
            if current is None or current.session_id != session.session_id:
                raise NotFoundError("running session", name)
            delivered = process.kill() if force else process.terminate()
            if not delivered:
                log.debug(f"pid {session.pid} already exited")
            if current.status == "running":
                now = config.utc_now()
                entry.session = current.transition("stopped", ended_at=now)
                entry.completed_at = entry.completed_at or now
            stopped = entry.session
        log.transition(f"session {session.session_id} on {name}", "running", stopped.status)
        if session.tmux_window:
            tmux.kill_window(session.tmux_window)
        return stopped
