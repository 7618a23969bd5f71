"""Background scout agents: short-lived, read-only exploration processes.

The registry lives at ``<project>/.grim/scouts/state.json``. Scouts run under
``python -m grimoire.scout_runner``, which enforces the timeout, writes the
findings file, and moves its own entry to ``done`` or ``failed``.
"""

from __future__ import annotations

import json
import re
import shlex
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError

from .. import config, log, paths
from .. import exec as exec_util
from ..models import ScoutEntry, ScoutFindings, ScoutOptions, ScoutState, ScoutStatus
from ..polling import Poller
from ..scout_prompt import build_prompt, parse_findings
from .errors import (
    GrimoireError,
    InvalidTransitionError,
    NotFoundError,
    ScoutAlreadyRunningError,
    ScoutTimeoutError,
    StateDocumentError,
    ValidationFailedError,
)
from .sandbox import SandboxConfigService
from .sessions import SupervisedProcess, is_pid_alive

SCOUT_NAME_ENV_VAR = "GRIMOIRE_SCOUT_NAME"
STRIPPED_ENV_VARS = ("ANTHROPIC_API_KEY",)
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
DEFAULT_WAIT_TIMEOUT = 300.0
POLL_INTERVAL = 1.0


def validate_name(name: str) -> str:
    """Reject names that are unsafe as file names.

    Example:
        >>> validate_name("auth-flow")
        'auth-flow'
    """
    if not _NAME_RE.match(name):
        raise ValidationFailedError(
            f"invalid scout name '{name}'",
            recovery_hint="use letters, digits, dots, dashes, or underscores",
        )
    return name


class ScoutService:
    """Spawn, observe, cancel, and clear scouts for a project."""

    def __init__(self, sandbox: SandboxConfigService | None = None) -> None:
        self.sandbox = sandbox or SandboxConfigService()

    def _load(self, path: Path) -> ScoutState:
        try:
            payload = config.load_json(path)
        except (OSError, json.JSONDecodeError) as exc:
            raise StateDocumentError(str(path), str(exc)) from exc
        if payload is None:
            return ScoutState()
        try:
            return ScoutState.model_validate(payload)
        except ValidationError as exc:
            raise StateDocumentError(str(path), str(exc)) from exc

    @contextmanager
    def transaction(self, project_path: Path) -> Iterator[ScoutState]:
        path = paths.scouts_state_path(project_path)
        with config.document_lock(path):
            state = self._load(path)
            yield state
            config.write_json(path, state)

    def _reap(self, project_path: Path, state: ScoutState) -> None:
        """Fail running entries whose process died without reporting."""
        for name, entry in list(state.scouts.items()):
            if entry.status != "running" or entry.pid is None or is_pid_alive(entry.pid):
                continue
            if paths.findings_path(project_path, name).exists():
                state.scouts[name] = entry.transition("done", completed_at=config.utc_now())
            else:
                state.scouts[name] = entry.transition(
                    "failed",
                    completed_at=config.utc_now(),
                    error="Process exited without reporting",
                )
            log.transition(f"scout {name}", "running", state.scouts[name].status)

    def list(self, project_path: Path) -> list[ScoutEntry]:
        with self.transaction(project_path) as state:
            self._reap(project_path, state)
            entries = list(state.scouts.values())
        return sorted(entries, key=lambda e: e.started_at, reverse=True)

    def get(self, project_path: Path, name: str) -> ScoutEntry:
        with self.transaction(project_path) as state:
            self._reap(project_path, state)
            entry = state.scouts.get(name)
        if entry is None:
            raise NotFoundError("scout", name)
        return entry

    def is_running(self, project_path: Path, name: str) -> bool:
        try:
            return self.get(project_path, name).is_active
        except NotFoundError:
            return False

    def agent_command(
        self, project_path: Path, entry: ScoutEntry
    ) -> tuple[str, Path | None]:
        """Return the shell command for a scout and its sandbox policy file, if any."""
        prompt = build_prompt(entry.question, entry.options)
        command = " ".join(
            shlex.quote(part)
            for part in ("claude", "--print", "--model", entry.options.model, prompt)
        )
        info = self.sandbox.check_platform()
        if not info.available:
            log.debug(f"scout {entry.name}: sandbox unavailable, running unwrapped")
            return command, None
        resolved = self.sandbox.resolve_config(
            project_path,
            project_path,
            allow_write=[str(paths.scouts_dir(project_path)), "/tmp"],
        )
        resolved.config.filesystem.allow_write = [
            p for p in resolved.config.filesystem.allow_write if p != str(project_path)
        ]
        config_path = self.sandbox.write_config_file(resolved.config)
        wrapped = self.sandbox.wrap_command(
            command, config_path, srt_command=info.srt_command or ("srt",)
        )
        return wrapped, config_path

    def spawn(
        self,
        project_path: Path,
        name: str,
        question: str,
        options: ScoutOptions | None = None,
    ) -> ScoutEntry:
        """Register a scout and start its runner in the background.

        Raises:
            ScoutAlreadyRunningError: A scout with this name is pending or running.
        """
        validate_name(name)
        opts = options or ScoutOptions()
        paths.findings_dir(project_path).mkdir(parents=True, exist_ok=True)
        with self.transaction(project_path) as state:
            self._reap(project_path, state)
            existing = state.scouts.get(name)
            if existing is not None and existing.is_active:
                raise ScoutAlreadyRunningError(name)
            for stale in (
                paths.findings_path(project_path, name),
                paths.scout_log_path(project_path, name),
            ):
                stale.unlink(missing_ok=True)
            entry = ScoutEntry(
                name=name, question=question, started_at=config.utc_now(), options=opts
            )
            state.scouts[name] = entry

            env = exec_util.child_env({SCOUT_NAME_ENV_VAR: name}, drop=STRIPPED_ENV_VARS)
            process = SupervisedProcess.start(
                [
                    sys.executable,
                    "-m",
                    "grimoire.scout_runner",
                    "--project",
                    str(project_path),
                    "--name",
                    name,
                ],
                cwd=project_path,
                env=env,
            )
            entry = entry.transition("running", pid=process.pid)
            state.scouts[name] = entry
        log.debug(f"scout {name}: pending -> running (pid {entry.pid})")
        return entry

    def record_result(
        self,
        project_path: Path,
        name: str,
        status: ScoutStatus,
        *,
        error: str | None = None,
    ) -> ScoutEntry | None:
        """Move a scout to a terminal status; already-terminal entries are kept."""
        with self.transaction(project_path) as state:
            entry = state.scouts.get(name)
            if entry is None:
                return None
            try:
                updated = entry.transition(
                    status, completed_at=config.utc_now(), error=error
                )
            except InvalidTransitionError:
                return entry
            state.scouts[name] = updated
        log.transition(f"scout {name}", entry.status, status)
        return updated

    def write_findings(self, project_path: Path, findings: ScoutFindings) -> Path:
        path = paths.findings_path(project_path, findings.name)
        config.write_json(path, findings)
        return path

    def read_findings(self, project_path: Path, name: str) -> ScoutFindings | None:
        path = paths.findings_path(project_path, name)
        try:
            payload = config.load_json(path)
        except (OSError, json.JSONDecodeError):
            return None
        if payload is None:
            return None
        try:
            return ScoutFindings.model_validate(payload)
        except ValidationError:
            return None

    def findings_from_log(self, project_path: Path, entry: ScoutEntry) -> ScoutFindings | None:
        log_path = paths.scout_log_path(project_path, entry.name)
        if not log_path.exists():
            return None
        output = log_path.read_text(encoding="utf-8", errors="replace")
        parsed = parse_findings(output)
        duration = 0.0
        if entry.completed_at:
            duration = (
                config.parse_timestamp(entry.completed_at)
                - config.parse_timestamp(entry.started_at)
            ).total_seconds()
        return ScoutFindings(
            name=entry.name,
            question=entry.question,
            explored_at=entry.completed_at or config.utc_now(),
            duration=duration,
            summary=parsed.summary,
            key_files=parsed.key_files,
            code_patterns=parsed.code_patterns,
            related_areas=parsed.related_areas,
            raw_log=output,
        )

    def show(
        self, project_path: Path, name: str
    ) -> tuple[ScoutEntry, ScoutFindings | None]:
        entry = self.get(project_path, name)
        findings = self.read_findings(project_path, name)
        if findings is None and entry.status in {"done", "failed"}:
            findings = self.findings_from_log(project_path, entry)
        return entry, findings

    def cancel(self, project_path: Path, name: str) -> bool:
        """Stop a pending or running scout; return whether anything was stopped."""
        with self.transaction(project_path) as state:
            entry = state.scouts.get(name)
            if entry is None or not entry.is_active:
                return False
            if entry.pid is not None:
                try:
                    SupervisedProcess.adopt(entry.pid, group=True).terminate()
                except GrimoireError as exc:
                    log.debug(f"scout {name}: {exc}")
            state.scouts[name] = entry.transition(
                "cancelled", completed_at=config.utc_now()
            )
        log.transition(f"scout {name}", entry.status, "cancelled")
        return True

    def clear(self, project_path: Path, include_running: bool = False) -> list[str]:
        """Remove finished entries (and running ones if asked) with their artifacts."""
        with self.transaction(project_path) as state:
            self._reap(project_path, state)
            cleared = [
                name
                for name, entry in state.scouts.items()
                if include_running or not entry.is_active
            ]
            for name in cleared:
                entry = state.scouts.pop(name)
                if entry.is_active and entry.pid is not None:
                    try:
                        SupervisedProcess.adopt(entry.pid, group=True).terminate()
                    except GrimoireError as exc:
                        log.debug(f"scout {name}: {exc}")
                paths.findings_path(project_path, name).unlink(missing_ok=True)
                paths.scout_log_path(project_path, name).unlink(missing_ok=True)
        return cleared

    def wait_for(
        self,
        project_path: Path,
        name: str,
        timeout: float = DEFAULT_WAIT_TIMEOUT,
        *,
        interval: float = POLL_INTERVAL,
        stop: threading.Event | None = None,
    ) -> ScoutEntry:
        """Poll until the scout reaches a terminal status.

        Raises:
            ScoutTimeoutError: The deadline passed first.
        """
        poller = Poller(interval, timeout, stop=stop)
        entry = self.get(project_path, name)
        for _ in poller:
            entry = self.get(project_path, name)
            if entry.is_terminal:
                return entry
        if poller.timed_out:
            raise ScoutTimeoutError(name, timeout)
        return entry
