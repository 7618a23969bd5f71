from __future__ import annotations

import json
import os
import shlex
import subprocess
from pathlib import Path

import pytest

from grimoire import paths, scout_runner
from grimoire.models import ScoutEntry, ScoutOptions
from grimoire.services.errors import (
    ScoutAlreadyRunningError,
    ScoutTimeoutError,
    ValidationFailedError,
)
from grimoire.services.sandbox import PlatformInfo, SandboxConfigService
from grimoire.services.scouts import ScoutService
from grimoire.services.sessions import SupervisedProcess

FINDINGS_OUTPUT = """Looking around...
```findings
SUMMARY:
Sessions refresh in the auth middleware.

KEY_FILES:
- src/auth/middleware.py | refresh logic

RELATED_AREAS:
- src/session/ | token storage
```
"""


class StubSandbox(SandboxConfigService):
    def __init__(self, available: bool) -> None:
        super().__init__(Path("/nonexistent/srt.json"))
        self.available = available

    def check_platform(self) -> PlatformInfo:
        if self.available:
            return PlatformInfo(platform="linux", srt_command=("srt",))
        return PlatformInfo(platform="linux", srt_command=None, missing=["srt"])


def _dead_pid() -> int:
    process = subprocess.Popen(["true"])
    process.wait()
    return process.pid


def _seed(service: ScoutService, project: Path, entry: ScoutEntry) -> None:
    with service.transaction(project) as state:
        state.scouts[entry.name] = entry


def _running(name: str, pid: int | None = None, timeout: int = 120) -> ScoutEntry:
    return ScoutEntry(
        name=name,
        question="where is refresh?",
        status="running",
        pid=pid if pid is not None else os.getpid(),
        started_at="2026-01-18T12:00:00Z",
        options=ScoutOptions(timeout=timeout),
    )


def _use_command(monkeypatch: pytest.MonkeyPatch, command: str) -> None:
    monkeypatch.setattr(
        ScoutService, "agent_command", lambda self, project, entry: (command, None)
    )


def test_validate_name_rejects_paths(tmp_path: Path) -> None:
    with pytest.raises(ValidationFailedError):
        ScoutService(StubSandbox(False)).spawn(tmp_path, "../escape", "q")


def test_runner_writes_findings_and_finishes(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    service = ScoutService(StubSandbox(False))
    _seed(service, tmp_path, _running("auth"))
    _use_command(monkeypatch, f"printf %s {shlex.quote(FINDINGS_OUTPUT)}")

    code = scout_runner.run(tmp_path, "auth", service)

    assert code == 0
    entry = service.get(tmp_path, "auth")
    assert entry.status == "done"
    assert entry.completed_at
    payload = json.loads(paths.findings_path(tmp_path, "auth").read_text(encoding="utf-8"))
    assert payload["summary"] == "Sessions refresh in the auth middleware."
    assert payload["keyFiles"] == [{"path": "src/auth/middleware.py", "relevance": "refresh logic"}]
    assert payload["relatedAreas"][0]["path"] == "src/session/"
    log_text = paths.scout_log_path(tmp_path, "auth").read_text(encoding="utf-8")
    assert log_text.startswith("# Scout: auth\n# Question: where is refresh?")


def test_runner_marks_nonzero_exit_failed(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    service = ScoutService(StubSandbox(False))
    _seed(service, tmp_path, _running("auth"))
    _use_command(monkeypatch, "exit 2")

    assert scout_runner.run(tmp_path, "auth", service) == 2

    entry = service.get(tmp_path, "auth")
    assert (entry.status, entry.error) == ("failed", "Exit code 2")


def test_runner_enforces_timeout(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    service = ScoutService(StubSandbox(False))
    _seed(service, tmp_path, _running("slow", timeout=1))
    _use_command(monkeypatch, "sleep 10")

    assert scout_runner.run(tmp_path, "slow", service) == 124

    entry = service.get(tmp_path, "slow")
    assert (entry.status, entry.error) == ("failed", "Timed out")


def test_spawn_then_cancel(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    real_start = SupervisedProcess.start
    launched: list[list[str]] = []

    def fake_start(argv: list[str], **kwargs: object) -> SupervisedProcess:
        launched.append(list(argv))
        assert "ANTHROPIC_API_KEY" not in kwargs["env"]
        assert kwargs["env"]["GRIMOIRE_SCOUT_NAME"] == "auth"
        return real_start(["sleep", "30"], cwd=tmp_path)

    monkeypatch.setenv("ANTHROPIC_API_KEY", "secret")
    monkeypatch.setattr(SupervisedProcess, "start", fake_start)
    service = ScoutService(StubSandbox(False))

    entry = service.spawn(tmp_path, "auth", "where is refresh?", ScoutOptions(depth="deep"))

    assert entry.status == "running"
    assert entry.pid is not None
    assert launched[0][1:3] == ["-m", "grimoire.scout_runner"]
    assert service.get(tmp_path, "auth").options.depth == "deep"
    with pytest.raises(ScoutAlreadyRunningError):
        service.spawn(tmp_path, "auth", "again")

    assert service.cancel(tmp_path, "auth") is True
    assert service.get(tmp_path, "auth").status == "cancelled"
    assert service.cancel(tmp_path, "auth") is False


def test_dead_running_scout_is_reaped(tmp_path: Path) -> None:
    service = ScoutService(StubSandbox(False))
    _seed(service, tmp_path, _running("lost", pid=_dead_pid()))
    _seed(service, tmp_path, _running("reported", pid=_dead_pid()))
    findings = paths.findings_path(tmp_path, "reported")
    findings.parent.mkdir(parents=True, exist_ok=True)
    findings.write_text("{}", encoding="utf-8")

    statuses = {entry.name: entry for entry in service.list(tmp_path)}

    assert statuses["lost"].status == "failed"
    assert statuses["lost"].error == "Process exited without reporting"
    assert statuses["reported"].status == "done"


def test_clear_keeps_running_unless_asked(tmp_path: Path) -> None:
    service = ScoutService(StubSandbox(False))
    done = ScoutEntry(name="old", question="q", status="done", started_at="2026-01-18T11:00:00Z")
    _seed(service, tmp_path, done)
    _seed(service, tmp_path, _running("live"))
    log_path = paths.scout_log_path(tmp_path, "old")
    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_path.write_text("output", encoding="utf-8")

    cleared = service.clear(tmp_path)

    assert cleared == ["old"]
    assert not log_path.exists()
    assert [entry.name for entry in service.list(tmp_path)] == ["live"]


def test_show_parses_log_when_findings_missing(tmp_path: Path) -> None:
    service = ScoutService(StubSandbox(False))
    entry = ScoutEntry(
        name="auth",
        question="q",
        status="done",
        started_at="2026-01-18T12:00:00Z",
        completed_at="2026-01-18T12:00:30Z",
    )
    _seed(service, tmp_path, entry)
    log_path = paths.scout_log_path(tmp_path, "auth")
    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_path.write_text(FINDINGS_OUTPUT, encoding="utf-8")

    shown, findings = service.show(tmp_path, "auth")

    assert shown.status == "done"
    assert findings is not None
    assert findings.duration == 30.0
    assert findings.key_files[0].path == "src/auth/middleware.py"


def test_wait_for_times_out(tmp_path: Path) -> None:
    service = ScoutService(StubSandbox(False))
    _seed(service, tmp_path, _running("live"))
    assert service.is_running(tmp_path, "live")
    assert not service.is_running(tmp_path, "ghost")

    with pytest.raises(ScoutTimeoutError):
        service.wait_for(tmp_path, "live", timeout=0.2, interval=0.05)


def test_agent_command_unsandboxed(tmp_path: Path) -> None:
    service = ScoutService(StubSandbox(False))

    command, policy = service.agent_command(tmp_path, _running("auth"))

    assert command.startswith("claude --print --model haiku ")
    assert policy is None


def test_agent_command_sandboxed_is_read_only(tmp_path: Path) -> None:
    service = ScoutService(StubSandbox(True))

    command, policy = service.agent_command(tmp_path, _running("auth"))

    assert policy is not None
    try:
        payload = json.loads(policy.read_text(encoding="utf-8"))
    finally:
        policy.unlink()
    assert command.startswith("srt --settings ")
    writable = payload["filesystem"]["allowWrite"]
    assert str(tmp_path) not in writable
    assert str(paths.scouts_dir(tmp_path)) in writable
