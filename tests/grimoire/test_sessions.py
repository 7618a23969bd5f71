from __future__ import annotations

import os
import subprocess
import time
from pathlib import Path
from typing import Callable

import pytest

from grimoire import paths
from grimoire.models import AgentSession
from grimoire.services.errors import NotFoundError, SessionAlreadyRunningError
from grimoire.services.sessions import (
    AgentSessionService,
    SpawnRequest,
    SupervisedProcess,
    new_session_id,
    session_env,
    tmux_command,
)
from grimoire.services.state import WorktreeStateService
from grimoire.services.worktrees import WorktreeService
from tests.grimoire.helpers import SRC, init_repo


@pytest.fixture()
def worktree(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    existing = os.environ.get("PYTHONPATH")
    monkeypatch.setenv("PYTHONPATH", f"{SRC}{os.pathsep}{existing}" if existing else str(SRC))
    repo = init_repo(tmp_path)
    info = WorktreeService().create(repo, "feat", create_branch=True)
    return Path(info.path)


def _eventually(check: Callable[[], bool], timeout: float = 15.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if check():
            return True
        time.sleep(0.1)
    return check()


def _dead_pid() -> int:
    process = subprocess.Popen(["true"])
    process.wait()
    return process.pid


def test_session_env_names_the_worktree(tmp_path: Path) -> None:
    env = session_env("feat", tmp_path, "sess_1")
    assert env["GRIMOIRE_WORKTREE"] == "feat"
    assert env["GRIMOIRE_WORKTREE_PATH"] == str(tmp_path)
    assert env["GRIMOIRE_SESSION_ID"] == "sess_1"
    assert new_session_id().startswith("sess_")


def test_headless_exit_is_recorded_by_supervisor(worktree: Path) -> None:
    service = AgentSessionService()

    session = service.spawn(worktree, SpawnRequest(command="echo hello", prompt="say hi"))

    assert session.status == "running"
    assert session.prompt == "say hi"
    assert _eventually(lambda: service.get_session(worktree).status != "running")
    final = service.get_session(worktree)
    assert final is not None
    assert final.status == "stopped"
    assert final.exit_code == 0
    assert "hello" in paths.session_log_path(worktree).read_text(encoding="utf-8")
    repo_root = worktree.parent.parent
    assert WorktreeStateService().require_entry(repo_root, "feat").completed_at


def test_nonzero_exit_is_a_crash(worktree: Path) -> None:
    service = AgentSessionService()

    service.spawn(worktree, SpawnRequest(command="exit 3"))

    assert _eventually(lambda: service.get_session(worktree).status != "running")
    final = service.get_session(worktree)
    assert final is not None
    assert (final.status, final.exit_code) == ("crashed", 3)


def test_cleanup_paths_are_removed_after_exit(worktree: Path, tmp_path: Path) -> None:
    policy = tmp_path / "srt-config-test.json"
    policy.write_text("{}", encoding="utf-8")
    service = AgentSessionService()

    service.spawn(worktree, SpawnRequest(command="true", cleanup_paths=(policy,)))

    assert _eventually(lambda: not policy.exists())


def test_failed_spawn_removes_cleanup_paths(worktree: Path, tmp_path: Path) -> None:
    service = AgentSessionService()
    service.spawn(worktree, SpawnRequest(command="sleep 30"))
    policy = tmp_path / "srt-config-busy.json"
    policy.write_text("{}", encoding="utf-8")

    with pytest.raises(SessionAlreadyRunningError):
        service.spawn(worktree, SpawnRequest(command="true", cleanup_paths=(policy,)))

    assert not policy.exists()
    service.terminate(worktree)


def test_tmux_command_removes_policy_after_agent(tmp_path: Path) -> None:
    policy = tmp_path / "srt config.json"
    plain = SpawnRequest(command="claude hi", mode="tmux")
    wrapped = SpawnRequest(command="claude hi", mode="tmux", cleanup_paths=(policy,))

    assert tmux_command(plain) == "claude hi"
    assert tmux_command(wrapped) == f"claude hi; rm -f '{policy}'"


def test_terminate_stops_running_agent(worktree: Path) -> None:
    service = AgentSessionService()
    session = service.spawn(worktree, SpawnRequest(command="sleep 30"))

    with pytest.raises(SessionAlreadyRunningError):
        service.spawn(worktree, SpawnRequest(command="sleep 30"))

    stopped = service.terminate(worktree)

    assert stopped.status == "stopped"
    assert stopped.session_id == session.session_id
    time.sleep(0.5)
    assert service.get_session(worktree).status == "stopped"


def test_repeated_kills_always_end_stopped(worktree: Path) -> None:
    service = AgentSessionService()
    outcomes: list[tuple[str, int | None]] = []

    for _ in range(6):
        spawned = service.spawn(worktree, SpawnRequest(command="sleep 30"))
        time.sleep(0.4)
        service.terminate(worktree)
        time.sleep(1.0)
        final = service.get_session(worktree)
        assert final is not None and final.session_id == spawned.session_id
        outcomes.append((final.status, final.exit_code))

    assert outcomes == [("stopped", None)] * 6


def test_terminate_without_session(worktree: Path) -> None:
    with pytest.raises(NotFoundError):
        AgentSessionService().terminate(worktree)


def test_update_session_merges_fields(worktree: Path) -> None:
    repo_root = worktree.parent.parent
    WorktreeStateService().update_worktree(
        repo_root,
        "feat",
        {"session": AgentSession(session_id="sess_x", pid=_dead_pid(), started_at="t")},
    )
    service = AgentSessionService()

    updated = service.update_session(worktree, {"tmux_window": "grim-feat"})

    assert updated.tmux_window == "grim-feat"
    assert updated.session_id == "sess_x"
    assert service.get_session(worktree) == updated


def test_update_session_without_session(worktree: Path) -> None:
    with pytest.raises(NotFoundError):
        AgentSessionService().update_session(worktree, {"prompt": "x"})


def test_refresh_marks_vanished_process_crashed(worktree: Path) -> None:
    repo_root = worktree.parent.parent
    WorktreeStateService().update_worktree(
        repo_root,
        "feat",
        {"session": AgentSession(session_id="sess_x", pid=_dead_pid(), started_at="t")},
    )

    refreshed = AgentSessionService().refresh_session_status(worktree)

    assert refreshed is not None
    assert refreshed.status == "crashed"
    assert refreshed.ended_at


def test_late_exit_report_does_not_revive_a_stopped_session(worktree: Path) -> None:
    repo_root = worktree.parent.parent
    service = AgentSessionService()
    WorktreeStateService().update_worktree(
        repo_root,
        "feat",
        {"session": AgentSession(session_id="sess_x", pid=1, status="stopped", started_at="t")},
    )

    result = service.record_exit(repo_root, "feat", "sess_x", 9)
    stale = service.record_exit(repo_root, "feat", "sess_other", 0)

    assert result is not None and result.status == "stopped"
    assert stale is not None and stale.session_id == "sess_x"
    assert service.get_session(worktree).exit_code is None


def test_supervised_process_reports_exit_code() -> None:
    process = SupervisedProcess.start(["sh", "-c", "exit 5"], detached=False)

    assert process.wait(timeout=10) == 5
    assert not process.is_alive()
    assert SupervisedProcess.adopt(_dead_pid()).send(0) is False
