from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from grimoire.commands import coordination
from grimoire.services.state import WorktreeStateService
from grimoire.services.worktrees import WorktreeService
from tests.grimoire.helpers import init_repo


@pytest.fixture()
def repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    repo = init_repo(tmp_path)
    service = WorktreeService()
    service.create(repo, "auth", create_branch=True)
    service.create(repo, "billing", create_branch=True)
    monkeypatch.chdir(repo)
    return repo


def test_claim_then_conflicting_claim_fails(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    coordination.claim_worktree(SimpleNamespace(name="auth", author="alice", force=False))

    with pytest.raises(SystemExit) as excinfo:
        coordination.claim_worktree(SimpleNamespace(name="auth", author="bob", force=False))

    assert excinfo.value.code == 1
    assert "alice" in capsys.readouterr().err
    assert WorktreeStateService().require_entry(repo, "auth").claimed_by == "alice"


def test_forced_claim_takes_over(repo: Path) -> None:
    coordination.claim_worktree(SimpleNamespace(name="auth", author="alice", force=False))
    coordination.claim_worktree(SimpleNamespace(name="auth", author="bob", force=True))

    assert WorktreeStateService().require_entry(repo, "auth").claimed_by == "bob"


def test_release_with_next_stage_logs_handoff(repo: Path) -> None:
    coordination.claim_worktree(SimpleNamespace(name="auth", author="alice", force=False))
    coordination.release_worktree(
        SimpleNamespace(name="auth", note=None, next="test", reason=None, author="alice")
    )

    entry = WorktreeStateService().require_entry(repo, "auth")
    assert entry.claimed_by is None
    assert entry.logs[-1].type == "handoff"
    assert entry.logs[-1].message == "Handoff to test"
    assert entry.current_stage == "test"
    assert entry.stage_history[-1].to_stage == "test"


def test_release_with_reason_logs_interrupt(repo: Path) -> None:
    coordination.release_worktree(
        SimpleNamespace(name="auth", note=None, next=None, reason="blocked on API", author="alice")
    )

    last = WorktreeStateService().require_entry(repo, "auth").logs[-1]
    assert (last.type, last.message) == ("interrupt", "Interrupted: blocked on API")
    assert last.metadata is not None and last.metadata.reason == "blocked on API"


def test_plain_release_writes_no_log(repo: Path) -> None:
    coordination.release_worktree(
        SimpleNamespace(name="auth", note=None, next=None, reason=None, author="alice")
    )

    assert WorktreeStateService().require_entry(repo, "auth").logs == []


def test_handoff_sets_stage_and_releases(repo: Path) -> None:
    coordination.claim_worktree(SimpleNamespace(name="auth", author="alice", force=False))
    coordination.handoff_worktree(
        SimpleNamespace(name="auth", to="reviewer", stage="review", message=None, author="alice")
    )

    entry = WorktreeStateService().require_entry(repo, "auth")
    assert entry.claimed_by is None
    assert entry.current_stage == "review"
    assert entry.logs[-1].metadata is not None
    assert entry.logs[-1].metadata.next_stage == "review"
    assert entry.logs[-1].message == "Handoff to reviewer"


def test_handoff_rejects_unknown_stage(repo: Path) -> None:
    with pytest.raises(SystemExit):
        coordination.handoff_worktree(
            SimpleNamespace(name="auth", to="x", stage="ship", message=None, author=None)
        )


def test_available_skips_claimed(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    coordination.claim_worktree(SimpleNamespace(name="auth", author="alice", force=False))
    capsys.readouterr()

    coordination.available_worktrees(SimpleNamespace(stage=None, json=True))

    rows = json.loads(capsys.readouterr().out)
    assert [row["name"] for row in rows] == ["billing"]


def test_available_filters_by_stage(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    WorktreeStateService().set_stage(repo, "billing", "test")

    coordination.available_worktrees(SimpleNamespace(stage="test", json=False))

    out = capsys.readouterr().out
    assert "billing" in out and "auth" not in out
    assert out.splitlines()[0].split() == ["NAME", "BRANCH", "STAGE"]


def test_log_append_and_show(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    coordination.worktree_log(
        SimpleNamespace(name="auth", message="switched to tokens", author="alice", limit=None, json=False)
    )
    coordination.worktree_log(
        SimpleNamespace(name="auth", message="added tests", author="bob", limit=None, json=False)
    )
    capsys.readouterr()

    coordination.worktree_log(
        SimpleNamespace(name="auth", message=None, author=None, limit=1, json=False)
    )

    out = capsys.readouterr().out
    assert "bob: added tests" in out
    assert "switched to tokens" not in out


def test_log_unknown_worktree_exits(repo: Path) -> None:
    with pytest.raises(SystemExit):
        coordination.worktree_log(
            SimpleNamespace(name="ghost", message=None, author=None, limit=None, json=False)
        )
