from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from grimoire.commands import checkpoint, each, merge, nav, new, remove
from grimoire.services.state import WorktreeStateService
from tests.grimoire.helpers import commit_file, init_repo


@pytest.fixture()
def repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    repo = init_repo(tmp_path)
    monkeypatch.chdir(repo)
    return repo


def _new(name: str) -> None:
    new.new_worktree(SimpleNamespace(branch=name, create_branch=True, issue=None))


def test_new_prints_path_and_path_command_agrees(
    repo: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _new("feature/login")
    created = capsys.readouterr().out.strip().splitlines()[-1]

    nav.worktree_path(SimpleNamespace(name="feature-login"))

    assert capsys.readouterr().out.strip() == created
    assert Path(created) == repo / ".worktrees" / "feature-login"


def test_path_of_unknown_worktree_exits(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        nav.worktree_path(SimpleNamespace(name="ghost"))

    assert excinfo.value.code == 1
    assert "ghost" in capsys.readouterr().err


def test_merge_conflict_json(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _new("feat")
    commit_file(repo / ".worktrees" / "feat", "README.md", "feature\n")
    commit_file(repo, "README.md", "main\n")
    capsys.readouterr()

    with pytest.raises(SystemExit) as excinfo:
        merge.merge_worktree(SimpleNamespace(name="feat", json=True, squash=False, no_ff=False))

    assert excinfo.value.code == 1
    payload = json.loads(capsys.readouterr().out)
    assert payload == {"status": "conflict", "name": "feat", "files": ["README.md"]}


def test_merge_rejects_conflicting_strategies(repo: Path) -> None:
    with pytest.raises(SystemExit):
        merge.merge_worktree(SimpleNamespace(name="feat", json=False, squash=True, no_ff=True))


def test_merge_success_json(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _new("feat")
    commit_file(repo / ".worktrees" / "feat", "new.txt", "x\n")
    capsys.readouterr()

    merge.merge_worktree(SimpleNamespace(name="feat", json=True, squash=False, no_ff=True))

    payload = json.loads(capsys.readouterr().out)
    assert payload["status"] == "merged"
    assert payload["files"] == ["new.txt"]


def test_each_summary_and_exit_code(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _new("one")
    _new("two")
    capsys.readouterr()

    with pytest.raises(SystemExit) as excinfo:
        each.run_each(
            SimpleNamespace(
                command=["test", '"$GRIMOIRE_WORKTREE"', "=", "one"],
                parallel=2,
                fail_fast=False,
                filter="all",
            )
        )

    assert excinfo.value.code == 1
    assert "Summary: 1 passed, 1 failed" in capsys.readouterr().out


def test_each_without_worktrees(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    each.run_each(SimpleNamespace(command=["true"], parallel=1, fail_fast=False, filter="all"))

    assert "No matching worktrees." in capsys.readouterr().out


def test_checkpoint_command_records_head(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _new("feat")
    checkpoint.create_checkpoint(SimpleNamespace(name="feat", message="wip", author="alice"))
    capsys.readouterr()

    checkpoint.list_checkpoints(SimpleNamespace(name="feat", json=True))

    [item] = json.loads(capsys.readouterr().out)
    assert item["message"] == "wip"
    assert item["author"] == "alice"


def test_remove_refuses_dirty_worktree(repo: Path) -> None:
    _new("feat")
    (repo / ".worktrees" / "feat" / "scratch.txt").write_text("x", encoding="utf-8")

    with pytest.raises(SystemExit):
        remove.remove_worktree(SimpleNamespace(name="feat", delete_branch=False, force=False))

    assert WorktreeStateService().get_entry(repo, "feat") is not None
    remove.remove_worktree(SimpleNamespace(name="feat", delete_branch=True, force=True))
    assert WorktreeStateService().get_entry(repo, "feat") is None
