from __future__ import annotations

from pathlib import Path

import pytest

from grimoire import paths
from grimoire.models import WorktreeStateEntry
from grimoire.services.errors import (
    BranchNotFoundError,
    DirtyWorktreeError,
    NotFoundError,
    ProtectedBranchError,
    WorktreeAlreadyExistsError,
)
from grimoire.services.state import WorktreeStateService
from grimoire.services.worktrees import WorktreeService
from tests.grimoire.helpers import commit_file, git, init_repo


def test_create_registers_worktree_and_state(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    (repo / ".env.local").write_text("TOKEN=1\n", encoding="utf-8")
    service = WorktreeService()

    info = service.create(repo, "feature/login", create_branch=True, from_issue="42")

    path = repo / ".worktrees" / "feature-login"
    assert info.name == "feature-login"
    assert Path(info.path) == path
    assert (path / ".env.local").read_text(encoding="utf-8") == "TOKEN=1\n"
    entry = WorktreeStateService().require_entry(repo, "feature-login")
    assert entry.branch == "feature/login"
    assert entry.linked_issue == "42"
    assert entry.metadata is not None and entry.metadata.created_by == "human"
    listed = service.list(repo)
    assert [(i.name, i.branch, i.status) for i in listed] == [
        ("feature-login", "feature/login", "active")
    ]


def test_create_records_parent_from_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    repo = init_repo(tmp_path)
    service = WorktreeService()
    service.create(repo, "parent", create_branch=True)
    monkeypatch.setenv("GRIMOIRE_WORKTREE", "parent")
    monkeypatch.setenv("GRIMOIRE_SESSION_ID", "sess_parent")

    service.create(repo, "child", create_branch=True)

    state = WorktreeStateService()
    child = state.require_entry(repo, "child")
    assert child.parent_worktree == "parent"
    assert child.parent_session == "sess_parent"
    assert state.require_entry(repo, "parent").child_worktrees == ["child"]


def test_create_rejects_duplicates_and_missing_branches(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    service = WorktreeService()
    service.create(repo, "feat", create_branch=True)

    with pytest.raises(WorktreeAlreadyExistsError):
        service.create(repo, "feat", create_branch=True)
    with pytest.raises(BranchNotFoundError):
        service.create(repo, "missing")


def test_get_unknown_worktree(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    with pytest.raises(NotFoundError):
        WorktreeService().get(repo, "ghost")


def test_remove_refuses_dirty_worktree_without_force(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    service = WorktreeService()
    info = service.create(repo, "feat", create_branch=True)
    (Path(info.path) / "scratch.txt").write_text("wip\n", encoding="utf-8")

    with pytest.raises(DirtyWorktreeError):
        service.remove(repo, "feat")
    service.remove(repo, "feat", delete_branch=True, force=True)

    assert not Path(info.path).exists()
    assert WorktreeStateService().get_entry(repo, "feat") is None
    assert git(repo, "branch", "--list", "feat") == ""


def test_remove_protects_main(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    git(repo, "checkout", "-b", "work")
    path = paths.worktrees_root(repo) / "main"
    git(repo, "worktree", "add", str(path), "main")

    with pytest.raises(ProtectedBranchError):
        WorktreeService().remove(repo, "main", delete_branch=True)


def test_merged_branch_is_stale(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    service = WorktreeService()
    info = service.create(repo, "feat", create_branch=True)
    commit_file(Path(info.path), "feature.txt", "x\n")
    git(repo, "merge", "--no-ff", "--no-edit", "feat")

    statuses = {i.name: i.status for i in service.list(repo)}

    assert statuses == {"feat": "stale"}


def test_get_status_agrees_with_list(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    service = WorktreeService()
    done = service.create(repo, "done-branch", create_branch=True)
    commit_file(Path(done.path), "done.txt", "x\n")
    git(repo, "merge", "--no-ff", "--no-edit", "done-branch")
    commit_file(repo, "later.txt", "y\n")
    service.create(repo, "fresh", create_branch=True)

    listed = {i.name: i.status for i in service.list(repo)}

    assert listed == {"done-branch": "stale", "fresh": "active"}
    assert service.get(repo, "done-branch").status == "stale"
    assert service.get(repo, "fresh").status == "active"


def test_adopt_registers_unknown_worktree(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    path = paths.worktrees_root(repo) / "manual"
    git(repo, "worktree", "add", "-b", "manual", str(path))
    state = WorktreeStateService()
    assert state.get_entry(repo, "manual") is None

    entry = WorktreeService().adopt(repo, "manual")

    assert entry.branch == "manual"
    assert state.require_entry(repo, "manual").branch == "manual"


def test_adopt_keeps_existing_entry(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    service = WorktreeService()
    service.create(repo, "feat", create_branch=True)
    WorktreeStateService().update_worktree(repo, "feat", {"claimed_by": "alice"})

    entry = service.adopt(repo, "feat")

    assert entry.claimed_by == "alice"
    assert isinstance(entry, WorktreeStateEntry)
