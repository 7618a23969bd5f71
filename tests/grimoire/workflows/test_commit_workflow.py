from __future__ import annotations

from pathlib import Path

import pytest

from grimoire.services.errors import ValidationFailedError
from grimoire.services.workflows import (
    CollectRequest,
    CollectWorktrees,
    CommitRequest,
    CommitWorktrees,
)
from grimoire.services.workflows.commit import current_worktree_name
from grimoire.services.worktrees import WORKTREE_ENV_VAR, WorktreeService
from tests.grimoire.helpers import git, init_repo


def _dirty_child(repo: Path, name: str) -> Path:
    path = Path(WorktreeService().create(repo, name, create_branch=True).path)
    (path / "new.py").write_text("print('hi')\n", encoding="utf-8")
    return path


def test_commits_everything_with_generated_message(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    path = _dirty_child(repo, "auth")
    (path / "README.md").write_text("changed\n", encoding="utf-8")

    outcome = CommitWorktrees()(CommitRequest(repo_cwd=repo, names=["auth"]))

    (result,) = outcome.results
    assert result.ok and result.committed
    assert result.message == "wt(auth): 1 added, 1 modified"
    assert git(path, "log", "-1", "--format=%s") == "wt(auth): 1 added, 1 modified"
    assert result.hash == git(path, "rev-parse", "--short", "HEAD")
    assert git(path, "status", "--porcelain") == ""


def test_committed_child_is_no_longer_skipped_by_collect(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    _dirty_child(repo, "auth")

    CommitWorktrees()(CommitRequest(repo_cwd=repo, names=["auth"], message="feat: auth"))
    collected = CollectWorktrees()(CollectRequest(repo_cwd=repo, names=("auth",)))

    assert [r.status for r in collected.results] == ["merged"]
    assert (repo / "new.py").exists()


def test_dry_run_and_clean_and_missing(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    dirty = _dirty_child(repo, "auth")
    WorktreeService().create(repo, "billing", create_branch=True)
    head = git(dirty, "rev-parse", "HEAD")

    outcome = CommitWorktrees()(
        CommitRequest(repo_cwd=repo, names=["auth", "billing", "ghost"], dry_run=True)
    )

    messages = {r.name: (r.ok, r.message) for r in outcome.results}
    assert messages["auth"] == (True, 'would commit: "wt(auth): 1 added"')
    assert messages["billing"] == (True, "nothing to commit")
    assert messages["ghost"] == (False, "worktree 'ghost' not found")
    assert (outcome.count("committed"), outcome.count("skipped"), outcome.count("failed")) == (
        0,
        2,
        1,
    )
    assert git(dirty, "rev-parse", "HEAD") == head


def test_defaults_to_current_worktree(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    repo = init_repo(tmp_path)
    path = _dirty_child(repo, "auth")

    outcome = CommitWorktrees()(CommitRequest(repo_cwd=path, message="wip"))

    assert [(r.name, r.committed) for r in outcome.results] == [("auth", True)]

    monkeypatch.setenv(WORKTREE_ENV_VAR, "billing")
    assert current_worktree_name(repo) == "billing"


def test_requires_a_target_outside_worktrees(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)

    with pytest.raises(ValidationFailedError):
        CommitWorktrees()(CommitRequest(repo_cwd=repo))
