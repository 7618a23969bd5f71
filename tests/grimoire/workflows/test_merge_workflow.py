from __future__ import annotations

from pathlib import Path

import pytest

from grimoire.services.errors import MergeConflictError, SelfMergeError
from grimoire.services.state import WorktreeStateService
from grimoire.services.workflows import MergeRequest, MergeWorktree
from grimoire.services.worktrees import WorktreeService
from tests.grimoire.helpers import commit_file, git, init_repo


def _feature(repo: Path, name: str = "feat") -> Path:
    info = WorktreeService().create(repo, name, create_branch=True)
    return Path(info.path)


def test_merge_records_merged_status(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    commit_file(_feature(repo), "feature.txt", "x\n")

    outcome = MergeWorktree()(MergeRequest(repo_cwd=repo, name="feat"))

    assert outcome.status == "merged"
    assert (outcome.branch, outcome.into) == ("feat", "main")
    assert outcome.commits == 1
    assert outcome.files == ["feature.txt"]
    assert (repo / "feature.txt").exists()
    assert WorktreeStateService().require_entry(repo, "feat").merge_status == "merged"


def test_squash_creates_single_commit(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    worktree = _feature(repo)
    commit_file(worktree, "a.txt", "a\n")
    commit_file(worktree, "b.txt", "b\n")
    before = int(git(repo, "rev-list", "--count", "HEAD"))

    MergeWorktree()(MergeRequest(repo_cwd=repo, name="feat", squash=True))

    assert int(git(repo, "rev-list", "--count", "HEAD")) == before + 1
    assert git(repo, "log", "-1", "--format=%s") == "Merge feat (squash)"


def test_self_merge_is_rejected_before_git(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    worktree = _feature(repo)
    head = git(worktree, "rev-parse", "HEAD")

    with pytest.raises(SelfMergeError):
        MergeWorktree()(MergeRequest(repo_cwd=worktree, name="feat"))

    assert git(worktree, "rev-parse", "HEAD") == head


def test_conflict_is_recorded_and_reported(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    commit_file(_feature(repo), "README.md", "feature\n")
    commit_file(repo, "README.md", "mainline\n")

    with pytest.raises(MergeConflictError) as excinfo:
        MergeWorktree()(MergeRequest(repo_cwd=repo, name="feat", abort_on_conflict=True))

    assert excinfo.value.files == ["README.md"]
    assert WorktreeStateService().require_entry(repo, "feat").merge_status == "conflict"
    assert git(repo, "status", "--porcelain") == ""


def test_already_merged_branch_is_up_to_date(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    commit_file(_feature(repo), "feature.txt", "x\n")
    service = MergeWorktree()
    service(MergeRequest(repo_cwd=repo, name="feat"))

    outcome = service(MergeRequest(repo_cwd=repo, name="feat"))

    assert outcome.status == "up_to_date"
