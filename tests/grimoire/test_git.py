from __future__ import annotations

from pathlib import Path

from grimoire import git
from tests.grimoire.helpers import commit_file, init_repo
from tests.grimoire.helpers import git as run_git


def test_main_repo_root_from_inside_a_worktree(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    worktree = repo / ".worktrees" / "feat"
    run_git(repo, "worktree", "add", "-b", "feat", str(worktree))

    assert git.main_repo_root(worktree) == repo
    assert git.repo_root(worktree) == worktree.resolve()


def test_main_repo_root_outside_git(tmp_path: Path) -> None:
    assert git.main_repo_root(tmp_path) is None


def test_branch_queries(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    run_git(repo, "checkout", "-b", "feat")
    commit_file(repo, "feature.txt", "x\n")
    run_git(repo, "checkout", "main")

    assert git.current_branch(repo) == "main"
    assert git.branch_exists(repo, "feat")
    assert not git.branch_exists(repo, "nope")
    assert git.default_branch(repo) == "main"
    assert git.commits_ahead(repo, "feat") == 1
    assert git.changed_files(repo, "feat") == ["feature.txt"]
    assert git.commit_subjects(repo, "main", "feat") == ["update feature.txt"]
    assert "feat" not in git.merged_branches(repo, "main")


def test_status_and_staged_files(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    (repo / "a.txt").write_text("a\n", encoding="utf-8")
    (repo / "b.txt").write_text("b\n", encoding="utf-8")
    run_git(repo, "add", "a.txt")

    assert git.status_count(repo) == 2
    assert git.staged_files(repo) == ["a.txt"]


def test_ensure_excluded_is_idempotent(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)

    first = git.ensure_excluded(repo, ("/.grim/", "/.worktrees/"))
    second = git.ensure_excluded(repo, ("/.grim/", "/.worktrees/"))

    assert first == ["/.grim/", "/.worktrees/"]
    assert second == []
    (repo / ".grim").mkdir()
    (repo / ".grim" / "state.json").write_text("{}", encoding="utf-8")
    assert git.status_count(repo) == 0
