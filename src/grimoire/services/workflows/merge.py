"""Merge a worktree's branch into the current branch."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from ... import git, log
from ..base import BaseService
from ..errors import (
    GitCommandError,
    MergeConflictError,
    MergeFailedError,
    SelfMergeError,
)
from ..state import WorktreeStateService
from ..worktrees import WorktreeService, resolve_repo_root

MergeResultStatus = Literal["merged", "up_to_date"]


@dataclass(frozen=True)
class MergeRequest:
    repo_cwd: Path
    name: str
    squash: bool = False
    no_ff: bool = False
    abort_on_conflict: bool = False


@dataclass(frozen=True)
class MergeOutcome:
    name: str
    branch: str
    into: str
    status: MergeResultStatus
    commits: int = 0
    files: list[str] = field(default_factory=list)


def merge_args(branch: str, *, squash: bool, no_ff: bool) -> list[str]:
    """Return the ``git merge`` arguments for a strategy.

    Example:
        >>> merge_args("feat", squash=True, no_ff=False)
        ['merge', '--squash', 'feat']
        >>> merge_args("feat", squash=False, no_ff=True)
        ['merge', '--no-ff', 'feat', '--no-edit']
    """
    args = ["merge"]
    if squash:
        args.append("--squash")
    elif no_ff:
        args.append("--no-ff")
    args.append(branch)
    if not squash:
        args.append("--no-edit")
    return args


def abort_merge(cwd: Path) -> None:
    """Back out of a conflicted merge, including squash merges without MERGE_HEAD."""
    if git.run_git(["merge", "--abort"], cwd).returncode != 0:
        git.run_git(["reset", "--merge"], cwd)


class MergeWorktree(BaseService[MergeRequest, MergeOutcome]):
    """Merge a worktree branch into the checkout at ``repo_cwd``.

    Conflicts are recorded as ``mergeStatus=conflict`` before
    ``MergeConflictError`` is raised, so later invocations can see them.
    """

    def __init__(
        self,
        worktrees: WorktreeService | None = None,
        state: WorktreeStateService | None = None,
    ) -> None:
        self.state = state or WorktreeStateService()
        self.worktrees = worktrees or WorktreeService(self.state)

    def _record(self, repo_root: Path, name: str, status: str) -> None:
        if self.state.get_entry(repo_root, name) is not None:
            self.state.update_worktree(repo_root, name, {"merge_status": status})

    def _run(self, request: MergeRequest) -> MergeOutcome:
        repo_root = resolve_repo_root(request.repo_cwd)
        target_dir = git.repo_root(request.repo_cwd) or repo_root
        info = self.worktrees.get(repo_root, request.name)
        if not info.branch:
            raise GitCommandError(f"worktree '{request.name}' has a detached HEAD")
        into = git.current_branch(target_dir)
        if info.branch == into:
            raise SelfMergeError(info.branch)

        commits = git.commits_ahead(target_dir, info.branch)
        files = git.changed_files(target_dir, info.branch)
        result = git.run_git(
            merge_args(info.branch, squash=request.squash, no_ff=request.no_ff),
            target_dir,
        )
        output = result.output
        if result.returncode != 0:
            if git.is_conflict_output(output):
                conflicts = git.conflict_files_from_output(output) or git.conflicted_files(
                    target_dir
                )
                self._record(repo_root, request.name, "conflict")
                if request.abort_on_conflict:
                    abort_merge(target_dir)
                raise MergeConflictError(info.branch, conflicts)
            if "Already up to date" not in output:
                raise MergeFailedError(info.branch, output.strip() or "unknown error")

        if "Already up to date" in output:
            log.debug(f"{info.branch} already merged into {into}")
            self._record(repo_root, request.name, "merged")
            return MergeOutcome(request.name, info.branch, into, "up_to_date")

        if request.squash:
            commit = git.run_git(
                ["commit", "-m", f"Merge {info.branch} (squash)"], target_dir
            )
            if commit.returncode != 0 and "nothing to commit" not in commit.output:
                raise MergeFailedError(info.branch, commit.output.strip())

        self._record(repo_root, request.name, "merged")
        return MergeOutcome(request.name, info.branch, into, "merged", commits, files)
