"""Stage and commit everything in child worktrees so they can be collected."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from ... import git, paths
from ..base import BaseService
from ..errors import GitCommandError, NotFoundError, ValidationFailedError
from ..worktrees import WORKTREE_ENV_VAR, WorktreeService, resolve_repo_root


@dataclass(frozen=True)
class CommitRequest:
    repo_cwd: Path
    names: list[str] = field(default_factory=list)
    message: str | None = None
    dry_run: bool = False


@dataclass(frozen=True)
class CommitResult:
    name: str
    ok: bool
    message: str
    hash: str | None = None

    @property
    def committed(self) -> bool:
        return self.hash is not None


@dataclass
class CommitOutcome:
    results: list[CommitResult] = field(default_factory=list)
    dry_run: bool = False

    def count(self, kind: str) -> int:
        if kind == "committed":
            return sum(1 for r in self.results if r.committed)
        if kind == "skipped":
            return sum(1 for r in self.results if r.ok and not r.committed)
        return sum(1 for r in self.results if not r.ok)


def current_worktree_name(repo_cwd: Path) -> str | None:
    """Name the managed worktree this process runs in, if any.

    Example:
        >>> current_worktree_name(Path("/repo/.worktrees/feature-x/src"))
        'feature-x'
    """
    env_name = os.environ.get(WORKTREE_ENV_VAR)
    if env_name:
        return env_name
    parts = repo_cwd.resolve().parts if repo_cwd.exists() else repo_cwd.parts
    for index, part in enumerate(parts[:-1]):
        if part == paths.WORKTREES_DIRNAME:
            return parts[index + 1]
    return None


class CommitWorktrees(BaseService[CommitRequest, CommitOutcome]):
    """Run ``git add -A`` and commit in each named worktree.

    Unlike a checkpoint this stages everything and records no metadata. A
    worktree that cannot be found or committed is reported and the batch
    continues.
    """

    def __init__(self, worktrees: WorktreeService | None = None) -> None:
        self.worktrees = worktrees or WorktreeService()

    def _commit_one(self, repo_root: Path, name: str, request: CommitRequest) -> CommitResult:
        try:
            path = Path(self.worktrees.get(repo_root, name).path)
        except NotFoundError as exc:
            return CommitResult(name, False, str(exc))
        changes = git.status_lines(path)
        if not changes:
            return CommitResult(name, True, "nothing to commit")
        message = request.message or f"wt({name}): {git.change_summary(changes)}"
        if request.dry_run:
            return CommitResult(name, True, f'would commit: "{message}"')
        try:
            git.git_output(["add", "-A"], path)
            git.git_output(["commit", "-m", message], path)
        except GitCommandError as exc:
            return CommitResult(name, False, str(exc))
        short = git.git_output(["rev-parse", "--short", "HEAD"], path)
        return CommitResult(name, True, message, hash=short)

    def _run(self, request: CommitRequest) -> CommitOutcome:
        repo_root = resolve_repo_root(request.repo_cwd)
        names = list(request.names)
        if not names:
            detected = current_worktree_name(request.repo_cwd)
            if detected is None:
                raise ValidationFailedError(
                    "no worktree given and not inside one",
                    recovery_hint='grim wt commit <name> [-m "message"]',
                )
            names = [detected]
        outcome = CommitOutcome(dry_run=request.dry_run)
        for name in names:
            outcome.results.append(self._commit_one(repo_root, name, request))
        return outcome
