"""Merge finished child worktrees back into the current branch."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Literal

from ... import git, log
from ...models import AgentSession, WorktreeStateEntry
from ..base import BaseService
from ..errors import MergeConflictError, MergeFailedError, NotFoundError
from ..sessions import AgentSessionService, is_pid_alive
from ..state import WorktreeStateService
from ..worktrees import WorktreeService, resolve_repo_root
from .merge import MergeRequest, MergeWorktree
from .targets import child_entries, topological_order

CollectStrategy = Literal["merge", "squash", "no-ff"]
CollectStatus = Literal["merged", "would_merge", "skipped", "not_ready", "conflict", "failed"]

SKIP_NOT_FOUND = "worktree not found"
SKIP_ALREADY_MERGED = "already merged"
SKIP_NOT_COMPLETED = "work not yet completed"
SKIP_UNCOMMITTED = "uncommitted changes - commit your work first"
SKIP_NO_COMMITS = "no new commits"


@dataclass(frozen=True)
class CollectRequest:
    repo_cwd: Path
    names: tuple[str, ...] = ()
    strategy: CollectStrategy = "merge"
    delete: bool = False
    dry_run: bool = False
    on_result: Callable[["CollectResult"], None] | None = None


@dataclass(frozen=True)
class CollectResult:
    name: str
    branch: str
    status: CollectStatus
    message: str = ""
    commits: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    removed: bool = False


@dataclass
class CollectOutcome:
    results: list[CollectResult] = field(default_factory=list)

    @property
    def had_conflict(self) -> bool:
        return any(r.status == "conflict" for r in self.results)

    def count(self, status: CollectStatus) -> int:
        return sum(1 for r in self.results if r.status == status)


def is_completed(
    entry: WorktreeStateEntry, session: AgentSession | None, *, explicit: bool
) -> bool:
    """Return whether a child's work is finished and can be merged.

    Example:
        >>> e = WorktreeStateEntry(name="a", merge_status="ready")
        >>> is_completed(e, None, explicit=False)
        True
        >>> is_completed(WorktreeStateEntry(name="b"), None, explicit=False)
        False
    """
    if entry.merge_status in {"ready", "merged"}:
        return True
    if session is not None:
        if session.status != "running":
            return True
        return not is_pid_alive(session.pid)
    if entry.completed_at:
        return True
    return explicit


class CollectWorktrees(BaseService[CollectRequest, CollectOutcome]):
    """Merge each completed child in order, skipping instead of aborting the batch.

    A conflicting merge is aborted in the target checkout so the next child
    merges against a clean tree; the conflict stays recorded on the child's
    entry and the child worktree is kept.
    """

    def __init__(
        self,
        worktrees: WorktreeService | None = None,
        state: WorktreeStateService | None = None,
        sessions: AgentSessionService | None = None,
    ) -> None:
        self.state = state or WorktreeStateService()
        self.worktrees = worktrees or WorktreeService(self.state)
        self.sessions = sessions or AgentSessionService(self.state)
        self.merge = MergeWorktree(self.worktrees, self.state)

    def _emit(self, outcome: CollectOutcome, request: CollectRequest, result: CollectResult) -> None:
        outcome.results.append(result)
        if request.on_result is not None:
            request.on_result(result)

    def _run(self, request: CollectRequest) -> CollectOutcome:
        repo_root = resolve_repo_root(request.repo_cwd)
        target_dir = git.repo_root(request.repo_cwd) or repo_root
        state = self.state.get_state(repo_root)
        outcome = CollectOutcome()

        explicit = set(request.names)
        entries: list[WorktreeStateEntry] = []
        for name in request.names:
            entry = state.find(name)
            if entry is None:
                self._emit(outcome, request, CollectResult(name, "", "skipped", SKIP_NOT_FOUND))
            else:
                entries.append(entry)
        if not request.names:
            entries = child_entries(state)

        target_branch = git.current_branch(target_dir)
        for entry in topological_order(entries):
            name = entry.name
            try:
                info = self.worktrees.get(repo_root, name)
            except NotFoundError:
                self._emit(outcome, request, CollectResult(name, entry.branch, "skipped", SKIP_NOT_FOUND))
                continue
            branch = info.branch or entry.branch
            if entry.merge_status == "merged":
                self._emit(outcome, request, CollectResult(name, branch, "skipped", SKIP_ALREADY_MERGED))
                continue
            session = self.sessions.refresh(repo_root, name)
            if not is_completed(entry, session, explicit=name in explicit):
                self._emit(outcome, request, CollectResult(name, branch, "not_ready", SKIP_NOT_COMPLETED))
                continue
            commits = git.commit_subjects(target_dir, target_branch, branch)
            if not commits:
                self._emit(outcome, request, CollectResult(name, branch, "skipped", SKIP_NO_COMMITS))
                continue
            if request.dry_run:
                self._emit(
                    outcome,
                    request,
                    CollectResult(name, branch, "would_merge", "would merge", commits),
                )
                continue
            if info.uncommitted:
                self._emit(outcome, request, CollectResult(name, branch, "skipped", SKIP_UNCOMMITTED))
                continue

            try:
                merged = self.merge(
                    MergeRequest(
                        repo_cwd=request.repo_cwd,
                        name=name,
                        squash=request.strategy == "squash",
                        no_ff=request.strategy == "no-ff",
                        abort_on_conflict=True,
                    )
                )
            except MergeConflictError as exc:
                log.debug(f"collect: {name} conflicted")
                self._emit(
                    outcome,
                    request,
                    CollectResult(name, branch, "conflict", str(exc), commits, exc.files),
                )
                continue
            except MergeFailedError as exc:
                self._emit(outcome, request, CollectResult(name, branch, "failed", exc.detail, commits))
                continue

            removed = False
            if request.delete:
                self.worktrees.remove(repo_root, name)
                removed = True
            self._emit(
                outcome,
                request,
                CollectResult(
                    name,
                    branch,
                    "merged",
                    f"merged into {target_branch}",
                    commits,
                    merged.files,
                    removed,
                ),
            )
        return outcome
