"""Block until child worktrees' agents finish."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Literal

from ...models import WorktreeStateEntry
from ...polling import Poller, cancel_on_interrupt
from ..base import BaseService
from ..sessions import AgentSessionService
from ..state import WorktreeStateService
from ..worktrees import resolve_repo_root
from .targets import child_entries, explicit_entries

WaitStatus = Literal["running", "completed", "crashed", "timeout"]
DEFAULT_INTERVAL = 2.0


@dataclass(frozen=True)
class WaitRequest:
    repo_cwd: Path
    names: tuple[str, ...] = ()
    any: bool = False
    timeout: float | None = None
    interval: float = DEFAULT_INTERVAL
    stop: threading.Event | None = None
    on_change: Callable[["WaitResult"], None] | None = None


@dataclass
class WaitResult:
    name: str
    status: WaitStatus = "running"
    exit_code: int | None = None


@dataclass
class WaitOutcome:
    results: list[WaitResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def failed(self) -> bool:
        return any(r.status in {"crashed", "timeout"} for r in self.results)

    def count(self, status: WaitStatus) -> int:
        return sum(1 for r in self.results if r.status == status)


class WaitForWorktrees(BaseService[WaitRequest, WaitOutcome]):
    """Poll sessions until every target (or any, with ``any``) is finished.

    The loop is cancellable through ``stop`` and by SIGINT when run on the
    main thread; a cancelled wait reports unfinished targets as running.
    """

    def __init__(
        self,
        state: WorktreeStateService | None = None,
        sessions: AgentSessionService | None = None,
    ) -> None:
        self.state = state or WorktreeStateService()
        self.sessions = sessions or AgentSessionService(self.state)

    def status_of(self, repo_root: Path, entry: WorktreeStateEntry) -> WaitResult:
        session = self.sessions.refresh(repo_root, entry.name)
        if session is not None:
            if session.status == "running":
                return WaitResult(entry.name)
            status: WaitStatus = "completed" if session.status == "stopped" else "crashed"
            return WaitResult(entry.name, status, session.exit_code)
        if entry.merge_status not in (None, "pending") or entry.completed_at:
            return WaitResult(entry.name, "completed")
        return WaitResult(entry.name)

    def _run(self, request: WaitRequest) -> WaitOutcome:
        repo_root = resolve_repo_root(request.repo_cwd)
        state = self.state.get_state(repo_root)
        if request.names:
            targets = explicit_entries(state, list(request.names))
        else:
            targets = child_entries(state)
        outcome = WaitOutcome(results=[WaitResult(entry.name) for entry in targets])
        if not targets:
            return outcome

        results = {result.name: result for result in outcome.results}
        poller = Poller(request.interval, request.timeout, stop=request.stop)
        with cancel_on_interrupt(poller):
            for _ in poller:
                current = self.state.get_state(repo_root)
                for name, result in results.items():
                    if result.status != "running":
                        continue
                    entry = current.find(name)
                    if entry is None:
                        result.status = "crashed"
                    else:
                        fresh = self.status_of(repo_root, entry)
                        result.status, result.exit_code = fresh.status, fresh.exit_code
                    if result.status != "running" and request.on_change is not None:
                        request.on_change(result)
                finished = [r for r in results.values() if r.status != "running"]
                if len(finished) == len(results) or (request.any and finished):
                    return outcome
        if poller.timed_out:
            for result in results.values():
                if result.status == "running":
                    result.status = "timeout"
                    if request.on_change is not None:
                        request.on_change(result)
        outcome.cancelled = poller.cancelled
        return outcome
