"""Run one shell command across many worktrees."""

from __future__ import annotations

import concurrent.futures
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Literal

from ... import exec as exec_util
from ...models import WorktreeInfo
from ..base import BaseService
from ..errors import ValidationFailedError
from ..state import WorktreeStateService
from ..worktrees import (
    WORKTREE_ENV_VAR,
    WORKTREE_PATH_ENV_VAR,
    WorktreeService,
    resolve_repo_root,
)

EachFilter = Literal["all", "active", "stale", "claimed", "unclaimed"]
EACH_FILTERS = ("all", "active", "stale", "claimed", "unclaimed")


@dataclass(frozen=True)
class EachRequest:
    """Fan-out request.

    ``parallel`` is the worker-pool size; 1 runs worktrees one at a time.
    Sequential runs stream output unless ``capture`` is set; parallel runs
    always capture.
    """

    repo_cwd: Path
    command: str
    parallel: int = 1
    fail_fast: bool = False
    filter: EachFilter = "all"
    capture: bool = False
    on_start: Callable[[WorktreeInfo], None] | None = None
    on_result: Callable[["EachResult"], None] | None = None


@dataclass(frozen=True)
class EachResult:
    name: str
    path: str
    returncode: int
    output: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass
class EachOutcome:
    results: list[EachResult] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)


class RunEach(BaseService[EachRequest, EachOutcome]):
    """List worktrees, filter them, and run the command in each directory."""

    def __init__(
        self,
        worktrees: WorktreeService | None = None,
        state: WorktreeStateService | None = None,
    ) -> None:
        self.state = state or WorktreeStateService()
        self.worktrees = worktrees or WorktreeService(self.state)

    def select(self, repo_cwd: Path, filter: EachFilter) -> list[WorktreeInfo]:
        if filter not in EACH_FILTERS:
            raise ValidationFailedError(
                f"unknown filter '{filter}'",
                recovery_hint=f"use one of: {', '.join(EACH_FILTERS)}",
            )
        infos = self.worktrees.list(repo_cwd)
        if filter in {"active", "stale"}:
            return [info for info in infos if info.status == filter]
        if filter in {"claimed", "unclaimed"}:
            state = self.state.get_state(resolve_repo_root(repo_cwd))
            claimed = {e.name for e in state.worktrees if e.claimed_by}
            want = filter == "claimed"
            return [info for info in infos if (info.name in claimed) == want]
        return infos

    def _run_one(self, info: WorktreeInfo, request: EachRequest, capture: bool) -> EachResult:
        if request.on_start is not None:
            request.on_start(info)
        env = exec_util.child_env(
            {WORKTREE_ENV_VAR: info.name, WORKTREE_PATH_ENV_VAR: info.path}
        )
        started = time.monotonic()
        result = exec_util.run_shell(
            request.command, Path(info.path), env, capture_output=capture
        )
        each_result = EachResult(
            name=info.name,
            path=info.path,
            returncode=result.returncode,
            output=result.output,
            duration=time.monotonic() - started,
        )
        if request.on_result is not None:
            request.on_result(each_result)
        return each_result

    def _run(self, request: EachRequest) -> EachOutcome:
        if request.parallel < 1:
            raise ValidationFailedError("--parallel must be at least 1")
        targets = self.select(request.repo_cwd, request.filter)
        outcome = EachOutcome()
        if request.parallel == 1:
            for index, info in enumerate(targets):
                result = self._run_one(info, request, request.capture)
                outcome.results.append(result)
                if not result.ok and request.fail_fast:
                    outcome.skipped = [t.name for t in targets[index + 1 :]]
                    break
            return outcome

        stop = threading.Event()
        by_name: dict[str, EachResult] = {}

        def task(info: WorktreeInfo) -> EachResult | None:
            if stop.is_set():
                return None
            result = self._run_one(info, request, True)
            if not result.ok and request.fail_fast:
                stop.set()
            return result

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=request.parallel
        ) as pool:
            futures = {pool.submit(task, info): info for info in targets}
            for future in concurrent.futures.as_completed(futures):
                result = future.result()
                if result is not None:
                    by_name[result.name] = result
        for info in targets:
            if info.name in by_name:
                outcome.results.append(by_name[info.name])
            else:
                outcome.skipped.append(info.name)
        return outcome
