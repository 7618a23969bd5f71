"""Implementation for the ``grim wt each`` command."""

from __future__ import annotations

import sys

from .. import log
from ..io import die, say
from ..models import WorktreeInfo
from ..services.workflows import EachRequest, EachResult, RunEach
from .common import cwd, failure_boundary


def run_each(args: object) -> None:
    """Run a shell command in every (filtered) worktree.

    Example:
        $ grim wt each --parallel 4 --filter active -- npm test
    """
    command = " ".join(getattr(args, "command", None) or [])
    if not command.strip():
        die("no command given")
    parallel = int(getattr(args, "parallel", 1) or 1)

    def on_start(info: WorktreeInfo) -> None:
        if parallel == 1:
            say(f"==> {info.name}")

    def on_result(result: EachResult) -> None:
        if result.ok:
            log.success(f"[ok] {result.name} ({result.duration:.1f}s)")
            return
        log.error(f"[fail] {result.name} (exit {result.returncode})")
        if parallel > 1 and result.output.strip():
            for line in result.output.rstrip().splitlines():
                say(f"    {line}")

    with failure_boundary():
        outcome = RunEach()(
            EachRequest(
                repo_cwd=cwd(),
                command=command,
                parallel=parallel,
                fail_fast=bool(getattr(args, "fail_fast", False)),
                filter=getattr(args, "filter", "all") or "all",
                on_start=on_start,
                on_result=on_result,
            )
        )
    if not outcome.results and not outcome.skipped:
        say("No matching worktrees.")
        return
    say("")
    say(f"Summary: {outcome.passed} passed, {outcome.failed} failed")
    if outcome.skipped:
        say(f"Skipped: {', '.join(outcome.skipped)}")
    if outcome.failed:
        sys.exit(1)
