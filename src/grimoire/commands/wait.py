"""Implementation for the ``grim wt wait`` command."""

from __future__ import annotations

import sys
from dataclasses import asdict

from ..io import say
from ..services.workflows import WaitForWorktrees, WaitRequest, WaitResult
from .common import cwd, failure_boundary, print_json


def wait_for_worktrees(args: object) -> None:
    """Block until named (or child) worktrees' agents finish.

    Exits 1 when any target crashed or timed out.

    Example:
        $ grim wt wait feature-a feature-b --timeout 600
    """
    names = tuple(getattr(args, "names", None) or ())
    as_json = bool(getattr(args, "json", False))
    timeout = getattr(args, "timeout", None)

    def on_change(result: WaitResult) -> None:
        if as_json:
            return
        suffix = f" (exit {result.exit_code})" if result.exit_code is not None else ""
        say(f"  [{result.status}] {result.name}{suffix}")

    with failure_boundary():
        outcome = WaitForWorktrees()(
            WaitRequest(
                repo_cwd=cwd(),
                names=names,
                any=bool(getattr(args, "any", False)),
                timeout=float(timeout) if timeout is not None else None,
                interval=float(getattr(args, "interval", 2.0) or 2.0),
                on_change=on_change,
            )
        )
    if as_json:
        print_json(
            {
                "cancelled": outcome.cancelled,
                "results": [asdict(result) for result in outcome.results],
            }
        )
    elif not outcome.results:
        say("No worktrees to wait for.")
    else:
        say(
            f"Done: {outcome.count('completed')} completed, {outcome.count('crashed')} crashed, "
            f"{outcome.count('timeout')} timeout, {outcome.count('running')} still running"
        )
    if outcome.failed:
        sys.exit(1)
    if outcome.cancelled:
        sys.exit(130)
