"""Implementation for the ``grim wt collect`` command."""

from __future__ import annotations

import sys
from dataclasses import asdict

from .. import log
from ..io import say
from ..services.workflows import CollectRequest, CollectResult, CollectWorktrees
from .common import cwd, failure_boundary, print_json


def collect_worktrees(args: object) -> None:
    """Merge completed child worktrees into the current branch.

    Example:
        $ grim wt collect --delete
    """
    names = tuple(getattr(args, "names", None) or ())
    as_json = bool(getattr(args, "json", False))
    dry_run = bool(getattr(args, "dry_run", False))

    def on_result(result: CollectResult) -> None:
        if as_json:
            return
        if result.status == "merged":
            suffix = " (removed)" if result.removed else ""
            log.success(f"  merged {result.name}{suffix}")
        elif result.status == "would_merge":
            say(f"  {result.name} (dry-run)")
            for commit in result.commits[:3]:
                say(f"    {commit}")
            if len(result.commits) > 3:
                say(f"    ... and {len(result.commits) - 3} more")
        elif result.status == "failed":
            log.error(f"  failed {result.name}: {result.message}")
        elif result.status == "conflict":
            log.error(f"  conflict {result.name}")
            for path in result.files:
                say(f"    {path}")
        else:
            say(f"  skip {result.name}: {result.message}")

    with failure_boundary():
        outcome = CollectWorktrees()(
            CollectRequest(
                repo_cwd=cwd(),
                names=names,
                strategy=getattr(args, "strategy", "merge") or "merge",
                delete=bool(getattr(args, "delete", False)),
                dry_run=dry_run,
                on_result=on_result,
            )
        )
    if as_json:
        print_json({"results": [asdict(result) for result in outcome.results]})
    elif not outcome.results:
        say("No child worktrees to collect.")
    else:
        say(
            f"Summary: {outcome.count('merged')} merged, {outcome.count('conflict')} conflict, "
            f"{outcome.count('failed')} failed, "
            f"{outcome.count('skipped') + outcome.count('not_ready')} skipped"
        )
    if outcome.had_conflict or outcome.count("failed"):
        sys.exit(1)
