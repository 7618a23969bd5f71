"""Implementation for the ``grim wt commit`` command."""

from __future__ import annotations

import sys
from dataclasses import asdict

from ..io import say
from ..services.workflows import CommitRequest, CommitWorktrees
from .common import cwd, failure_boundary, print_json


def commit_worktrees(args: object) -> None:
    """Stage and commit all changes in worktrees before collecting them.

    With no names, commits the worktree the command runs in.

    Example:
        $ grim wt commit auth billing -m "wip: hand back to lead"
    """
    dry_run = bool(getattr(args, "dry_run", False))
    with failure_boundary():
        outcome = CommitWorktrees()(
            CommitRequest(
                repo_cwd=cwd(),
                names=list(getattr(args, "names", None) or []),
                message=getattr(args, "message", None),
                dry_run=dry_run,
            )
        )

    if getattr(args, "json", False):
        print_json({"results": [asdict(r) for r in outcome.results], "dryRun": dry_run})
    else:
        prefix = "[dry-run] " if dry_run else ""
        for result in outcome.results:
            if not result.ok:
                say(f"{prefix}{result.name}: ERROR - {result.message}")
            elif result.hash:
                say(f"{prefix}{result.name}: {result.hash} {result.message}")
            else:
                say(f"{prefix}{result.name}: {result.message}")
        if len(outcome.results) > 1:
            say()
            say(
                f"{prefix}Done: {outcome.count('committed')} committed, "
                f"{outcome.count('skipped')} skipped, {outcome.count('failed')} failed"
            )
    if outcome.count("failed"):
        sys.exit(1)
