"""Implementation for the ``grim wt merge`` command."""

from __future__ import annotations

from dataclasses import asdict

from .. import log
from ..io import die, say
from ..services.errors import GrimoireError, MergeConflictError
from ..services.workflows import MergeRequest, MergeWorktree
from .common import cwd, print_json


def merge_worktree(args: object) -> None:
    """Merge a worktree's branch into the current branch.

    Example:
        $ grim wt merge feature-login --squash
    """
    name = str(getattr(args, "name"))
    as_json = bool(getattr(args, "json", False))
    squash = bool(getattr(args, "squash", False))
    no_ff = bool(getattr(args, "no_ff", False))
    if squash and no_ff:
        die("--squash and --no-ff cannot be combined")
    try:
        outcome = MergeWorktree()(
            MergeRequest(repo_cwd=cwd(), name=name, squash=squash, no_ff=no_ff)
        )
    except MergeConflictError as exc:
        if as_json:
            print_json({"status": "conflict", "name": name, "files": exc.files})
        else:
            log.error(f"Merge conflict merging {exc.branch}")
            for path in exc.files:
                say(f"  {path}")
            say("Resolve the conflicts and commit, or run `git merge --abort`.")
        raise SystemExit(1)
    except GrimoireError as exc:
        if as_json:
            print_json({"status": "error", "name": name, "error": str(exc)})
            raise SystemExit(1)
        die(str(exc), hint=exc.recovery_hint)

    if as_json:
        print_json(asdict(outcome))
        return
    if outcome.status == "up_to_date":
        say(f"{outcome.branch} is already up to date with {outcome.into}")
        return
    log.success(f"Merged {outcome.branch} into {outcome.into}")
    say(f"  {outcome.commits} commit(s), {len(outcome.files)} file(s) changed")
