"""Implementation for the ``grim wt checkpoint`` and ``checkpoints`` commands."""

from __future__ import annotations

from .. import log
from ..io import say
from ..services.state import WorktreeStateService
from ..services.workflows import CheckpointRequest, CreateCheckpoint
from ..services.worktrees import resolve_repo_root
from .common import cwd, failure_boundary, print_json, relative_time


def create_checkpoint(args: object) -> None:
    """Commit staged changes (or snapshot HEAD) and record a checkpoint.

    Nothing is staged automatically; ``git add`` what belongs in it first.

    Example:
        $ grim wt checkpoint feature-login "auth flow compiles"
    """
    with failure_boundary():
        outcome = CreateCheckpoint()(
            CheckpointRequest(
                repo_cwd=cwd(),
                name=str(getattr(args, "name")),
                message=str(getattr(args, "message")),
                author=getattr(args, "author", None),
            )
        )
    short = outcome.checkpoint.hash[:7]
    if outcome.committed:
        log.success(f"Checkpoint {short}: committed {len(outcome.files)} staged file(s)")
    else:
        log.success(f"Checkpoint {short}: recorded HEAD (nothing staged)")


def list_checkpoints(args: object) -> None:
    name = str(getattr(args, "name"))
    with failure_boundary():
        entry = WorktreeStateService().require_entry(resolve_repo_root(cwd()), name)
    if getattr(args, "json", False):
        print_json([c.model_dump(mode="json") for c in entry.checkpoints])
        return
    if not entry.checkpoints:
        say(f"No checkpoints for {name}.")
        return
    for checkpoint in entry.checkpoints:
        say(
            f"{checkpoint.hash[:7]}  {relative_time(checkpoint.time):>10}  "
            f"{checkpoint.author}: {checkpoint.message}"
        )
