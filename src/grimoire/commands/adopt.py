"""Implementation for the ``grim wt adopt`` command."""

from __future__ import annotations

from pathlib import Path

from .. import log
from ..services.worktrees import WorktreeService
from .common import cwd, failure_boundary


def adopt_worktree(args: object) -> None:
    """Register an existing worktree under ``.worktrees`` in the state document.

    Example:
        $ grim wt adopt .worktrees/spike
    """
    target = str(getattr(args, "name"))
    name = Path(target).name
    with failure_boundary():
        entry = WorktreeService().adopt(cwd(), name)
    log.success(f"Adopted {entry.name} ({entry.branch or 'detached'})")
