"""Implementation for the ``grim wt new`` command."""

from __future__ import annotations

from .. import log
from ..io import say
from ..services.worktrees import WorktreeService
from .common import cwd, failure_boundary


def new_worktree(args: object) -> None:
    """Create a worktree for a branch.

    Args:
        args: CLI argument object with ``branch``, ``create_branch``, and
            ``issue`` attributes.

    Example:
        $ grim wt new feature/login -b
    """
    branch = str(getattr(args, "branch"))
    with failure_boundary():
        info = WorktreeService().create(
            cwd(),
            branch,
            create_branch=bool(getattr(args, "create_branch", False)),
            from_issue=getattr(args, "issue", None),
        )
    log.success(f"Created worktree {info.name} ({info.branch})")
    say(info.path)
