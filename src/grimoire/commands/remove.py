"""Implementation for the ``grim wt rm`` and ``grim wt clean`` commands."""

from __future__ import annotations

from .. import log
from ..io import confirm, say
from ..services.state import WorktreeStateService
from ..services.worktrees import WorktreeService, resolve_repo_root
from .common import cwd, failure_boundary


def remove_worktree(args: object) -> None:
    """Remove a worktree and its state entry.

    Example:
        $ grim wt rm feature-login --delete-branch
    """
    name = str(getattr(args, "name"))
    with failure_boundary():
        WorktreeService().remove(
            cwd(),
            name,
            delete_branch=bool(getattr(args, "delete_branch", False)),
            force=bool(getattr(args, "force", False)),
        )
    log.success(f"Removed worktree {name}")


def clean_worktrees(args: object) -> None:
    """Remove stale (merged) worktrees and prune orphan state entries."""
    dry_run = bool(getattr(args, "dry_run", False))
    yes = bool(getattr(args, "yes", False))
    state = WorktreeStateService()
    service = WorktreeService(state)
    with failure_boundary():
        repo_root = resolve_repo_root(cwd())
        infos = service.list(repo_root)
        stale = [info for info in infos if info.status == "stale"]
        if not stale:
            say("No stale worktrees.")
        for info in stale:
            if dry_run:
                say(f"would remove {info.name} ({info.branch})")
                continue
            if not yes and not confirm(f"Remove {info.name} ({info.branch})?"):
                continue
            service.remove(repo_root, info.name)
            log.success(f"Removed {info.name}")
        if dry_run:
            return
        remaining = {info.name for info in service.list(repo_root)}
        for name in state.prune_orphans(repo_root, remaining):
            say(f"Pruned orphan state entry {name}")
