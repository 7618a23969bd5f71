"""Command implementations exposed by the Grimoire CLI."""

from .adopt import adopt_worktree
from .checkpoint import create_checkpoint, list_checkpoints
from .collect import collect_worktrees
from .coordination import (
    available_worktrees,
    claim_worktree,
    handoff_worktree,
    release_worktree,
    worktree_log,
)
from .each import run_each
from .merge import merge_worktree
from .nav import exec_in_worktree, open_worktree, worktree_path
from .new import new_worktree
from .pr import open_pull_request
from .ps import list_sessions
from .remove import clean_worktrees, remove_worktree
from .scout import (
    cancel_scout,
    clear_scouts,
    list_scouts,
    show_scout,
    start_scout,
    watch_scouts,
)
from .spawn import kill_agent, spawn_agent
from .wait import wait_for_worktrees

__all__ = [
    "adopt_worktree",
    "available_worktrees",
    "cancel_scout",
    "claim_worktree",
    "clean_worktrees",
    "clear_scouts",
    "collect_worktrees",
    "create_checkpoint",
    "exec_in_worktree",
    "handoff_worktree",
    "kill_agent",
    "list_checkpoints",
    "list_scouts",
    "list_sessions",
    "merge_worktree",
    "new_worktree",
    "open_pull_request",
    "open_worktree",
    "release_worktree",
    "remove_worktree",
    "run_each",
    "show_scout",
    "spawn_agent",
    "start_scout",
    "wait_for_worktrees",
    "watch_scouts",
    "worktree_log",
    "worktree_path",
]
