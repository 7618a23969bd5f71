"""Best-effort tmux helpers for agent windows."""

from __future__ import annotations

import os
from pathlib import Path

from .. import exec as exec_util


def inside_tmux() -> bool:
    return bool(os.environ.get("TMUX"))


def window_name(worktree: str) -> str:
    """Return the tmux window name used for a worktree.

    Example:
        >>> window_name("feature-x")
        'grim-feature-x'
    """
    return f"grim-{worktree}"


def new_window(name: str, cwd: Path, command: str | None = None) -> int | None:
    """Open a detached window and return the pid of its first pane."""
    cmd = ["tmux", "new-window", "-d", "-n", name, "-c", str(cwd), "-P", "-F", "#{pane_pid}"]
    if command:
        cmd.append(command)
    result = exec_util.try_run_command(cmd)
    if result is None or result.returncode != 0:
        return None
    try:
        return int(result.stdout.strip().splitlines()[-1])
    except (ValueError, IndexError):
        return None


def select_window(name: str) -> bool:
    result = exec_util.try_run_command(["tmux", "select-window", "-t", name])
    return bool(result and result.returncode == 0)


def kill_window(name: str) -> bool:
    result = exec_util.try_run_command(["tmux", "kill-window", "-t", name])
    return bool(result and result.returncode == 0)
