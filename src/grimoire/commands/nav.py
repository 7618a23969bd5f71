"""Implementation for ``grim wt path``, ``grim wt exec``, and ``grim wt open``."""

from __future__ import annotations

import os
import shlex
import subprocess
import sys
from pathlib import Path

from .. import exec as exec_util
from ..io import die, say
from ..services.sessions import session_env
from ..services.worktrees import SESSION_ENV_VAR, WorktreeService
from ..term import tmux
from .common import cwd, failure_boundary


def worktree_path(args: object) -> None:
    """Print the absolute path of a worktree, for ``cd "$(grim wt path x)"``."""
    name = str(getattr(args, "name"))
    with failure_boundary():
        info = WorktreeService().get(cwd(), name)
    say(info.path)


def exec_in_worktree(args: object) -> None:
    """Run a command inside a worktree and exit with its status.

    Example:
        $ grim wt exec feature-login -- pytest -q
    """
    name = str(getattr(args, "name"))
    command = list(getattr(args, "command", None) or [])
    if not command:
        die("no command given")
    with failure_boundary():
        info = WorktreeService().get(cwd(), name)
    env = session_env(name, Path(info.path), os.environ.get(SESSION_ENV_VAR, ""))
    result = exec_util.run_shell(
        shlex.join(command), Path(info.path), env, capture_output=False
    )
    if result.returncode != 0:
        sys.exit(result.returncode)


def open_worktree(args: object) -> None:
    """Open a worktree in a tmux window, or a subshell outside tmux."""
    name = str(getattr(args, "name"))
    with failure_boundary():
        info = WorktreeService().get(cwd(), name)
    path = Path(info.path)
    if tmux.inside_tmux():
        window = tmux.window_name(name)
        if not tmux.select_window(window) and tmux.new_window(window, path) is None:
            die(f"could not open tmux window for {name}")
        return
    shell = os.environ.get("SHELL", "/bin/sh")
    say(f"Entering {name}; exit the shell to return.")
    subprocess.run(
        [shell],
        cwd=path,
        env=session_env(name, path, os.environ.get(SESSION_ENV_VAR, "")),
        check=False,
    )
