"""Implementation for the ``grim wt pr`` command."""

from __future__ import annotations

import shutil
from pathlib import Path

from .. import exec as exec_util
from .. import git, log
from ..io import die, say
from ..services.state import WorktreeStateService
from ..services.worktrees import WorktreeService, resolve_repo_root
from .common import cwd, failure_boundary


def open_pull_request(args: object) -> None:
    """Push a worktree's branch and open a pull request with ``gh``.

    Example:
        $ grim wt pr feature-login --draft
    """
    name = str(getattr(args, "name"))
    if shutil.which("gh") is None:
        die("missing required command: gh", hint="install the GitHub CLI")
    state = WorktreeStateService()
    with failure_boundary():
        repo_root = resolve_repo_root(cwd())
        info = WorktreeService(state).get(repo_root, name)
        path = Path(info.path)
        git.git_output(["push", "-u", "origin", info.branch], path)
        entry = state.get_entry(repo_root, name)
    title = getattr(args, "title", None) or info.branch
    command = ["gh", "pr", "create", "--head", info.branch, "--title", title]
    body = getattr(args, "body", None)
    if not body and entry is not None and entry.linked_issue:
        body = f"Closes {entry.linked_issue}"
    command.extend(["--body", body or ""])
    if getattr(args, "draft", False):
        command.append("--draft")
    result = exec_util.try_run_command(command, cwd=path)
    if result is None or result.returncode != 0:
        detail = result.output.strip() if result is not None else "gh not found"
        die(f"gh pr create failed: {detail}")
    log.success(f"Opened pull request for {info.branch}")
    say(result.stdout.strip())
