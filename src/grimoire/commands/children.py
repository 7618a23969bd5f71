"""Implementation for the ``grim wt children`` command."""

from __future__ import annotations

import os

from ..io import say
from ..models import AgentSession, WorktreeStateEntry
from ..services.sessions import AgentSessionService
from ..services.state import WorktreeStateService
from ..services.workflows.targets import child_entries
from ..services.worktrees import (
    SESSION_ENV_VAR,
    WORKTREE_ENV_VAR,
    WorktreeService,
    resolve_repo_root,
)
from .common import cwd, failure_boundary, print_json, print_table, relative_time


def child_status(entry: WorktreeStateEntry, session: AgentSession | None) -> str:
    """Collapse a child's session and merge state into one word.

    Example:
        >>> entry = WorktreeStateEntry(name="a", merge_status="merged")
        >>> stopped = AgentSession(session_id="s", pid=1, status="stopped", started_at="t")
        >>> child_status(entry, stopped)
        'merged'
        >>> child_status(WorktreeStateEntry(name="b"), None)
        'unknown'
    """
    if session is None:
        return entry.merge_status or "unknown"
    if session.status == "stopped":
        return "merged" if entry.merge_status == "merged" else "done"
    return session.status


def list_children(args: object) -> None:
    """Show worktrees spawned from the current worktree or session."""
    show_all = bool(getattr(args, "all", False))
    parent = os.environ.get(WORKTREE_ENV_VAR) or os.environ.get(SESSION_ENV_VAR)
    if parent is None and not show_all:
        say("Not running in a spawned worktree context.")
        say("Use --all to show every parent-child relationship.")
        return

    state = WorktreeStateService()
    sessions = AgentSessionService(state)
    with failure_boundary():
        repo_root = resolve_repo_root(cwd())
        infos = {info.name: info for info in WorktreeService(state).list(repo_root)}
        document = state.get_state(repo_root)
        if show_all:
            entries = [e for e in document.worktrees if e.parent_worktree or e.parent_session]
        else:
            entries = child_entries(document)
        rows = []
        for entry in entries:
            info = infos.get(entry.name)
            if info is None:
                continue
            rows.append((entry, info, sessions.refresh(repo_root, entry.name)))

    if getattr(args, "json", False):
        print_json(
            [
                {
                    "worktree": info.name,
                    "branch": info.branch,
                    "path": info.path,
                    "task": entry.linked_issue,
                    "status": session.status if session else "none",
                    "mergeStatus": entry.merge_status,
                    "spawnedAt": entry.spawned_at,
                    "sessionId": session.session_id if session else None,
                    "pid": session.pid if session else None,
                }
                for entry, info, session in rows
            ]
        )
        return
    if not rows:
        if show_all:
            say("No spawned child worktrees found.")
        else:
            say(f"No child worktrees spawned from {parent}.")
        return

    table = [("task", "worktree", "status", "age", "branch")]
    for entry, info, session in rows:
        table.append(
            (
                entry.linked_issue or "-",
                info.name,
                child_status(entry, session),
                relative_time(entry.spawned_at) if entry.spawned_at else "-",
                info.branch or "-",
            )
        )
    print_table(table)
    running = sum(1 for _, _, session in rows if session and session.status == "running")
    done = sum(
        1
        for entry, _, session in rows
        if (session and session.status == "stopped") or (session is None and entry.merge_status)
    )
    say()
    say(f"{running} running, {done} done, {len(rows)} total")
