"""Implementation for the ``grim wt ps`` command."""

from __future__ import annotations

from ..io import say
from ..services.sessions import AgentSessionService
from ..services.state import WorktreeStateService
from ..services.worktrees import WorktreeService, resolve_repo_root
from .common import cwd, failure_boundary, print_json, print_table, relative_time


def list_sessions(args: object) -> None:
    """Show every worktree with its agent session, refreshing liveness first."""
    as_json = bool(getattr(args, "json", False))
    state = WorktreeStateService()
    sessions = AgentSessionService(state)
    with failure_boundary():
        repo_root = resolve_repo_root(cwd())
        infos = WorktreeService(state).list(repo_root)
        rows = []
        for info in infos:
            session = sessions.refresh(repo_root, info.name)
            entry = state.get_entry(repo_root, info.name)
            rows.append((info, session, entry))

    if as_json:
        print_json(
            [
                {
                    "name": info.name,
                    "branch": info.branch,
                    "path": info.path,
                    "status": info.status,
                    "claimedBy": entry.claimed_by if entry else None,
                    "session": session.model_dump(mode="json", by_alias=True, exclude_none=True)
                    if session
                    else None,
                }
                for info, session, entry in rows
            ]
        )
        return
    if not rows:
        say("No worktrees.")
        return
    table = [("worktree", "branch", "agent", "pid", "started", "claimed")]
    for info, session, entry in rows:
        table.append(
            (
                info.name,
                info.branch or "-",
                f"{session.status} ({session.mode})" if session else "-",
                str(session.pid) if session else "-",
                relative_time(session.started_at) if session else "-",
                (entry.claimed_by if entry and entry.claimed_by else "-"),
            )
        )
    print_table(table)
