"""Claim, release, handoff, availability, and log commands.

These write advisory coordination markers to the shared state document so
humans and agents can see who is working where.
"""

from __future__ import annotations

from .. import log
from ..io import die, say
from ..models import STAGE_VALUES, LogMetadata
from ..services.state import WorktreeStateService, current_author
from ..services.worktrees import WorktreeService, resolve_repo_root
from .common import cwd, failure_boundary, print_json, print_table, relative_time


def _stage_or_die(value: str | None) -> str | None:
    if value is None:
        return None
    if value not in STAGE_VALUES:
        die(f"invalid stage {value!r}", hint=f"expected one of: {', '.join(STAGE_VALUES)}")
    return value


def claim_worktree(args: object) -> None:
    """Mark a worktree as being worked on.

    Example:
        $ grim wt claim feature-login
    """
    name = str(getattr(args, "name"))
    author = getattr(args, "author", None) or current_author()
    with failure_boundary():
        repo_root = resolve_repo_root(cwd())
        _, overridden = WorktreeStateService().claim(
            repo_root, name, author, force=bool(getattr(args, "force", False))
        )
    if overridden:
        log.warning(f"Took over claim on {name} from {overridden}")
    log.success(f"Claimed {name} as {author}")


def release_worktree(args: object) -> None:
    """Release a claim, optionally recording a note, handoff, or interrupt.

    Example:
        $ grim wt release feature-login --next test --note "ready for tests"
    """
    name = str(getattr(args, "name"))
    note = getattr(args, "note", None)
    next_stage = getattr(args, "next", None)
    reason = getattr(args, "reason", None)
    author = getattr(args, "author", None) or current_author()
    service = WorktreeStateService()
    with failure_boundary():
        repo_root = resolve_repo_root(cwd())
        service.release(repo_root, name)
        if reason:
            service.append_log(
                repo_root,
                name,
                note or f"Interrupted: {reason}",
                author=author,
                type="interrupt",
                metadata=LogMetadata(reason=reason),
            )
        elif next_stage:
            service.append_log(
                repo_root,
                name,
                note or f"Handoff to {next_stage}",
                author=author,
                type="handoff",
                metadata=LogMetadata(next_stage=next_stage),
            )
            if next_stage in STAGE_VALUES:
                service.set_stage(repo_root, name, next_stage, agent=author)
        elif note:
            service.append_log(repo_root, name, note, author=author)
    log.success(f"Released {name}")


def handoff_worktree(args: object) -> None:
    """Release a worktree to another agent, recording the next stage.

    Example:
        $ grim wt handoff feature-login --to reviewer --stage review
    """
    name = str(getattr(args, "name"))
    target = str(getattr(args, "to"))
    stage = _stage_or_die(getattr(args, "stage", None))
    message = getattr(args, "message", None) or f"Handoff to {target}"
    author = getattr(args, "author", None) or current_author()
    service = WorktreeStateService()
    with failure_boundary():
        repo_root = resolve_repo_root(cwd())
        service.release(repo_root, name)
        service.append_log(
            repo_root,
            name,
            message,
            author=author,
            type="handoff",
            metadata=LogMetadata(next_stage=stage or target),
        )
        if stage:
            service.set_stage(repo_root, name, stage, agent=author)
    log.success(f"Handed off {name} to {target}")


def available_worktrees(args: object) -> None:
    """List unclaimed worktrees, optionally only those at a given stage.

    Example:
        $ grim wt available --stage test
    """
    stage = _stage_or_die(getattr(args, "stage", None))
    with failure_boundary():
        repo_root = resolve_repo_root(cwd())
        infos = WorktreeService().list(cwd())
        state = WorktreeStateService().get_state(repo_root)
    rows = []
    for info in infos:
        entry = state.find(info.name)
        if entry is not None and entry.claimed_by:
            continue
        current = entry.current_stage if entry is not None else None
        if stage and current != stage:
            continue
        rows.append({"name": info.name, "branch": info.branch, "stage": current, "path": info.path})
    if getattr(args, "json", False):
        print_json(rows)
        return
    if not rows:
        say("No available worktrees.")
        return
    print_table(
        [("NAME", "BRANCH", "STAGE")]
        + [(row["name"], row["branch"], row["stage"] or "-") for row in rows]
    )


def worktree_log(args: object) -> None:
    """Append a message to a worktree's log, or show the log.

    Example:
        $ grim wt log feature-login "switched to token auth"
        $ grim wt log feature-login
    """
    name = str(getattr(args, "name"))
    message = getattr(args, "message", None)
    service = WorktreeStateService()
    with failure_boundary():
        repo_root = resolve_repo_root(cwd())
        if message:
            service.append_log(
                repo_root, name, message, author=getattr(args, "author", None)
            )
            log.success(f"Logged to {name}")
            return
        entry = service.require_entry(repo_root, name)
    logs = entry.logs
    limit = getattr(args, "limit", None)
    if limit:
        logs = logs[-int(limit):]
    if getattr(args, "json", False):
        print_json([item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in logs])
        return
    if not logs:
        say(f"No log entries for {name}.")
        return
    for item in logs:
        marker = "" if item.type == "log" else f"[{item.type}] "
        say(f"{relative_time(item.time):>10}  {item.author}: {marker}{item.message}")
