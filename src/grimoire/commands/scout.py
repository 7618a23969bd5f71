"""Implementation for the ``grim ag scout`` commands."""

from __future__ import annotations

from typing import Callable

from .. import log
from ..io import say
from ..models import ScoutEntry, ScoutFindings, ScoutOptions
from ..polling import Poller, cancel_on_interrupt
from ..services.scouts import ScoutService
from .common import cwd, failure_boundary, print_json, relative_time

WATCH_INTERVAL = 1.0

_STATUS_MARKERS = {
    "pending": "..",
    "running": ">>",
    "done": "ok",
    "failed": "!!",
    "cancelled": "--",
}


def render_scouts(entries: list[ScoutEntry]) -> str:
    """Render scouts as a fixed-width table.

    Example:
        >>> entry = ScoutEntry(name="auth", question="where is login?", started_at="", status="done")
        >>> print(render_scouts([entry]))
        ok auth  done       where is login?
    """
    if not entries:
        return "No scouts."
    width = max(len(entry.name) for entry in entries)
    lines = []
    for entry in entries:
        question = entry.question if len(entry.question) <= 60 else entry.question[:57] + "..."
        lines.append(
            f"{_STATUS_MARKERS[entry.status]} {entry.name.ljust(width)}  "
            f"{entry.status.ljust(9)}  {question}"
        )
    return "\n".join(lines)


def _print_findings(findings: ScoutFindings) -> None:
    if findings.summary:
        say("Summary:")
        for line in findings.summary.splitlines():
            say(f"  {line}")
    if findings.key_files:
        say("Key files:")
        for key_file in findings.key_files:
            suffix = f" - {key_file.relevance}" if key_file.relevance else ""
            say(f"  {key_file.path}{suffix}")
    if findings.code_patterns:
        say("Patterns:")
        for pattern in findings.code_patterns:
            location = f" ({pattern.location})" if pattern.location else ""
            say(f"  {pattern.description}{location}")
    if findings.related_areas:
        say("Related:")
        for area in findings.related_areas:
            suffix = f" - {area.description}" if area.description else ""
            say(f"  {area.path}{suffix}")


def start_scout(args: object) -> None:
    """Start a background read-only exploration.

    Example:
        $ grim ag scout auth "where is session refresh handled?" --depth deep
    """
    name = str(getattr(args, "name"))
    options = ScoutOptions(
        depth=getattr(args, "depth", None) or "medium",
        focus=getattr(args, "focus", None),
        timeout=int(getattr(args, "timeout", None) or 120),
        model=getattr(args, "model", None) or "haiku",
    )
    service = ScoutService()
    with failure_boundary():
        entry = service.spawn(cwd(), name, str(getattr(args, "question")), options)
    log.success(f"Scout {entry.name} started (pid {entry.pid})")
    if not getattr(args, "wait", False):
        say(f"Check progress with: grim ag scout show {entry.name}")
        return
    with failure_boundary():
        entry = service.wait_for(cwd(), name, timeout=options.timeout + 30)
        entry, findings = service.show(cwd(), name)
    _report(entry, findings)


def _report(entry: ScoutEntry, findings: ScoutFindings | None) -> None:
    say(f"{entry.name}: {entry.status}")
    say(f"Question: {entry.question}")
    say(f"Started: {relative_time(entry.started_at)}")
    if entry.error:
        say(f"Error: {entry.error}")
    if findings is not None:
        _print_findings(findings)
    elif entry.is_active:
        say("Still exploring...")


def list_scouts(args: object) -> None:
    with failure_boundary():
        entries = ScoutService().list(cwd())
    if getattr(args, "json", False):
        print_json([entry.model_dump(mode="json", by_alias=True) for entry in entries])
        return
    say(render_scouts(entries))


def show_scout(args: object) -> None:
    with failure_boundary():
        entry, findings = ScoutService().show(cwd(), str(getattr(args, "name")))
    if getattr(args, "json", False):
        print_json(
            {
                "scout": entry.model_dump(mode="json", by_alias=True),
                "findings": findings.model_dump(mode="json", by_alias=True)
                if findings is not None
                else None,
            }
        )
        return
    _report(entry, findings)


def cancel_scout(args: object) -> None:
    name = str(getattr(args, "name"))
    with failure_boundary():
        stopped = ScoutService().cancel(cwd(), name)
    if stopped:
        log.success(f"Cancelled scout {name}")
    else:
        say(f"Scout {name} is not running.")


def clear_scouts(args: object) -> None:
    with failure_boundary():
        cleared = ScoutService().clear(cwd(), include_running=bool(getattr(args, "all", False)))
    if not cleared:
        say("Nothing to clear.")
        return
    log.success(f"Cleared {len(cleared)} scout(s): {', '.join(cleared)}")


def watch_scouts(
    args: object,
    *,
    poller: Poller | None = None,
    render: Callable[[str], None] | None = None,
) -> None:
    """Redraw the scout table whenever it changes until none are active.

    Example:
        $ grim ag scout watch
    """
    service = ScoutService()
    poller = poller or Poller(WATCH_INTERVAL)
    render = render or say
    last: str | None = None
    with cancel_on_interrupt(poller), failure_boundary():
        for _ in poller:
            entries = service.list(cwd())
            table = render_scouts(entries)
            if table != last:
                render(table)
                last = table
            if not any(entry.is_active for entry in entries):
                break
