"""Shared helpers for command implementations."""

from __future__ import annotations

import datetime as dt
import json
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence

from .. import config
from ..io import die, say
from ..services.errors import GrimoireError


@contextmanager
def failure_boundary() -> Iterator[None]:
    """Turn domain errors into ``error: ...`` plus a nonzero exit."""
    try:
        yield
    except GrimoireError as exc:
        die(str(exc), hint=exc.recovery_hint)


def cwd() -> Path:
    return Path.cwd()


def print_table(rows: Sequence[Sequence[str]]) -> None:
    """Print rows as left-aligned columns; the first row is the header.

    Example:
        >>> print_table([("name", "status"), ("feature-x", "active")])
        name       status
        feature-x  active
    """
    widths = [max(len(row[index]) for row in rows) for index in range(len(rows[0]))]
    for row in rows:
        say("  ".join(value.ljust(widths[index]) for index, value in enumerate(row)).rstrip())


def print_json(payload: object) -> None:
    say(json.dumps(payload, indent=2))


def relative_time(timestamp: str | None, *, now: dt.datetime | None = None) -> str:
    """Render a stored timestamp as ``3m ago`` style text.

    Example:
        >>> base = config.parse_timestamp("2026-01-18T12:00:00Z")
        >>> relative_time("2026-01-18T10:30:00Z", now=base)
        '1h ago'
        >>> relative_time("2026-01-18T11:59:40Z", now=base)
        'just now'
    """
    if not timestamp:
        return "unknown"
    current = now or dt.datetime.now(tz=dt.timezone.utc)
    minutes = int((current - config.parse_timestamp(timestamp)).total_seconds() // 60)
    if minutes >= 60:
        return f"{minutes // 60}h ago"
    if minutes > 0:
        return f"{minutes}m ago"
    return "just now"
