"""Leveled terminal logging for Grimoire commands.

User-facing progress goes to stdout at INFO and SUCCESS. Everything else goes
to stderr. Diagnostic lines (TRACE and DEBUG) are tagged with the worktree or
scout the process runs for, so output from nested agents stays attributable.

Example:
    >>> parse_level("WARN") is LogLevel.WARNING
    True
    >>> parse_level("loud") is None
    True
"""

from __future__ import annotations

import os
import shlex
import sys
from enum import IntEnum
from pathlib import Path
from typing import Sequence

from rich.console import Console
from rich.text import Text


class LogLevel(IntEnum):
    TRACE = 10
    DEBUG = 20
    INFO = 30
    SUCCESS = 35
    WARNING = 40
    ERROR = 50


_ALIASES = {"warn": LogLevel.WARNING}
_STYLES = {
    LogLevel.TRACE: "dim",
    LogLevel.DEBUG: "cyan",
    LogLevel.SUCCESS: "green",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "bold red",
}
_DEFAULT_LEVEL = LogLevel.INFO
_configured_level: LogLevel | None = None
_no_color = False

LOG_LEVEL_ENV_VAR = "GRIMOIRE_LOG_LEVEL"
_SCOPE_ENV_VARS = ("GRIMOIRE_SCOUT_NAME", "GRIMOIRE_WORKTREE")


def parse_level(value: str | None) -> LogLevel | None:
    """Return the level named by ``value`` or ``None`` when unrecognized."""
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in _ALIASES:
        return _ALIASES[normalized]
    try:
        return LogLevel[normalized.upper()]
    except KeyError:
        return None


def configured_level() -> LogLevel:
    global _configured_level
    if _configured_level is None:
        _configured_level = parse_level(os.environ.get(LOG_LEVEL_ENV_VAR)) or _DEFAULT_LEVEL
    return _configured_level


def set_level(value: str | None) -> None:
    """Set the active log level; unknown names fall back to INFO."""
    global _configured_level
    _configured_level = parse_level(value) or _DEFAULT_LEVEL


def set_no_color(value: bool) -> None:
    global _no_color
    _no_color = value


def is_enabled(level: LogLevel) -> bool:
    return level >= configured_level()


def _scope() -> str | None:
    for name in _SCOPE_ENV_VARS:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return None


def _console(*, stderr: bool) -> Console:
    return Console(
        file=sys.stderr if stderr else sys.stdout,
        soft_wrap=True,
        highlight=False,
        no_color=_no_color or bool(os.environ.get("NO_COLOR")),
    )


def emit(
    level: LogLevel,
    message: str,
    *,
    style: str | None = None,
    stderr: bool | None = None,
) -> None:
    if not is_enabled(level):
        return
    target_stderr = stderr if stderr is not None else level >= LogLevel.WARNING
    text = Text(message, style=style or _STYLES.get(level, ""))
    scope = _scope() if level <= LogLevel.DEBUG else None
    if scope:
        text = Text.assemble((f"[{scope}] ", "dim"), text)
    _console(stderr=target_stderr).print(text)


def trace(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.TRACE, message, style=style, stderr=True)


def debug(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.DEBUG, message, style=style, stderr=True)


def info(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.INFO, message, style=style, stderr=False)


def success(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.SUCCESS, message, style=style, stderr=False)


def warning(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.WARNING, message, style=style, stderr=True)


def error(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.ERROR, message, style=style, stderr=True)


def transition(subject: str, current: str | None, target: str) -> None:
    """Log a status change of a session, scout, or stage at DEBUG."""
    debug(f"{subject}: {current or '-'} -> {target}")


def command(argv: Sequence[str], *, cwd: Path | None = None) -> None:
    """Log an external command invocation at TRACE."""
    if not is_enabled(LogLevel.TRACE):
        return
    where = f" (in {cwd})" if cwd is not None else ""
    trace(f"$ {shlex.join(argv)}{where}")
