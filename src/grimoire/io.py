"""Console I/O for command output and operator prompts."""

from __future__ import annotations

import os
import sys
from typing import NoReturn

import questionary

AGENT_ENV_VARS = ("GRIMOIRE_SESSION_ID", "GRIMOIRE_SCOUT_NAME")


def _use_questionary() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty()


def running_under_agent() -> bool:
    """Return whether this process was launched for a spawned agent or scout."""
    return any(os.environ.get(name) for name in AGENT_ENV_VARS)


def say(message: str = "") -> None:
    """Print command output to stdout.

    Example:
        >>> say("feature-x  running")
        feature-x  running
    """
    print(message)


def die(message: str, code: int = 1, *, hint: str | None = None) -> NoReturn:
    """Print ``error: <message>`` (and an optional hint) to stderr and exit."""
    print(f"error: {message}", file=sys.stderr)
    if hint:
        print(f"hint: {hint}", file=sys.stderr)
    sys.exit(code)


def confirm(text: str, default: bool = False) -> bool:
    """Ask the operator a yes/no question.

    Agents cannot answer prompts, so inside a spawned session or scout the
    default is returned without reading stdin.

    Args:
        text: Prompt label shown to the user.
        default: Answer used on empty input or when no one can answer.

    Returns:
        ``True`` when the user confirms.
    """
    if running_under_agent():
        return default
    if _use_questionary():
        response = questionary.confirm(text, default=default).ask()
        return bool(response)
    suffix = "[Y/n]" if default else "[y/N]"
    response = input(f"{text} {suffix}: ").strip().lower()
    if response == "":
        return default
    return response in {"y", "yes"}
