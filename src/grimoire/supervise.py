"""Detached supervisor for headless agent sessions.

Run as ``python -m grimoire.supervise --repo R --worktree N --session S
--log L -- cmd...``. It owns the agent child, forwards termination signals to
it, and records the exit status on the session once the child is gone.
"""

from __future__ import annotations

import argparse
import signal
import subprocess
import sys
from pathlib import Path

from . import log
from .services.sessions import AgentSessionService


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="grimoire.supervise")
    parser.add_argument("--repo", required=True)
    parser.add_argument("--worktree", required=True)
    parser.add_argument("--session", required=True)
    parser.add_argument("--log", required=True)
    parser.add_argument("--cleanup", action="append", default=[])
    parser.add_argument("command", nargs=argparse.REMAINDER)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        log.error("supervise: no command given")
        return 2

    log_path = Path(args.log)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as handle:
        child = subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=handle,
            stderr=subprocess.STDOUT,
        )

    def forward(signum: int, _frame: object) -> None:
        if child.poll() is None:
            child.send_signal(signum)

    signal.signal(signal.SIGTERM, forward)
    signal.signal(signal.SIGINT, forward)
    signal.signal(signal.SIGHUP, forward)

    try:
        code = child.wait()
    finally:
        for cleanup in args.cleanup:
            Path(cleanup).unlink(missing_ok=True)

    AgentSessionService().record_exit(Path(args.repo), args.worktree, args.session, code)
    return code


if __name__ == "__main__":
    sys.exit(main())
