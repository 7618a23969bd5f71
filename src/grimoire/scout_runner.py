"""Detached runner for one scout.

Run as ``python -m grimoire.scout_runner --project P --name N``. Runs the
agent with the scout's deadline, writes ``findings/<name>.json``, and moves
the entry to ``done`` or ``failed``.
"""

from __future__ import annotations

import argparse
import signal
import subprocess
import sys
import time
from pathlib import Path

from . import config, log, paths
from .services.errors import GrimoireError
from .services.scouts import ScoutService


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="grimoire.scout_runner")
    parser.add_argument("--project", required=True)
    parser.add_argument("--name", required=True)
    return parser


def run(project_path: Path, name: str, service: ScoutService | None = None) -> int:
    service = service or ScoutService()
    entry = service.get(project_path, name)
    command, policy_path = service.agent_command(project_path, entry)
    log_path = paths.scout_log_path(project_path, name)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_path.write_text(
        f"# Scout: {name}\n# Question: {entry.question}\n# Started: {config.utc_now()}\n\n",
        encoding="utf-8",
    )

    started = time.monotonic()
    try:
        with log_path.open("a", encoding="utf-8") as handle:
            child = subprocess.Popen(
                ["sh", "-c", command],
                cwd=project_path,
                stdin=subprocess.DEVNULL,
                stdout=handle,
                stderr=subprocess.STDOUT,
            )

        def forward(signum: int, _frame: object) -> None:
            if child.poll() is None:
                child.send_signal(signum)

        signal.signal(signal.SIGTERM, forward)
        try:
            code = child.wait(timeout=entry.options.timeout)
        except subprocess.TimeoutExpired:
            child.kill()
            child.wait()
            service.record_result(project_path, name, "failed", error="Timed out")
            return 124
    finally:
        if policy_path is not None:
            policy_path.unlink(missing_ok=True)

    if code != 0:
        service.record_result(project_path, name, "failed", error=f"Exit code {code}")
        return code

    findings = service.findings_from_log(project_path, entry)
    if findings is not None:
        findings.duration = round(time.monotonic() - started, 1)
        findings.explored_at = config.utc_now()
        service.write_findings(project_path, findings)
    service.record_result(project_path, name, "done")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    try:
        return run(Path(args.project), args.name)
    except GrimoireError as exc:
        log.error(f"scout {args.name}: {exc}")
        ScoutService().record_result(
            Path(args.project), args.name, "failed", error=str(exc)
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
