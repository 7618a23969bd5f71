# ruff: noqa: E402

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from grimoire.models import AgentSession


def git(repo: Path, *args: str) -> str:
    completed = subprocess.run(
        ["git", "-C", str(repo), *args],
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout.strip()


def init_repo(root: Path) -> Path:
    """Create a repository on ``main`` with one commit."""
    repo = root / "repo"
    repo.mkdir(parents=True)
    git(repo, "init")
    git(repo, "config", "user.email", "test@example.com")
    git(repo, "config", "user.name", "Test User")
    git(repo, "config", "commit.gpgsign", "false")
    (repo / "README.md").write_text("base\n", encoding="utf-8")
    git(repo, "add", "README.md")
    git(repo, "commit", "-m", "chore: initial")
    git(repo, "branch", "-M", "main")
    return repo.resolve()


def commit_file(cwd: Path, name: str, content: str, message: str | None = None) -> str:
    (cwd / name).write_text(content, encoding="utf-8")
    git(cwd, "add", name)
    git(cwd, "commit", "-m", message or f"update {name}")
    return git(cwd, "rev-parse", "HEAD")


def finished_session(session_id: str = "sess_done", *, status: str = "stopped") -> AgentSession:
    return AgentSession(
        session_id=session_id,
        pid=999_999,
        status=status,
        started_at="2026-01-18T10:00:00Z",
        ended_at="2026-01-18T10:05:00Z",
        exit_code=0 if status == "stopped" else 1,
    )
