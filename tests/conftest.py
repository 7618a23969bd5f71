# ruff: noqa: E402

import builtins
import sys
from pathlib import Path

import pytest
from _pytest.doctest import DoctestModule

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import grimoire.io as io
import grimoire.log as grimoire_log

PACKAGE = ROOT / "src" / "grimoire"
DOCTEST_MODULES = {
    PACKAGE / "__init__.py",
    PACKAGE / "config.py",
    PACKAGE / "git.py",
    PACKAGE / "log.py",
    PACKAGE / "models.py",
    PACKAGE / "paths.py",
    PACKAGE / "polling.py",
    PACKAGE / "scout_prompt.py",
    PACKAGE / "commands" / "children.py",
    PACKAGE / "commands" / "common.py",
    PACKAGE / "commands" / "scout.py",
    PACKAGE / "services" / "sandbox.py",
    PACKAGE / "services" / "workflows" / "collect.py",
    PACKAGE / "services" / "workflows" / "commit.py",
    PACKAGE / "services" / "workflows" / "merge.py",
    PACKAGE / "services" / "workflows" / "targets.py",
}

AMBIENT_ENV_VARS = (
    "GRIMOIRE_WORKTREE",
    "GRIMOIRE_WORKTREE_PATH",
    "GRIMOIRE_SESSION_ID",
    "GRIMOIRE_SCOUT_NAME",
    "GRIMOIRE_AUTHOR",
    "GRIMOIRE_LOG_LEVEL",
    "CLAUDE_SESSION_ID",
)


@pytest.fixture(autouse=True)
def _default_patches(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in AMBIENT_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(io, "_use_questionary", lambda: False)
    monkeypatch.setattr(grimoire_log, "_configured_level", None)
    monkeypatch.setattr(grimoire_log, "_no_color", False)

    def fail_input(prompt: str = "") -> str:
        raise AssertionError("prompted unexpectedly")

    monkeypatch.setattr(builtins, "input", fail_input)


def pytest_collect_file(
    parent: pytest.Collector, file_path: Path
) -> DoctestModule | None:
    path = file_path if isinstance(file_path, Path) else Path(str(file_path))
    if path in DOCTEST_MODULES:
        return DoctestModule.from_parent(parent, path=path)
    return None
