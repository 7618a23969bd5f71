"""Path helpers for locating Grimoire state, scout artifacts, and overrides."""

from pathlib import Path

from platformdirs import user_config_dir

GRIMOIRE_APP_NAME = "grimoire"
STATE_DIRNAME = ".grim"
STATE_FILENAME = "state.json"
SCOUTS_DIRNAME = "scouts"
FINDINGS_DIRNAME = "findings"
WORKTREES_DIRNAME = ".worktrees"
PROJECT_CONFIG_DIRNAME = ".grimoire"
SANDBOX_CONFIG_FILENAME = "srt.json"
SESSION_LOG_FILENAME = ".claude-session.log"


def state_dir(repo_root: Path) -> Path:
    """Return the per-repository state directory.

    Example:
        >>> state_dir(Path("/repo")).as_posix()
        '/repo/.grim'
    """
    return repo_root / STATE_DIRNAME


def state_path(repo_root: Path) -> Path:
    """Return the worktree state document path.

    Example:
        >>> state_path(Path("/repo")).as_posix()
        '/repo/.grim/state.json'
    """
    return state_dir(repo_root) / STATE_FILENAME


def state_lock_path(document: Path) -> Path:
    """Return the advisory lock file guarding a state document.

    Example:
        >>> state_lock_path(Path("/repo/.grim/state.json")).as_posix()
        '/repo/.grim/state.lock'
    """
    return document.with_suffix(".lock")


def scouts_dir(project_path: Path) -> Path:
    return state_dir(project_path) / SCOUTS_DIRNAME


def scouts_state_path(project_path: Path) -> Path:
    """Return the scout registry path.

    Example:
        >>> scouts_state_path(Path("/repo")).as_posix()
        '/repo/.grim/scouts/state.json'
    """
    return scouts_dir(project_path) / STATE_FILENAME


def findings_dir(project_path: Path) -> Path:
    return scouts_dir(project_path) / FINDINGS_DIRNAME


def findings_path(project_path: Path, name: str) -> Path:
    """Return the findings JSON path for a scout.

    Example:
        >>> findings_path(Path("/repo"), "auth").as_posix()
        '/repo/.grim/scouts/findings/auth.json'
    """
    return findings_dir(project_path) / f"{name}.json"


def scout_log_path(project_path: Path, name: str) -> Path:
    return findings_dir(project_path) / f"{name}.log"


def worktrees_root(repo_root: Path) -> Path:
    """Return the directory holding managed worktrees.

    Example:
        >>> worktrees_root(Path("/repo")).as_posix()
        '/repo/.worktrees'
    """
    return repo_root / WORKTREES_DIRNAME


def user_sandbox_config_path() -> Path:
    """Return the user-level sandbox override file."""
    return Path(user_config_dir(GRIMOIRE_APP_NAME)) / SANDBOX_CONFIG_FILENAME


def project_sandbox_config_path(project_path: Path) -> Path:
    """Return the project-level sandbox override file.

    Example:
        >>> project_sandbox_config_path(Path("/repo")).as_posix()
        '/repo/.grimoire/srt.json'
    """
    return project_path / PROJECT_CONFIG_DIRNAME / SANDBOX_CONFIG_FILENAME


def session_log_path(worktree_path: Path) -> Path:
    return worktree_path / SESSION_LOG_FILENAME
