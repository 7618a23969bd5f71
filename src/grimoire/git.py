"""Git helper functions used by the Grimoire services."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from . import exec as exec_util
from .services.errors import GitCommandError

PROTECTED_BRANCHES = ("main", "master")
_CONFLICT_MARKERS = ("CONFLICT", "Merge conflict", "fix conflicts")


@dataclass(frozen=True)
class PorcelainWorktree:
    """One record of ``git worktree list --porcelain``."""

    path: str
    head: str | None = None
    branch: str | None = None
    detached: bool = False
    bare: bool = False


def run_git(args: list[str], cwd: Path | None = None) -> exec_util.CommandResult:
    """Run git and return its result, raising only when git is missing."""
    result = exec_util.run_with_runner(
        exec_util.CommandRequest(argv=("git", *args), cwd=cwd)
    )
    if result is None:
        raise GitCommandError("missing required command: git")
    return result


def git_output(args: list[str], cwd: Path | None = None) -> str:
    """Run git and return stripped stdout, raising on a nonzero exit."""
    result = run_git(args, cwd)
    if result.returncode != 0:
        detail = (result.stderr or result.stdout).strip()
        message = f"git {' '.join(args)} failed"
        raise GitCommandError(f"{message}: {detail}" if detail else message)
    return result.stdout.strip()


def repo_root(start: Path) -> Path | None:
    """Return the top-level directory of the repository containing ``start``."""
    result = run_git(["-C", str(start), "rev-parse", "--show-toplevel"])
    if result.returncode != 0:
        return None
    output = result.stdout.strip()
    return Path(output) if output else None


def main_repo_root(start: Path) -> Path | None:
    """Return the main checkout root, even when ``start`` is inside a worktree."""
    result = run_git(
        ["-C", str(start), "rev-parse", "--path-format=absolute", "--git-common-dir"]
    )
    if result.returncode != 0:
        return None
    common_dir = Path(result.stdout.strip())
    if common_dir.name == ".git":
        return common_dir.parent
    return repo_root(start)


def current_branch(cwd: Path) -> str:
    return git_output(["branch", "--show-current"], cwd)


def branch_exists(cwd: Path, branch: str) -> bool:
    result = run_git(["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"], cwd)
    return result.returncode == 0


def default_branch(cwd: Path) -> str | None:
    for candidate in PROTECTED_BRANCHES:
        if branch_exists(cwd, candidate):
            return candidate
    return None


def rev_parse(cwd: Path, ref: str = "HEAD") -> str:
    return git_output(["rev-parse", ref], cwd)


def parse_worktree_porcelain(output: str) -> list[PorcelainWorktree]:
    """Parse ``git worktree list --porcelain`` output.

    Example:
        >>> text = "worktree /r\\nHEAD abc\\nbranch refs/heads/main\\n\\nworktree /r/.worktrees/x\\nHEAD def\\ndetached\\n"
        >>> [(w.path, w.branch, w.detached) for w in parse_worktree_porcelain(text)]
        [('/r', 'main', False), ('/r/.worktrees/x', None, True)]
    """
    records: list[PorcelainWorktree] = []
    current: dict[str, object] = {}
    for line in [*output.splitlines(), ""]:
        if not line.strip():
            if "path" in current:
                records.append(PorcelainWorktree(**current))  # type: ignore[arg-type]
            current = {}
            continue
        key, _, value = line.partition(" ")
        if key == "worktree":
            current["path"] = value
        elif key == "HEAD":
            current["head"] = value
        elif key == "branch":
            current["branch"] = value.removeprefix("refs/heads/")
        elif key == "detached":
            current["detached"] = True
        elif key == "bare":
            current["bare"] = True
    return records


def list_worktrees(cwd: Path) -> list[PorcelainWorktree]:
    return parse_worktree_porcelain(git_output(["worktree", "list", "--porcelain"], cwd))


def merged_branches(cwd: Path, target: str) -> set[str]:
    """Return local branches already merged into ``target``."""
    result = run_git(["branch", "--merged", target, "--format=%(refname:short)"], cwd)
    if result.returncode != 0:
        return set()
    return {line.strip() for line in result.stdout.splitlines() if line.strip()}


def status_lines(cwd: Path) -> list[str]:
    """Return porcelain status lines, or an empty list when git fails."""
    result = run_git(["status", "--porcelain"], cwd)
    if result.returncode != 0:
        return []
    return [line for line in result.stdout.splitlines() if line.strip()]


def status_count(cwd: Path) -> int:
    """Return the number of uncommitted changes reported by porcelain status."""
    return len(status_lines(cwd))


def change_summary(lines: list[str]) -> str:
    """Summarize porcelain status lines as added/modified/deleted counts.

    Example:
        >>> change_summary(["?? new.py", "A  staged.py", " M app.py", "D  old.py"])
        '2 added, 1 modified, 1 deleted'
        >>> change_summary(["R  a -> b"])
        'changes'
    """
    added = sum(1 for line in lines if line.startswith(("A", "??")))
    modified = sum(1 for line in lines if line.startswith(("M", " M")))
    deleted = sum(1 for line in lines if line.startswith(("D", " D")))
    parts = [
        f"{count} {label}"
        for count, label in ((added, "added"), (modified, "modified"), (deleted, "deleted"))
        if count
    ]
    return ", ".join(parts) or "changes"


def staged_files(cwd: Path) -> list[str]:
    output = git_output(["diff", "--cached", "--name-only"], cwd)
    return [line for line in output.splitlines() if line.strip()]


def conflicted_files(cwd: Path) -> list[str]:
    result = run_git(["diff", "--name-only", "--diff-filter=U"], cwd)
    return [line for line in result.stdout.splitlines() if line.strip()]


def commits_ahead(cwd: Path, branch: str) -> int:
    result = run_git(["rev-list", "--count", f"HEAD..{branch}"], cwd)
    try:
        return int(result.stdout.strip())
    except ValueError:
        return 0


def changed_files(cwd: Path, branch: str) -> list[str]:
    result = run_git(["diff", "--name-only", f"HEAD...{branch}"], cwd)
    return [line for line in result.stdout.splitlines() if line.strip()]


def commit_subjects(cwd: Path, base: str, branch: str) -> list[str]:
    result = run_git(["log", f"{base}..{branch}", "--format=%s"], cwd)
    return [line for line in result.stdout.splitlines() if line.strip()]


def is_conflict_output(output: str) -> bool:
    """Return whether git output reports a merge conflict.

    Example:
        >>> is_conflict_output("CONFLICT (content): Merge conflict in a.txt")
        True
        >>> is_conflict_output("Already up to date.")
        False
    """
    return any(marker in output for marker in _CONFLICT_MARKERS)


def conflict_files_from_output(output: str) -> list[str]:
    """Extract conflicting paths from ``git merge`` output.

    Example:
        >>> conflict_files_from_output("Auto-merging a.txt\\nCONFLICT (content): Merge conflict in a.txt")
        ['a.txt']
        >>> conflict_files_from_output("CONFLICT (modify/delete): b.txt deleted in HEAD and modified in x.")
        ['b.txt']
    """
    files: list[str] = []
    for line in output.splitlines():
        line = line.strip()
        if not line.startswith("CONFLICT ("):
            continue
        detail = line.split("): ", 1)[1] if "): " in line else ""
        if detail.startswith("Merge conflict in "):
            path = detail.removeprefix("Merge conflict in ").strip()
        else:
            path = detail.split(" ", 1)[0]
        if path and path not in files:
            files.append(path)
    return files


def sanitize_branch_name(branch: str) -> str:
    """Turn a branch name into a directory-safe worktree name.

    Example:
        >>> sanitize_branch_name("feature/auth login!")
        'feature-authlogin'
        >>> sanitize_branch_name("--x--")
        'x'
    """
    name = branch.replace("/", "-")
    name = re.sub(r"[^A-Za-z0-9._-]", "", name)
    return name.strip("-")


def ensure_excluded(cwd: Path, patterns: tuple[str, ...]) -> list[str]:
    """Add ``patterns`` to the shared ``info/exclude`` file; return those added."""
    common_dir = Path(
        git_output(["rev-parse", "--path-format=absolute", "--git-common-dir"], cwd)
    )
    exclude = common_dir / "info" / "exclude"
    existing = exclude.read_text(encoding="utf-8") if exclude.exists() else ""
    present = {line.strip() for line in existing.splitlines()}
    missing = [pattern for pattern in patterns if pattern not in present]
    if missing:
        exclude.parent.mkdir(parents=True, exist_ok=True)
        prefix = "" if not existing or existing.endswith("\n") else "\n"
        exclude.write_text(existing + prefix + "\n".join(missing) + "\n", encoding="utf-8")
    return missing
