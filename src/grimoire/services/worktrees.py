"""Git worktree primitives scoped to a repository's ``.worktrees`` directory.

Every call re-queries git; nothing is cached between calls.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path

from .. import config, git, log, paths
from ..models import EntryMetadata, WorktreeInfo, WorktreeStateEntry
from .errors import (
    BranchNotFoundError,
    DirtyWorktreeError,
    GitCommandError,
    NotFoundError,
    ProtectedBranchError,
    WorktreeAlreadyExistsError,
)
from .state import WorktreeStateService, current_author

ENV_FILE_PATTERNS = (".env*", ".envrc", ".tool-versions", ".nvmrc", ".node-version")
WORKTREE_ENV_VAR = "GRIMOIRE_WORKTREE"
WORKTREE_PATH_ENV_VAR = "GRIMOIRE_WORKTREE_PATH"
SESSION_ENV_VAR = "GRIMOIRE_SESSION_ID"
IGNORED_PATTERNS = (
    f"/{paths.STATE_DIRNAME}/",
    f"/{paths.WORKTREES_DIRNAME}/",
    paths.SESSION_LOG_FILENAME,
)


def resolve_repo_root(cwd: Path) -> Path:
    """Return the main repository root for ``cwd`` or raise when outside git."""
    root = git.main_repo_root(cwd)
    if root is None:
        raise GitCommandError(
            f"{cwd} is not inside a git repository",
            recovery_hint="run this command from a git checkout",
        )
    return root


def _copy_env_files(repo_root: Path, worktree_path: Path) -> list[str]:
    copied: list[str] = []
    for pattern in ENV_FILE_PATTERNS:
        for source in sorted(repo_root.glob(pattern)):
            if not source.is_file():
                continue
            target = worktree_path / source.name
            if target.exists():
                continue
            shutil.copy2(source, target)
            copied.append(source.name)
    return copied


class WorktreeService:
    """List, create, inspect, and remove managed worktrees."""

    def __init__(self, state: WorktreeStateService | None = None) -> None:
        self.state = state or WorktreeStateService()

    def _managed(self, repo_root: Path) -> list[git.PorcelainWorktree]:
        base = paths.worktrees_root(repo_root).resolve()
        managed = []
        for record in git.list_worktrees(repo_root):
            record_path = Path(record.path).resolve()
            if record_path.parent == base:
                managed.append(record)
        return managed

    def _merge_bases(self, repo_root: Path) -> tuple[set[str], set[str]]:
        """Return branches merged into main/master and the heads of those bases."""
        merged: set[str] = set()
        base_heads: set[str] = set()
        for target in git.PROTECTED_BRANCHES:
            if git.branch_exists(repo_root, target):
                merged |= git.merged_branches(repo_root, target)
                base_heads.add(git.rev_parse(repo_root, target))
        return merged, base_heads

    def _info(
        self,
        path: Path,
        branch: str,
        head: str,
        entry: WorktreeStateEntry | None,
        bases: tuple[set[str], set[str]],
    ) -> WorktreeInfo:
        merged, base_heads = bases
        # A fresh branch sitting on the base head is new work, not merged work.
        stale = (
            bool(branch)
            and branch in merged
            and branch not in git.PROTECTED_BRANCHES
            and (
                head not in base_heads
                or (entry is not None and entry.merge_status == "merged")
            )
        )
        return WorktreeInfo(
            name=path.name,
            branch=branch,
            path=str(path),
            status="stale" if stale else "active",
            uncommitted=git.status_count(path),
        )

    def list(self, repo_cwd: Path) -> list[WorktreeInfo]:
        """Return managed worktrees with stale/active status and change counts."""
        repo_root = resolve_repo_root(repo_cwd)
        bases = self._merge_bases(repo_root)
        state = self.state.get_state(repo_root)
        return [
            self._info(
                Path(record.path),
                record.branch or "",
                record.head,
                state.find(Path(record.path).name),
                bases,
            )
            for record in self._managed(repo_root)
        ]

    def get(self, repo_cwd: Path, name: str) -> WorktreeInfo:
        repo_root = resolve_repo_root(repo_cwd)
        path = paths.worktrees_root(repo_root) / name
        if not (path / ".git").exists():
            raise NotFoundError("worktree", name)
        branch = git.git_output(["rev-parse", "--abbrev-ref", "HEAD"], path)
        return self._info(
            path,
            "" if branch == "HEAD" else branch,
            git.rev_parse(path),
            self.state.get_entry(repo_root, name),
            self._merge_bases(repo_root),
        )

    def create(
        self,
        repo_cwd: Path,
        branch: str,
        *,
        create_branch: bool = False,
        from_issue: str | None = None,
    ) -> WorktreeInfo:
        """Add a worktree for ``branch`` and register it in the state document.

        Raises:
            WorktreeAlreadyExistsError: The name is already registered or on disk.
            BranchNotFoundError: The branch is missing and ``create_branch`` is off.
        """
        repo_root = resolve_repo_root(repo_cwd)
        name = git.sanitize_branch_name(branch)
        if not name:
            raise BranchNotFoundError(branch)
        path = paths.worktrees_root(repo_root) / name
        if path.exists() or self.state.get_entry(repo_root, name) is not None:
            raise WorktreeAlreadyExistsError(name)

        args = ["worktree", "add", str(path), branch]
        if not git.branch_exists(repo_root, branch):
            if not create_branch:
                raise BranchNotFoundError(branch)
            args = ["worktree", "add", "-b", branch, str(path)]
        path.parent.mkdir(parents=True, exist_ok=True)
        git.ensure_excluded(repo_root, IGNORED_PATTERNS)
        git.git_output(args, repo_root)

        copied = _copy_env_files(repo_root, path)
        if copied:
            log.debug(f"copied {', '.join(copied)} into {name}")

        session_id = os.environ.get(SESSION_ENV_VAR) or None
        self.state.add_entry(
            repo_root,
            WorktreeStateEntry(
                name=name,
                branch=branch,
                created_at=config.utc_now(),
                linked_issue=from_issue,
                metadata=EntryMetadata(created_by=current_author(), session_id=session_id),
                parent_worktree=os.environ.get(WORKTREE_ENV_VAR) or None,
                parent_session=session_id,
            ),
        )
        parent = os.environ.get(WORKTREE_ENV_VAR)
        if parent and parent != name and self.state.get_entry(repo_root, parent):
            self.state.update_worktree(
                repo_root,
                parent,
                {
                    "child_worktrees": [
                        *self.state.require_entry(repo_root, parent).child_worktrees,
                        name,
                    ]
                },
            )
        return WorktreeInfo(name=name, branch=branch, path=str(path))

    def remove(
        self,
        repo_cwd: Path,
        name: str,
        *,
        delete_branch: bool = False,
        force: bool = False,
    ) -> None:
        """Remove a worktree and its state entry.

        Raises:
            NotFoundError: No worktree with that name.
            DirtyWorktreeError: Uncommitted changes exist and ``force`` is off.
            ProtectedBranchError: ``delete_branch`` targets main or master.
        """
        repo_root = resolve_repo_root(repo_cwd)
        info = self.get(repo_root, name)
        if delete_branch and info.branch in git.PROTECTED_BRANCHES:
            raise ProtectedBranchError(info.branch)
        if not force and info.uncommitted:
            raise DirtyWorktreeError(name, info.uncommitted)
        args = ["worktree", "remove", info.path]
        if force:
            args.insert(2, "--force")
        git.git_output(args, repo_root)
        if delete_branch and info.branch:
            flag = "-D" if force else "-d"
            git.git_output(["branch", flag, info.branch], repo_root)
        self.state.remove_entry(repo_root, name)

    def adopt(self, repo_cwd: Path, name: str) -> WorktreeStateEntry:
        """Register an existing managed worktree that has no state entry."""
        repo_root = resolve_repo_root(repo_cwd)
        info = self.get(repo_root, name)
        git.ensure_excluded(repo_root, IGNORED_PATTERNS)
        existing = self.state.get_entry(repo_root, name)
        if existing is not None:
            return existing
        entry = WorktreeStateEntry(
            name=name,
            branch=info.branch,
            created_at=config.utc_now(),
            metadata=EntryMetadata(created_by=current_author()),
        )
        self.state.add_entry(repo_root, entry)
        return entry
