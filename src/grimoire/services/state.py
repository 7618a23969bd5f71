"""Per-repository worktree state store.

The state document at ``<repo>/.grim/state.json`` is the only place where
claims, logs, checkpoints, merge status, and agent sessions are recorded.
Every mutation is a read-modify-write performed while holding the
document's advisory lock, and the write itself is an atomic rename.
"""

from __future__ import annotations

import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Mapping

from pydantic import ValidationError

from .. import config, log, paths
from ..models import (
    Checkpoint,
    LogEntry,
    LogMetadata,
    LogType,
    Stage,
    StageTransition,
    WorktreeState,
    WorktreeStateEntry,
)
from .errors import ClaimHeldError, NotFoundError, StateDocumentError

AUTHOR_ENV_VARS = ("GRIMOIRE_AUTHOR", "GRIMOIRE_SESSION_ID", "CLAUDE_SESSION_ID")


def current_author() -> str:
    """Return the actor recorded on claims and logs (a session id or ``human``)."""
    for name in AUTHOR_ENV_VARS:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return "human"


def _field_alias(key: str) -> str:
    field = WorktreeStateEntry.model_fields.get(key)
    if field is not None and field.alias:
        return field.alias
    return key


class WorktreeStateService:
    """Read and mutate the shared worktree state document."""

    def document_path(self, repo_root: Path) -> Path:
        return paths.state_path(repo_root)

    def _load(self, path: Path) -> WorktreeState:
        try:
            payload = config.load_json(path)
        except (OSError, json.JSONDecodeError) as exc:
            raise StateDocumentError(str(path), str(exc)) from exc
        if payload is None:
            return WorktreeState()
        try:
            return WorktreeState.model_validate(payload)
        except ValidationError as exc:
            raise StateDocumentError(str(path), str(exc)) from exc

    @contextmanager
    def transaction(self, repo_root: Path) -> Iterator[WorktreeState]:
        """Yield the locked document; it is written back when the block exits cleanly."""
        path = self.document_path(repo_root)
        with config.document_lock(path):
            state = self._load(path)
            yield state
            config.write_json(path, state)

    def get_state(self, repo_root: Path) -> WorktreeState:
        """Return the current document, creating an empty one if none exists."""
        path = self.document_path(repo_root)
        with config.document_lock(path):
            state = self._load(path)
            if not path.exists():
                config.write_json(path, state)
        return state

    def get_entry(self, repo_root: Path, name: str) -> WorktreeStateEntry | None:
        return self.get_state(repo_root).find(name)

    def require_entry(self, repo_root: Path, name: str) -> WorktreeStateEntry:
        entry = self.get_entry(repo_root, name)
        if entry is None:
            raise NotFoundError("worktree state entry", name)
        return entry

    def add_entry(self, repo_root: Path, entry: WorktreeStateEntry) -> None:
        with self.transaction(repo_root) as state:
            state.worktrees = [w for w in state.worktrees if w.name != entry.name]
            state.worktrees.append(entry)
        log.debug(f"state: added {entry.name}")

    def update_worktree(
        self, repo_root: Path, name: str, partial: Mapping[str, object]
    ) -> WorktreeStateEntry:
        """Merge ``partial`` into the named entry, creating it if absent.

        Keys may use either Python field names or on-disk names. A value of
        ``None`` clears the field. Fields not named in ``partial`` and other
        entries are left untouched.
        """
        with self.transaction(repo_root) as state:
            index = next(
                (i for i, w in enumerate(state.worktrees) if w.name == name), None
            )
            if index is None:
                data: dict[str, object] = {"name": name}
            else:
                data = state.worktrees[index].model_dump(by_alias=True)
            for key, value in partial.items():
                data[_field_alias(key)] = value
            data["name"] = name
            updated = WorktreeStateEntry.model_validate(data)
            if index is None:
                state.worktrees.append(updated)
            else:
                state.worktrees[index] = updated
        return updated

    def remove_entry(self, repo_root: Path, name: str) -> bool:
        with self.transaction(repo_root) as state:
            before = len(state.worktrees)
            state.worktrees = [w for w in state.worktrees if w.name != name]
            removed = len(state.worktrees) != before
        if removed:
            log.debug(f"state: removed {name}")
        return removed

    def prune_orphans(self, repo_root: Path, valid_names: set[str]) -> list[str]:
        """Drop entries whose worktree no longer exists; return their names."""
        with self.transaction(repo_root) as state:
            orphans = [w.name for w in state.worktrees if w.name not in valid_names]
            state.worktrees = [w for w in state.worktrees if w.name in valid_names]
        for name in orphans:
            log.debug(f"state: pruned orphan {name}")
        return orphans

    def append_log(
        self,
        repo_root: Path,
        name: str,
        message: str,
        *,
        author: str | None = None,
        type: LogType = "log",
        metadata: LogMetadata | None = None,
    ) -> LogEntry:
        entry_log = LogEntry(
            time=config.utc_now(),
            message=message,
            author=author or current_author(),
            type=type,
            metadata=metadata,
        )
        with self.transaction(repo_root) as state:
            entry = state.find(name)
            if entry is None:
                raise NotFoundError("worktree state entry", name)
            entry.logs.append(entry_log)
        return entry_log

    def append_checkpoint(
        self, repo_root: Path, name: str, checkpoint: Checkpoint
    ) -> None:
        """Record a checkpoint and its matching log line in one write."""
        with self.transaction(repo_root) as state:
            entry = state.find(name)
            if entry is None:
                raise NotFoundError("worktree state entry", name)
            entry.checkpoints.append(checkpoint)
            entry.logs.append(
                LogEntry(
                    time=checkpoint.time,
                    message=f"Checkpoint: {checkpoint.message}",
                    author=checkpoint.author,
                )
            )

    def claim(
        self,
        repo_root: Path,
        name: str,
        author: str | None = None,
        *,
        force: bool = False,
    ) -> tuple[WorktreeStateEntry, str | None]:
        """Mark ``name`` as being worked on by ``author``.

        Claims are advisory: the check and the write happen under the state
        lock, but nothing stops a writer that passes ``force``.

        Returns:
            The updated entry and the previous holder when it was overridden.
        """
        actor = author or current_author()
        with self.transaction(repo_root) as state:
            entry = state.find(name)
            if entry is None:
                raise NotFoundError("worktree state entry", name)
            previous = entry.claimed_by
            if previous and previous != actor and not force:
                raise ClaimHeldError(name, previous, entry.claimed_at)
            entry.claimed_by = actor
            entry.claimed_at = config.utc_now()
        overridden = previous if previous and previous != actor else None
        return entry, overridden

    def release(self, repo_root: Path, name: str) -> WorktreeStateEntry:
        with self.transaction(repo_root) as state:
            entry = state.find(name)
            if entry is None:
                raise NotFoundError("worktree state entry", name)
            entry.claimed_by = None
            entry.claimed_at = None
        return entry

    def set_stage(
        self, repo_root: Path, name: str, stage: Stage, *, agent: str | None = None
    ) -> StageTransition | None:
        """Move the entry to ``stage``, recording the transition.

        Returns ``None`` when the entry is already at ``stage``.
        """
        with self.transaction(repo_root) as state:
            entry = state.find(name)
            if entry is None:
                raise NotFoundError("worktree state entry", name)
            if entry.current_stage == stage:
                return None
            transition = StageTransition(
                from_stage=entry.current_stage or "unknown",
                to_stage=stage,
                time=config.utc_now(),
                agent=agent or current_author(),
            )
            entry.stage_history.append(transition)
            entry.current_stage = stage
        log.transition(f"{name} stage", transition.from_stage, stage)
        return transition
