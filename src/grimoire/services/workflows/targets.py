"""Selecting the child worktrees a workflow acts on."""

from __future__ import annotations

import os

from ...models import WorktreeState, WorktreeStateEntry
from ..errors import NotFoundError
from ..worktrees import SESSION_ENV_VAR, WORKTREE_ENV_VAR


def child_entries(
    state: WorktreeState,
    parent_worktree: str | None = None,
    parent_session: str | None = None,
) -> list[WorktreeStateEntry]:
    """Return entries spawned from the given worktree or session.

    Defaults come from ``GRIMOIRE_WORKTREE`` and ``GRIMOIRE_SESSION_ID``.

    Example:
        >>> doc = WorktreeState.model_validate(
        ...     {"worktrees": [{"name": "p", "childWorktrees": ["a"]},
        ...                    {"name": "a"}, {"name": "b", "parentWorktree": "p"}]})
        >>> [e.name for e in child_entries(doc, parent_worktree="p")]
        ['a', 'b']
    """
    parent_worktree = parent_worktree or os.environ.get(WORKTREE_ENV_VAR) or None
    parent_session = parent_session or os.environ.get(SESSION_ENV_VAR) or None
    listed: set[str] = set()
    if parent_worktree:
        parent = state.find(parent_worktree)
        if parent is not None:
            listed.update(parent.child_worktrees)
    children = []
    for entry in state.worktrees:
        if entry.name == parent_worktree:
            continue
        if (
            entry.name in listed
            or (parent_worktree and entry.parent_worktree == parent_worktree)
            or (parent_session and entry.parent_session == parent_session)
        ):
            children.append(entry)
    return children


def explicit_entries(state: WorktreeState, names: list[str]) -> list[WorktreeStateEntry]:
    entries = []
    for name in names:
        entry = state.find(name)
        if entry is None:
            raise NotFoundError("worktree", name)
        entries.append(entry)
    return entries


def topological_order(entries: list[WorktreeStateEntry]) -> list[WorktreeStateEntry]:
    """Order entries so each child precedes its parent when both are present.

    Example:
        >>> doc = WorktreeState.model_validate(
        ...     {"worktrees": [{"name": "a"}, {"name": "b", "parentWorktree": "a"}]})
        >>> [e.name for e in topological_order(doc.worktrees)]
        ['b', 'a']
    """
    by_name = {entry.name: entry for entry in entries}
    ordered: list[WorktreeStateEntry] = []
    visiting: set[str] = set()
    done: set[str] = set()

    def visit(entry: WorktreeStateEntry) -> None:
        if entry.name in done or entry.name in visiting:
            return
        visiting.add(entry.name)
        for child in entries:
            if child.parent_worktree == entry.name:
                visit(child)
        visiting.discard(entry.name)
        done.add(entry.name)
        ordered.append(entry)

    for entry in entries:
        if entry.parent_worktree not in by_name:
            visit(entry)
    for entry in entries:
        visit(entry)
    return ordered
