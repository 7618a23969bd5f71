"""Pydantic models for Grimoire's persisted state.

Field names are snake_case in Python and camelCase on disk. Unknown keys are
preserved so documents written by newer versions survive a rewrite.

Example:
    >>> entry = WorktreeStateEntry.model_validate({"name": "a", "claimedBy": "bob"})
    >>> entry.claimed_by
    'bob'
    >>> entry.model_dump(by_alias=True, exclude_none=True)["claimedBy"]
    'bob'
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .services.errors import InvalidTransitionError

STATE_VERSION = 1

WorktreeStatus = Literal["active", "stale"]
LogType = Literal["log", "handoff", "interrupt"]
Stage = Literal["plan", "implement", "test", "review"]
STAGE_VALUES = ("plan", "implement", "test", "review")
MergeStatus = Literal["pending", "ready", "merged", "conflict", "abandoned"]
SessionStatus = Literal["running", "stopped", "crashed"]
SessionMode = Literal["headless", "interactive", "tmux"]
ScoutStatus = Literal["pending", "running", "done", "failed", "cancelled"]
ScoutDepth = Literal["shallow", "medium", "deep"]

SESSION_TRANSITIONS: dict[str, frozenset[str]] = {
    "running": frozenset({"stopped", "crashed"}),
    "stopped": frozenset(),
    "crashed": frozenset(),
}
SCOUT_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"running", "failed", "cancelled"}),
    "running": frozenset({"done", "failed", "cancelled"}),
    "done": frozenset(),
    "failed": frozenset(),
    "cancelled": frozenset(),
}


class _Document(BaseModel):
    model_config = ConfigDict(
        extra="allow", alias_generator=to_camel, populate_by_name=True
    )


class WorktreeInfo(BaseModel):
    """Snapshot of a git worktree, recomputed from git on every listing.

    Attributes:
        name: Directory name under the worktrees root.
        branch: Checked-out branch (empty when detached).
        path: Absolute worktree path.
        status: ``stale`` when the branch is merged into the default branch.
        uncommitted: Number of ``git status --porcelain`` lines.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    branch: str
    path: str
    status: WorktreeStatus = "active"
    uncommitted: int = 0


class LogMetadata(_Document):
    next_stage: str | None = None
    reason: str | None = None


class LogEntry(_Document):
    time: str
    message: str
    author: str = "human"
    type: LogType = "log"
    metadata: LogMetadata | None = None


class Checkpoint(_Document):
    hash: str
    message: str
    time: str
    author: str = "human"


class StageTransition(_Document):
    from_stage: str = Field(default="unknown", alias="from")
    to_stage: str = Field(alias="to")
    time: str
    agent: str = "human"


class EntryMetadata(_Document):
    created_by: str = "human"
    session_id: str | None = None


class AgentSession(_Document):
    """Agent process bound to a worktree.

    Status only moves forward: ``running`` to ``stopped`` or ``crashed``.

    Example:
        >>> s = AgentSession(session_id="sess_1", pid=42, started_at="t")
        >>> s.transition("stopped", ended_at="t2").status
        'stopped'
        >>> s.transition("stopped").transition("running")
        Traceback (most recent call last):
        ...
        grimoire.services.errors.InvalidTransitionError: session cannot move from stopped to running
    """

    session_id: str
    pid: int
    mode: SessionMode = "headless"
    status: SessionStatus = "running"
    started_at: str
    ended_at: str | None = None
    exit_code: int | None = None
    prompt: str | None = None
    log_file: str | None = None
    tmux_window: str | None = None

    @property
    def is_terminal(self) -> bool:
        return not SESSION_TRANSITIONS[self.status]

    def transition(
        self,
        target: SessionStatus,
        *,
        ended_at: str | None = None,
        exit_code: int | None = None,
    ) -> AgentSession:
        """Return a copy moved to ``target``; illegal moves raise."""
        if target not in SESSION_TRANSITIONS[self.status]:
            raise InvalidTransitionError("session", self.status, target)
        update: dict[str, object] = {"status": target}
        if ended_at is not None:
            update["ended_at"] = ended_at
        if exit_code is not None:
            update["exit_code"] = exit_code
        return self.model_copy(update=update)


class WorktreeStateEntry(_Document):
    """Persistent per-worktree record keyed by worktree name."""

    name: str
    branch: str = ""
    created_at: str | None = None
    linked_issue: str | None = None
    metadata: EntryMetadata | None = None
    logs: list[LogEntry] = Field(default_factory=list)
    checkpoints: list[Checkpoint] = Field(default_factory=list)
    claimed_by: str | None = None
    claimed_at: str | None = None
    current_stage: Stage | None = None
    stage_history: list[StageTransition] = Field(default_factory=list)
    parent_worktree: str | None = None
    parent_session: str | None = None
    child_worktrees: list[str] = Field(default_factory=list)
    spawned_at: str | None = None
    completed_at: str | None = None
    merge_status: MergeStatus | None = None
    session: AgentSession | None = None

    @field_validator("merge_status", mode="before")
    @classmethod
    def normalize_merge_status(cls, value: object) -> object:
        if isinstance(value, str) and value.strip().lower() in {"", "none"}:
            return None
        return value

    @field_validator("claimed_by", "claimed_at", mode="before")
    @classmethod
    def normalize_claim(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class WorktreeState(_Document):
    version: int = STATE_VERSION
    worktrees: list[WorktreeStateEntry] = Field(default_factory=list)

    def find(self, name: str) -> WorktreeStateEntry | None:
        for entry in self.worktrees:
            if entry.name == name:
                return entry
        return None


class ScoutOptions(_Document):
    depth: ScoutDepth = "medium"
    focus: str | None = None
    timeout: int = 120
    model: str = "haiku"


class ScoutEntry(_Document):
    """Background exploration agent record.

    Example:
        >>> e = ScoutEntry(name="a", question="q", started_at="t")
        >>> e.transition("running").transition("done").status
        'done'
    """

    name: str
    question: str
    status: ScoutStatus = "pending"
    pid: int | None = None
    started_at: str
    completed_at: str | None = None
    error: str | None = None
    options: ScoutOptions = Field(default_factory=ScoutOptions)

    @property
    def is_terminal(self) -> bool:
        return not SCOUT_TRANSITIONS[self.status]

    @property
    def is_active(self) -> bool:
        return self.status in {"pending", "running"}

    def transition(self, target: ScoutStatus, **update: object) -> ScoutEntry:
        """Return a copy moved to ``target``; illegal moves raise."""
        if target not in SCOUT_TRANSITIONS[self.status]:
            raise InvalidTransitionError("scout", self.status, target)
        return self.model_copy(update={"status": target, **update})


class ScoutState(_Document):
    version: int = STATE_VERSION
    scouts: dict[str, ScoutEntry] = Field(default_factory=dict)


class KeyFile(_Document):
    path: str
    relevance: str = ""


class CodePattern(_Document):
    description: str
    example: str = ""
    location: str = ""


class RelatedArea(_Document):
    path: str
    description: str = ""


class ScoutFindings(_Document):
    name: str
    question: str
    explored_at: str
    duration: float = 0.0
    summary: str = ""
    key_files: list[KeyFile] = Field(default_factory=list)
    code_patterns: list[CodePattern] = Field(default_factory=list)
    related_areas: list[RelatedArea] = Field(default_factory=list)
    raw_log: str | None = None


class NetworkPolicy(_Document):
    allowed_domains: list[str] = Field(default_factory=list)
    denied_domains: list[str] = Field(default_factory=list)


class FilesystemPolicy(_Document):
    deny_read: list[str] = Field(default_factory=list)
    allow_write: list[str] = Field(default_factory=list)
    deny_write: list[str] = Field(default_factory=list)


class SandboxConfig(_Document):
    """Resolved sandbox policy handed to the sandbox runtime."""

    network: NetworkPolicy = Field(default_factory=NetworkPolicy)
    filesystem: FilesystemPolicy = Field(default_factory=FilesystemPolicy)


class NetworkOverrides(BaseModel):
    model_config = ConfigDict(
        extra="forbid", alias_generator=to_camel, populate_by_name=True
    )

    allowed_domains: list[str] = Field(default_factory=list)
    denied_domains: list[str] = Field(default_factory=list)


class FilesystemOverrides(BaseModel):
    model_config = ConfigDict(
        extra="forbid", alias_generator=to_camel, populate_by_name=True
    )

    additional_write_paths: list[str] = Field(default_factory=list)
    deny_read: list[str] = Field(default_factory=list)
    deny_write: list[str] = Field(default_factory=list)


class SandboxOverrides(BaseModel):
    """User or project override document (``srt.json``)."""

    model_config = ConfigDict(extra="forbid")

    network: NetworkOverrides = Field(default_factory=NetworkOverrides)
    filesystem: FilesystemOverrides = Field(default_factory=FilesystemOverrides)
