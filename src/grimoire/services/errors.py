"""Domain failure contracts.

Services raise ``GrimoireError`` subclasses on expected domain, policy, or
runtime failures. Programmer bugs raise normal exceptions. Command modules
catch ``GrimoireError`` at the boundary and turn it into a user-facing
message with a nonzero exit.
"""

from __future__ import annotations

from typing import Literal, Sequence

ErrorCode = Literal[
    "not_found",
    "already_exists",
    "already_running",
    "branch_not_found",
    "protected_branch",
    "dirty_worktree",
    "self_merge",
    "merge_conflict",
    "merge_failed",
    "sandbox_config_invalid",
    "sandbox_unavailable",
    "process_signal_failed",
    "scout_timeout",
    "invalid_transition",
    "external_command_failed",
    "state_invalid",
    "claim_held",
    "validation_failed",
]


class GrimoireError(Exception):
    """Expected failure raised by services.

    Use ``raise GrimoireError(...) from exc`` to chain a causing exception; it
    is available as ``__cause__``.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        recovery_hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.recovery_hint = recovery_hint


class NotFoundError(GrimoireError):
    """A worktree, session, or scout does not exist."""

    def __init__(
        self, kind: str, name: str, *, recovery_hint: str | None = None
    ) -> None:
        super().__init__(
            "not_found", f"{kind} '{name}' not found", recovery_hint=recovery_hint
        )
        self.kind = kind
        self.name = name


class AlreadyExistsError(GrimoireError):
    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("already_exists", message, recovery_hint=recovery_hint)


class WorktreeAlreadyExistsError(AlreadyExistsError):
    def __init__(self, name: str) -> None:
        super().__init__(
            f"worktree '{name}' already exists",
            recovery_hint=f"use `grim wt path {name}` to locate it",
        )
        self.name = name


class AlreadyRunningError(GrimoireError):
    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("already_running", message, recovery_hint=recovery_hint)


class SessionAlreadyRunningError(AlreadyRunningError):
    def __init__(self, name: str, pid: int) -> None:
        super().__init__(
            f"worktree '{name}' already has a running session (pid {pid})",
            recovery_hint=f"stop it first with `grim wt kill {name}`",
        )
        self.name = name
        self.pid = pid


class ScoutAlreadyRunningError(AlreadyRunningError):
    def __init__(self, name: str) -> None:
        super().__init__(
            f"scout '{name}' is already running",
            recovery_hint=f"cancel it with `grim ag scout cancel {name}`",
        )
        self.name = name


class BranchNotFoundError(GrimoireError):
    def __init__(self, branch: str) -> None:
        super().__init__(
            "branch_not_found",
            f"branch '{branch}' does not exist",
            recovery_hint="pass -b to create it",
        )
        self.branch = branch


class ProtectedBranchError(GrimoireError):
    def __init__(self, branch: str) -> None:
        super().__init__("protected_branch", f"refusing to delete protected branch '{branch}'")
        self.branch = branch


class DirtyWorktreeError(GrimoireError):
    def __init__(self, name: str, changes: int) -> None:
        super().__init__(
            "dirty_worktree",
            f"worktree '{name}' has {changes} uncommitted change(s)",
            recovery_hint="commit or stash them, or pass --force",
        )
        self.name = name
        self.changes = changes


class SelfMergeError(GrimoireError):
    def __init__(self, branch: str) -> None:
        super().__init__("self_merge", f"cannot merge branch '{branch}' into itself")
        self.branch = branch


class MergeConflictError(GrimoireError):
    def __init__(self, branch: str, files: Sequence[str]) -> None:
        listed = f": {', '.join(files)}" if files else ""
        super().__init__(
            "merge_conflict",
            f"merge conflict merging '{branch}'{listed}",
            recovery_hint="resolve the conflicts and commit, or run `git merge --abort`",
        )
        self.branch = branch
        self.files = list(files)


class MergeFailedError(GrimoireError):
    def __init__(self, branch: str, detail: str) -> None:
        super().__init__("merge_failed", f"merge of '{branch}' failed: {detail}")
        self.branch = branch
        self.detail = detail


class SandboxConfigParseError(GrimoireError):
    def __init__(self, path: str, cause: str) -> None:
        super().__init__(
            "sandbox_config_invalid",
            f"invalid sandbox config {path}: {cause}",
            recovery_hint="fix or remove the file; protections are not applied partially",
        )
        self.path = path
        self.cause = cause


class SandboxNotAvailableError(GrimoireError):
    def __init__(self, missing: Sequence[str]) -> None:
        super().__init__(
            "sandbox_unavailable",
            f"sandbox runtime unavailable (missing: {', '.join(missing)})",
            recovery_hint="install the sandbox runtime or pass --dangerously-skip-permissions",
        )
        self.missing = list(missing)


class ProcessSignalError(GrimoireError):
    def __init__(self, pid: int, detail: str) -> None:
        super().__init__("process_signal_failed", f"failed to signal pid {pid}: {detail}")
        self.pid = pid


class ScoutTimeoutError(GrimoireError):
    def __init__(self, name: str, timeout_seconds: float) -> None:
        super().__init__(
            "scout_timeout", f"scout '{name}' did not finish within {timeout_seconds:g}s"
        )
        self.name = name


class InvalidTransitionError(GrimoireError):
    def __init__(self, kind: str, current: str, target: str) -> None:
        super().__init__(
            "invalid_transition", f"{kind} cannot move from {current} to {target}"
        )
        self.current = current
        self.target = target


class GitCommandError(GrimoireError):
    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("external_command_failed", message, recovery_hint=recovery_hint)


class StateDocumentError(GrimoireError):
    def __init__(self, path: str, cause: str) -> None:
        super().__init__(
            "state_invalid",
            f"state document {path} is unreadable: {cause}",
            recovery_hint="fix the JSON by hand or move the file aside",
        )
        self.path = path


class ClaimHeldError(GrimoireError):
    def __init__(self, name: str, holder: str, since: str | None) -> None:
        held = f" (since {since})" if since else ""
        super().__init__(
            "claim_held",
            f"{name} is claimed by {holder}{held}",
            recovery_hint="use --force to override",
        )
        self.name = name
        self.holder = holder


class ValidationFailedError(GrimoireError):
    """Invalid input, such as an unusable name or option value."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("validation_failed", message, recovery_hint=recovery_hint)
