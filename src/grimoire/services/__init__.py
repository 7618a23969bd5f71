from .base import BaseService
from .errors import (
    AlreadyExistsError,
    AlreadyRunningError,
    BranchNotFoundError,
    ClaimHeldError,
    DirtyWorktreeError,
    GitCommandError,
    GrimoireError,
    InvalidTransitionError,
    MergeConflictError,
    MergeFailedError,
    NotFoundError,
    ProcessSignalError,
    ProtectedBranchError,
    SandboxConfigParseError,
    SandboxNotAvailableError,
    ScoutAlreadyRunningError,
    ScoutTimeoutError,
    SelfMergeError,
    SessionAlreadyRunningError,
    StateDocumentError,
    ValidationFailedError,
    WorktreeAlreadyExistsError,
)

__all__ = [
    "AlreadyExistsError",
    "AlreadyRunningError",
    "BaseService",
    "BranchNotFoundError",
    "ClaimHeldError",
    "DirtyWorktreeError",
    "GitCommandError",
    "GrimoireError",
    "InvalidTransitionError",
    "MergeConflictError",
    "MergeFailedError",
    "NotFoundError",
    "ProcessSignalError",
    "ProtectedBranchError",
    "SandboxConfigParseError",
    "SandboxNotAvailableError",
    "ScoutAlreadyRunningError",
    "ScoutTimeoutError",
    "SelfMergeError",
    "SessionAlreadyRunningError",
    "StateDocumentError",
    "ValidationFailedError",
    "WorktreeAlreadyExistsError",
]
