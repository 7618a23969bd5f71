from .checkpoint import CheckpointOutcome, CheckpointRequest, CreateCheckpoint
from .collect import CollectOutcome, CollectRequest, CollectResult, CollectWorktrees
from .commit import CommitOutcome, CommitRequest, CommitResult, CommitWorktrees
from .each import EachOutcome, EachRequest, EachResult, RunEach
from .merge import MergeOutcome, MergeRequest, MergeWorktree
from .wait import WaitForWorktrees, WaitOutcome, WaitRequest, WaitResult

__all__ = [
    "CheckpointOutcome",
    "CheckpointRequest",
    "CollectOutcome",
    "CollectRequest",
    "CollectResult",
    "CollectWorktrees",
    "CommitOutcome",
    "CommitRequest",
    "CommitResult",
    "CommitWorktrees",
    "CreateCheckpoint",
    "EachOutcome",
    "EachRequest",
    "EachResult",
    "MergeOutcome",
    "MergeRequest",
    "MergeWorktree",
    "RunEach",
    "WaitForWorktrees",
    "WaitOutcome",
    "WaitRequest",
    "WaitResult",
]
