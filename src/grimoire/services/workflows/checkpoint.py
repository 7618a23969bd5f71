"""Record progress markers on a worktree."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ... import config, git
from ...models import Checkpoint
from ..base import BaseService
from ..state import WorktreeStateService, current_author
from ..worktrees import WorktreeService, resolve_repo_root


@dataclass(frozen=True)
class CheckpointRequest:
    repo_cwd: Path
    name: str
    message: str
    author: str | None = None


@dataclass(frozen=True)
class CheckpointOutcome:
    checkpoint: Checkpoint
    committed: bool
    files: list[str] = field(default_factory=list)


class CreateCheckpoint(BaseService[CheckpointRequest, CheckpointOutcome]):
    """Commit staged changes (never staging anything) or snapshot ``HEAD``."""

    def __init__(
        self,
        worktrees: WorktreeService | None = None,
        state: WorktreeStateService | None = None,
    ) -> None:
        self.state = state or WorktreeStateService()
        self.worktrees = worktrees or WorktreeService(self.state)

    def _run(self, request: CheckpointRequest) -> CheckpointOutcome:
        repo_root = resolve_repo_root(request.repo_cwd)
        info = self.worktrees.get(repo_root, request.name)
        self.state.require_entry(repo_root, request.name)
        path = Path(info.path)

        staged = git.staged_files(path)
        if staged:
            git.git_output(["commit", "-m", request.message], path)
        checkpoint = Checkpoint(
            hash=git.rev_parse(path, "HEAD"),
            message=request.message,
            time=config.utc_now(),
            author=request.author or current_author(),
        )
        self.state.append_checkpoint(repo_root, request.name, checkpoint)
        return CheckpointOutcome(checkpoint, committed=bool(staged), files=staged)
