"""Implementation for the ``grim wt spawn`` and ``grim wt kill`` commands."""

from __future__ import annotations

import shlex
import sys
from pathlib import Path

from .. import log
from ..io import die, say
from ..models import SessionMode
from ..services.errors import NotFoundError
from ..services.sandbox import SandboxConfigService
from ..services.sessions import AgentSessionService, SpawnRequest, agent_command
from ..services.worktrees import WorktreeService, resolve_repo_root
from .common import cwd, failure_boundary


def _resolve_mode(args: object) -> SessionMode:
    if getattr(args, "interactive", False):
        return "interactive"
    if getattr(args, "tmux", False):
        return "tmux"
    return "headless"


def spawn_agent(args: object) -> None:
    """Start an agent in a worktree, creating the worktree if needed.

    Headless agents must run either under the sandbox (``--srt``) or with
    ``--dangerously-skip-permissions``.

    Example:
        $ grim wt spawn feature-login "fix the login bug" --srt -b
    """
    name = str(getattr(args, "name"))
    prompt = getattr(args, "prompt", None)
    use_srt = bool(getattr(args, "srt", False))
    skip_permissions = bool(getattr(args, "dangerously_skip_permissions", False))
    mode = _resolve_mode(args)
    if mode != "interactive" and not prompt:
        die("a prompt is required unless --interactive is given")
    if mode == "headless" and not (use_srt or skip_permissions):
        die(
            "headless agents need --srt or --dangerously-skip-permissions",
            hint="--srt runs the agent under the sandbox runtime",
        )

    worktrees = WorktreeService()
    sessions = AgentSessionService(worktrees.state)
    sandbox = SandboxConfigService()
    with failure_boundary():
        repo_root = resolve_repo_root(cwd())
        try:
            info = worktrees.get(repo_root, name)
        except NotFoundError:
            info = worktrees.create(
                repo_root, name, create_branch=bool(getattr(args, "create_branch", False))
            )
            log.success(f"Created worktree {info.name}")
        worktree_path = Path(info.path)
        if worktrees.state.get_entry(repo_root, info.name) is None:
            worktrees.adopt(repo_root, info.name)

        if mode == "interactive":
            parts = ["claude"]
            if skip_permissions:
                parts.append("--dangerously-skip-permissions")
            if prompt:
                parts.append(prompt)
            command = " ".join(shlex.quote(part) for part in parts)
        else:
            command = agent_command(prompt or "", skip_permissions=skip_permissions)

        cleanup: tuple[Path, ...] = ()
        policy_path: Path | None = None
        if use_srt:
            platform = sandbox.require_available()
            resolved = sandbox.resolve_config(worktree_path, repo_root)
            policy_path = sandbox.write_config_file(resolved.config)
            command = sandbox.wrap_command(
                command, policy_path, srt_command=platform.srt_command or ("srt",)
            )
            if mode != "interactive":
                cleanup = (policy_path,)

        request = SpawnRequest(command=command, mode=mode, prompt=prompt, cleanup_paths=cleanup)
        if mode == "interactive":
            try:
                session = sessions.run_interactive(worktree_path, request)
            finally:
                if policy_path is not None:
                    policy_path.unlink(missing_ok=True)
            if session is not None and session.status == "crashed":
                sys.exit(session.exit_code or 1)
            return
        session = sessions.spawn(worktree_path, request)

    log.success(f"Spawned {session.session_id} in {info.name} (pid {session.pid})")
    if session.tmux_window:
        say(f"tmux window: {session.tmux_window}")
    else:
        say(f"log: {session.log_file}")


def kill_agent(args: object) -> None:
    """Stop the running agent of a worktree (SIGTERM, or SIGKILL with --force)."""
    name = str(getattr(args, "name"))
    force = bool(getattr(args, "force", False))
    with failure_boundary():
        info = WorktreeService().get(cwd(), name)
        session = AgentSessionService().terminate(Path(info.path), force=force)
    log.success(f"Stopped {session.session_id} in {name} (pid {session.pid})")
