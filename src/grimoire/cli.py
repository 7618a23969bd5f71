"""Command-line entrypoint for Grimoire.

``grim wt ...`` manages worktrees and the agents running in them;
``grim ag ...`` manages background helper agents such as scouts.
Each command collects its options into a namespace and hands it to the
matching implementation under :mod:`grimoire.commands`.
"""

from __future__ import annotations

from enum import Enum
from types import SimpleNamespace
from typing import Optional

import typer

from . import __version__
from . import log as grimoire_log
from .commands import adopt as adopt_cmd
from .commands import checkpoint as checkpoint_cmd
from .commands import children as children_cmd
from .commands import collect as collect_cmd
from .commands import commit as commit_cmd
from .commands import coordination as coordination_cmd
from .commands import each as each_cmd
from .commands import merge as merge_cmd
from .commands import nav as nav_cmd
from .commands import new as new_cmd
from .commands import pr as pr_cmd
from .commands import ps as ps_cmd
from .commands import remove as remove_cmd
from .commands import scout as scout_cmd
from .commands import spawn as spawn_cmd
from .commands import wait as wait_cmd
from .io import die

PASSTHROUGH = {"allow_extra_args": True, "ignore_unknown_options": True}
SCOUT_ACTIONS = ("list", "show", "cancel", "clear", "watch")


class LogLevelChoice(str, Enum):
    trace = "trace"
    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"


class CollectStrategy(str, Enum):
    merge = "merge"
    squash = "squash"
    no_ff = "no-ff"


class EachFilter(str, Enum):
    all = "all"
    active = "active"
    stale = "stale"
    claimed = "claimed"
    unclaimed = "unclaimed"


class ScoutDepthChoice(str, Enum):
    shallow = "shallow"
    medium = "medium"
    deep = "deep"


app = typer.Typer(
    name="grim",
    help="Worktree-scoped agent orchestration.",
    no_args_is_help=True,
    add_completion=False,
)
wt_app = typer.Typer(help="Manage git worktrees and their agents.", no_args_is_help=True)
ag_app = typer.Typer(help="Manage background helper agents.", no_args_is_help=True)
app.add_typer(wt_app, name="wt")
app.add_typer(ag_app, name="ag")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"grim {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    log_level: Optional[LogLevelChoice] = typer.Option(
        None,
        "--log-level",
        help="Log verbosity (trace, debug, info, warning, error).",
        case_sensitive=False,
    ),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colorized output."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Worktree-scoped agent orchestration."""
    if log_level is not None:
        grimoire_log.set_level(log_level.value)
    if no_color:
        grimoire_log.set_no_color(True)


@wt_app.command("new")
def wt_new(
    branch: str = typer.Argument(..., help="Branch to check out in the new worktree."),
    create_branch: bool = typer.Option(False, "-b", "--create-branch", help="Create the branch."),
    issue: Optional[str] = typer.Option(None, "--issue", help="Issue this worktree works on."),
) -> None:
    """Create a worktree under .worktrees/."""
    new_cmd.new_worktree(SimpleNamespace(branch=branch, create_branch=create_branch, issue=issue))


@wt_app.command("spawn")
def wt_spawn(
    name: str = typer.Argument(..., help="Worktree name (created when missing)."),
    prompt: Optional[str] = typer.Argument(None, help="Task for the agent."),
    srt: bool = typer.Option(False, "--srt", help="Run the agent inside the sandbox runtime."),
    dangerously_skip_permissions: bool = typer.Option(
        False,
        "--dangerously-skip-permissions",
        help="Run headless without the sandbox or permission prompts.",
    ),
    interactive: bool = typer.Option(False, "-i", "--interactive", help="Run in the foreground."),
    tmux: bool = typer.Option(False, "--tmux", help="Run in a new tmux window."),
    create_branch: bool = typer.Option(False, "-b", "--create-branch", help="Create the branch."),
) -> None:
    """Start an agent in a worktree."""
    spawn_cmd.spawn_agent(
        SimpleNamespace(
            name=name,
            prompt=prompt,
            srt=srt,
            dangerously_skip_permissions=dangerously_skip_permissions,
            interactive=interactive,
            tmux=tmux,
            create_branch=create_branch,
        )
    )


@wt_app.command("kill")
def wt_kill(
    name: str = typer.Argument(..., help="Worktree name."),
    force: bool = typer.Option(False, "-f", "--force", help="Send SIGKILL instead of SIGTERM."),
) -> None:
    """Stop a worktree's running agent."""
    spawn_cmd.kill_agent(SimpleNamespace(name=name, force=force))


@wt_app.command("ps")
def wt_ps(json: bool = typer.Option(False, "--json", help="Emit JSON.")) -> None:
    """List agent sessions."""
    ps_cmd.list_sessions(SimpleNamespace(json=json))


@wt_app.command("wait")
def wt_wait(
    names: Optional[list[str]] = typer.Argument(None, help="Worktrees to wait for (default: children)."),
    any_target: bool = typer.Option(False, "--any", help="Return when the first target finishes."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Give up after N seconds."),
    interval: float = typer.Option(2.0, "--interval", help="Polling interval in seconds."),
    json: bool = typer.Option(False, "--json", help="Emit JSON."),
) -> None:
    """Wait for agents to finish."""
    wait_cmd.wait_for_worktrees(
        SimpleNamespace(names=names or [], any=any_target, timeout=timeout, interval=interval, json=json)
    )


@wt_app.command("collect")
def wt_collect(
    names: Optional[list[str]] = typer.Argument(None, help="Worktrees to collect (default: children)."),
    strategy: CollectStrategy = typer.Option(CollectStrategy.merge, "--strategy", help="Merge strategy."),
    delete: bool = typer.Option(False, "--delete", help="Remove worktrees after merging."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be merged."),
    json: bool = typer.Option(False, "--json", help="Emit JSON."),
) -> None:
    """Merge completed child worktrees into the current branch."""
    collect_cmd.collect_worktrees(
        SimpleNamespace(
            names=names or [],
            strategy=strategy.value,
            delete=delete,
            dry_run=dry_run,
            json=json,
        )
    )


@wt_app.command("commit")
def wt_commit(
    names: Optional[list[str]] = typer.Argument(None, help="Worktrees to commit (default: current)."),
    message: Optional[str] = typer.Option(None, "-m", "--message", help="Commit message."),
    dry_run: bool = typer.Option(False, "-n", "--dry-run", help="Show what would be committed."),
    json: bool = typer.Option(False, "--json", help="Emit JSON."),
) -> None:
    """Stage and commit all changes in worktrees before collecting."""
    commit_cmd.commit_worktrees(
        SimpleNamespace(names=names or [], message=message, dry_run=dry_run, json=json)
    )


@wt_app.command("children")
def wt_children(
    show_all: bool = typer.Option(False, "--all", help="Show every spawned worktree."),
    json: bool = typer.Option(False, "--json", help="Emit JSON."),
) -> None:
    """List worktrees spawned from the current worktree or session."""
    children_cmd.list_children(SimpleNamespace(all=show_all, json=json))


@wt_app.command("merge")
def wt_merge(
    name: str = typer.Argument(..., help="Worktree to merge."),
    squash: bool = typer.Option(False, "--squash", help="Squash into one commit."),
    no_ff: bool = typer.Option(False, "--no-ff", help="Always create a merge commit."),
    json: bool = typer.Option(False, "--json", help="Emit JSON."),
) -> None:
    """Merge a worktree's branch into the current branch."""
    merge_cmd.merge_worktree(SimpleNamespace(name=name, squash=squash, no_ff=no_ff, json=json))


@wt_app.command("pr")
def wt_pr(
    name: str = typer.Argument(..., help="Worktree name."),
    title: Optional[str] = typer.Option(None, "--title", help="Pull request title."),
    body: Optional[str] = typer.Option(None, "--body", help="Pull request body."),
    draft: bool = typer.Option(False, "--draft", help="Open as a draft."),
) -> None:
    """Push a worktree's branch and open a pull request."""
    pr_cmd.open_pull_request(SimpleNamespace(name=name, title=title, body=body, draft=draft))


@wt_app.command("rm")
def wt_rm(
    name: str = typer.Argument(..., help="Worktree name."),
    delete_branch: bool = typer.Option(False, "-d", "--delete-branch", help="Delete the branch too."),
    force: bool = typer.Option(False, "-f", "--force", help="Remove even with uncommitted changes."),
) -> None:
    """Remove a worktree."""
    remove_cmd.remove_worktree(SimpleNamespace(name=name, delete_branch=delete_branch, force=force))


@wt_app.command("path")
def wt_path(name: str = typer.Argument(..., help="Worktree name.")) -> None:
    """Print a worktree's path."""
    nav_cmd.worktree_path(SimpleNamespace(name=name))


@wt_app.command("exec", context_settings=PASSTHROUGH)
def wt_exec(
    name: str = typer.Argument(..., help="Worktree name."),
    command: list[str] = typer.Argument(..., help="Command to run."),
) -> None:
    """Run a command inside a worktree."""
    nav_cmd.exec_in_worktree(SimpleNamespace(name=name, command=command))


@wt_app.command("open")
def wt_open(name: str = typer.Argument(..., help="Worktree name.")) -> None:
    """Open a shell (or tmux window) in a worktree."""
    nav_cmd.open_worktree(SimpleNamespace(name=name))


@wt_app.command("clean")
def wt_clean(
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be removed."),
    yes: bool = typer.Option(False, "-y", "--yes", help="Do not ask for confirmation."),
) -> None:
    """Remove stale worktrees and prune orphaned state."""
    remove_cmd.clean_worktrees(SimpleNamespace(dry_run=dry_run, yes=yes))


@wt_app.command("adopt")
def wt_adopt(name: str = typer.Argument(..., help="Existing worktree name or path.")) -> None:
    """Start tracking an existing worktree."""
    adopt_cmd.adopt_worktree(SimpleNamespace(name=name))


@wt_app.command("each", context_settings=PASSTHROUGH)
def wt_each(
    command: list[str] = typer.Argument(..., help="Shell command to run."),
    parallel: int = typer.Option(1, "-p", "--parallel", min=1, help="Concurrent worktrees."),
    fail_fast: bool = typer.Option(False, "--fail-fast", help="Stop after the first failure."),
    worktree_filter: EachFilter = typer.Option(EachFilter.all, "--filter", help="Worktrees to include."),
) -> None:
    """Run a command in every worktree."""
    each_cmd.run_each(
        SimpleNamespace(
            command=command, parallel=parallel, fail_fast=fail_fast, filter=worktree_filter.value
        )
    )


@wt_app.command("log")
def wt_log(
    name: str = typer.Argument(..., help="Worktree name."),
    message: Optional[str] = typer.Argument(None, help="Message to append."),
    author: Optional[str] = typer.Option(None, "--author", help="Override the author."),
    limit: Optional[int] = typer.Option(None, "-n", "--limit", help="Show the last N entries."),
    json: bool = typer.Option(False, "--json", help="Emit JSON."),
) -> None:
    """Append to or show a worktree's log."""
    coordination_cmd.worktree_log(
        SimpleNamespace(name=name, message=message, author=author, limit=limit, json=json)
    )


@wt_app.command("checkpoint")
def wt_checkpoint(
    name: str = typer.Argument(..., help="Worktree name."),
    message: str = typer.Argument(..., help="Checkpoint message."),
    author: Optional[str] = typer.Option(None, "--author", help="Override the author."),
) -> None:
    """Commit staged changes (or snapshot HEAD) as a checkpoint."""
    checkpoint_cmd.create_checkpoint(SimpleNamespace(name=name, message=message, author=author))


@wt_app.command("checkpoints")
def wt_checkpoints(
    name: str = typer.Argument(..., help="Worktree name."),
    json: bool = typer.Option(False, "--json", help="Emit JSON."),
) -> None:
    """List a worktree's checkpoints."""
    checkpoint_cmd.list_checkpoints(SimpleNamespace(name=name, json=json))


@wt_app.command("claim")
def wt_claim(
    name: str = typer.Argument(..., help="Worktree name."),
    author: Optional[str] = typer.Option(None, "--author", help="Override the author."),
    force: bool = typer.Option(False, "-f", "--force", help="Take over another holder's claim."),
) -> None:
    """Mark a worktree as being worked on."""
    coordination_cmd.claim_worktree(SimpleNamespace(name=name, author=author, force=force))


@wt_app.command("release")
def wt_release(
    name: str = typer.Argument(..., help="Worktree name."),
    note: Optional[str] = typer.Option(None, "--note", help="Message to log."),
    next_step: Optional[str] = typer.Option(None, "--next", help="Who or what stage comes next."),
    reason: Optional[str] = typer.Option(None, "--reason", help="Why work was interrupted."),
    author: Optional[str] = typer.Option(None, "--author", help="Override the author."),
) -> None:
    """Release a claim."""
    coordination_cmd.release_worktree(
        SimpleNamespace(name=name, note=note, next=next_step, reason=reason, author=author)
    )


@wt_app.command("handoff")
def wt_handoff(
    name: str = typer.Argument(..., help="Worktree name."),
    to: str = typer.Option(..., "--to", help="Agent or person taking over."),
    stage: Optional[str] = typer.Option(None, "--stage", help="Stage to move to."),
    message: Optional[str] = typer.Option(None, "-m", "--message", help="Handoff note."),
    author: Optional[str] = typer.Option(None, "--author", help="Override the author."),
) -> None:
    """Hand a worktree to another agent."""
    coordination_cmd.handoff_worktree(
        SimpleNamespace(name=name, to=to, stage=stage, message=message, author=author)
    )


@wt_app.command("available")
def wt_available(
    stage: Optional[str] = typer.Option(None, "--stage", help="Only worktrees at this stage."),
    json: bool = typer.Option(False, "--json", help="Emit JSON."),
) -> None:
    """List unclaimed worktrees."""
    coordination_cmd.available_worktrees(SimpleNamespace(stage=stage, json=json))


@ag_app.command("scout")
def ag_scout(
    target: str = typer.Argument(..., help="Scout name, or list|show|cancel|clear|watch."),
    rest: Optional[list[str]] = typer.Argument(None, help="Question, or the scout name for show/cancel."),
    depth: ScoutDepthChoice = typer.Option(ScoutDepthChoice.medium, "--depth", help="Exploration depth."),
    focus: Optional[str] = typer.Option(None, "--focus", help="Area to concentrate on."),
    timeout: int = typer.Option(120, "--timeout", help="Seconds before the scout is stopped."),
    model: str = typer.Option("haiku", "--model", help="Model the scout runs with."),
    wait: bool = typer.Option(False, "--wait", help="Block until the scout finishes."),
    include_running: bool = typer.Option(False, "--all", help="With clear: also stop running scouts."),
    json: bool = typer.Option(False, "--json", help="Emit JSON."),
) -> None:
    """Start a read-only exploration, or manage existing scouts.

    Examples:
        grim ag scout auth "where is session refresh handled?"
        grim ag scout list
        grim ag scout show auth
    """
    words = list(rest or [])
    if target in ("show", "cancel"):
        if len(words) != 1:
            die(f"usage: grim ag scout {target} <name>")
        handler = scout_cmd.show_scout if target == "show" else scout_cmd.cancel_scout
        handler(SimpleNamespace(name=words[0], json=json))
        return
    if target in SCOUT_ACTIONS:
        if words:
            die(f"unexpected arguments for scout {target}: {' '.join(words)}")
        if target == "list":
            scout_cmd.list_scouts(SimpleNamespace(json=json))
        elif target == "clear":
            scout_cmd.clear_scouts(SimpleNamespace(all=include_running))
        else:
            scout_cmd.watch_scouts(SimpleNamespace())
        return
    if not words:
        die("a question is required", hint=f'grim ag scout {target} "<question>"')
    scout_cmd.start_scout(
        SimpleNamespace(
            name=target,
            question=" ".join(words),
            depth=depth.value,
            focus=focus,
            timeout=timeout,
            model=model,
            wait=wait,
        )
    )


if __name__ == "__main__":
    app()
