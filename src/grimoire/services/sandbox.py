"""Sandbox runtime (srt) policy composition and command wrapping.

Policies are derived per spawn and never persisted beyond the temporary file
handed to the runtime. Mandatory protections are always present; override
files can only add to them.
"""

from __future__ import annotations

import json
import os
import secrets
import shlex
import shutil
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from .. import config, exec as exec_util, paths
from ..models import FilesystemPolicy, NetworkPolicy, SandboxConfig, SandboxOverrides
from .errors import SandboxConfigParseError, SandboxNotAvailableError

MANDATORY_DENY_READ = ("~/.ssh", "~/.aws", "~/.gnupg")
MANDATORY_DENY_WRITE = (
    ".env",
    ".bashrc",
    ".zshrc",
    ".profile",
    ".gitconfig",
    "~/.ssh",
    "~/.aws",
)
DEFAULT_ALLOWED_DOMAINS = (
    "registry.npmjs.org",
    "*.npmjs.org",
    "github.com",
    "*.github.com",
    "api.github.com",
    "raw.githubusercontent.com",
    "api.anthropic.com",
    "unpkg.com",
    "cdn.jsdelivr.net",
)
DEFAULT_DENY_READ = ("~/.ssh", "~/.aws", "~/.gnupg", "~/.config/gh", "~/.netrc")
DEFAULT_DENY_WRITE = (
    ".env",
    ".env.*",
    ".bashrc",
    ".zshrc",
    ".profile",
    ".gitconfig",
    "~/.ssh",
    "~/.aws",
)
DEFAULT_ALLOW_WRITE_EXTRA = ("/tmp", "~/.claude.json", "~/.claude")
LINUX_REQUIREMENTS = ("bwrap", "socat")


@dataclass(frozen=True)
class ResolvedSandbox:
    config: SandboxConfig
    user_source: Path | None = None
    project_source: Path | None = None


@dataclass(frozen=True)
class PlatformInfo:
    platform: str
    srt_command: tuple[str, ...] | None
    missing: list[str] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return self.srt_command is not None and not self.missing


def expand_path(value: str) -> str:
    """Expand a leading ``~``; relative and absolute paths pass through.

    Example:
        >>> expand_path("/tmp")
        '/tmp'
        >>> expand_path("~/.ssh") == os.path.expanduser("~/.ssh")
        True
    """
    if value.startswith("~"):
        return os.path.expanduser(value)
    return value


def dedupe(values: Iterable[str]) -> list[str]:
    """Drop duplicates while keeping first-seen order.

    Example:
        >>> dedupe(["a", "b", "a"])
        ['a', 'b']
    """
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


def load_overrides(path: Path) -> SandboxOverrides | None:
    """Load an override document; malformed files fail closed."""
    try:
        payload = config.load_json(path)
    except (OSError, json.JSONDecodeError) as exc:
        raise SandboxConfigParseError(str(path), str(exc)) from exc
    if payload is None:
        return None
    try:
        return SandboxOverrides.model_validate(payload)
    except ValidationError as exc:
        raise SandboxConfigParseError(str(path), str(exc)) from exc


class SandboxConfigService:
    """Build sandbox policies and run commands under the sandbox runtime."""

    def __init__(self, user_config_path: Path | None = None) -> None:
        self.user_config_path = user_config_path or paths.user_sandbox_config_path()

    def resolve_config(
        self,
        worktree_path: Path,
        project_path: Path | None = None,
        *,
        allow_write: Iterable[str] | None = None,
    ) -> ResolvedSandbox:
        """Compose mandatory, default, and override rules for ``worktree_path``.

        ``allow_write`` replaces the default writable set when given; the
        worktree path itself is always writable.
        """
        user = load_overrides(self.user_config_path)
        project_file = (
            paths.project_sandbox_config_path(project_path) if project_path else None
        )
        project = load_overrides(project_file) if project_file else None
        layers = [layer for layer in (user, project) if layer is not None]

        extra_write = (
            list(allow_write) if allow_write is not None else list(DEFAULT_ALLOW_WRITE_EXTRA)
        )
        resolved = SandboxConfig(
            network=NetworkPolicy(
                allowed_domains=dedupe(
                    [
                        *DEFAULT_ALLOWED_DOMAINS,
                        *(d for layer in layers for d in layer.network.allowed_domains),
                    ]
                ),
                denied_domains=dedupe(
                    d for layer in layers for d in layer.network.denied_domains
                ),
            ),
            filesystem=FilesystemPolicy(
                allow_write=dedupe(
                    expand_path(p)
                    for p in [
                        str(worktree_path),
                        *extra_write,
                        *(
                            p
                            for layer in layers
                            for p in layer.filesystem.additional_write_paths
                        ),
                    ]
                ),
                deny_read=dedupe(
                    expand_path(p)
                    for p in [
                        *MANDATORY_DENY_READ,
                        *DEFAULT_DENY_READ,
                        *(p for layer in layers for p in layer.filesystem.deny_read),
                    ]
                ),
                deny_write=dedupe(
                    expand_path(p)
                    for p in [
                        *MANDATORY_DENY_WRITE,
                        *DEFAULT_DENY_WRITE,
                        *(p for layer in layers for p in layer.filesystem.deny_write),
                    ]
                ),
            ),
        )
        return ResolvedSandbox(
            config=resolved,
            user_source=self.user_config_path if user is not None else None,
            project_source=project_file if project is not None else None,
        )

    def check_platform(self) -> PlatformInfo:
        platform = sys.platform
        srt_command: tuple[str, ...] | None = None
        if shutil.which("srt"):
            srt_command = ("srt",)
        elif shutil.which("npx"):
            version_check = exec_util.try_run_command(["npx", "--no-install", "srt", "--version"])
            if version_check is not None and version_check.returncode == 0:
                srt_command = ("npx", "srt")
        missing: list[str] = []
        if platform.startswith("linux"):
            missing = [tool for tool in LINUX_REQUIREMENTS if not shutil.which(tool)]
        if srt_command is None:
            missing.append("srt")
        return PlatformInfo(platform=platform, srt_command=srt_command, missing=missing)

    def is_available(self) -> bool:
        return self.check_platform().available

    def require_available(self) -> PlatformInfo:
        info = self.check_platform()
        if not info.available:
            raise SandboxNotAvailableError(info.missing)
        return info

    def write_config_file(self, sandbox: SandboxConfig) -> Path:
        path = Path(tempfile.gettempdir()) / f"srt-config-{secrets.token_hex(8)}.json"
        config.write_json(path, sandbox)
        return path

    def wrap_command(
        self,
        command: str,
        config_path: Path,
        *,
        srt_command: tuple[str, ...] = ("srt",),
    ) -> str:
        """Return a shell command line running ``command`` inside the sandbox.

        Example:
            >>> SandboxConfigService(Path("/none")).wrap_command("npm test", Path("/tmp/c.json"))
            "srt --settings /tmp/c.json -c 'npm test'"
        """
        prefix = " ".join(shlex.quote(part) for part in srt_command)
        return f"{prefix} --settings {shlex.quote(str(config_path))} -c {shlex.quote(command)}"
