"""Process adapter: launches the assistant CLI for one session turn.

Each send() starts a fresh ``claude --print`` process whose stdout
and stderr are exposed as two independent byte-chunk streams. The
launcher is injectable so tests can substitute synthetic processes.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Protocol

from .models import PermissionMode

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


class ProcessHandle(Protocol):
    """A running child process."""

    pid: int | None

    def stdout_chunks(self) -> AsyncIterator[bytes]: ...

    def stderr_chunks(self) -> AsyncIterator[bytes]: ...

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


class ProcessLauncher(Protocol):
    async def launch(
        self,
        executable: str,
        argv: list[str],
        cwd: str,
        env: dict[str, str] | None,
    ) -> ProcessHandle: ...


async def _iter_chunks(stream: asyncio.StreamReader | None) -> AsyncIterator[bytes]:
    if stream is None:
        return
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


class SubprocessHandle:
    """ProcessHandle over asyncio.subprocess.Process."""

    def __init__(self, proc: asyncio.subprocess.Process) -> None:
        self._proc = proc
        self.pid: int | None = proc.pid

    def stdout_chunks(self) -> AsyncIterator[bytes]:
        return _iter_chunks(self._proc.stdout)

    def stderr_chunks(self) -> AsyncIterator[bytes]:
        return _iter_chunks(self._proc.stderr)

    async def wait(self) -> int:
        return await self._proc.wait()

    def terminate(self) -> None:
        if self._proc.returncode is not None:
            return
        try:
            # Started in its own session: signal the whole group so
            # tool subprocesses spawned by the CLI go down too.
            if hasattr(os, "killpg"):
                os.killpg(self._proc.pid, signal.SIGTERM)
            else:
                self._proc.terminate()
        except ProcessLookupError:
            pass

    def kill(self) -> None:
        if self._proc.returncode is not None:
            return
        try:
            if hasattr(os, "killpg"):
                os.killpg(self._proc.pid, signal.SIGKILL)
            else:
                self._proc.kill()
        except ProcessLookupError:
            pass


class SubprocessLauncher:
    """Default launcher: array-based exec, no shell."""

    async def launch(
        self,
        executable: str,
        argv: list[str],
        cwd: str,
        env: dict[str, str] | None,
    ) -> SubprocessHandle:
        proc = await asyncio.create_subprocess_exec(
            executable,
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
            start_new_session=True,
        )
        logger.debug("Launched %s (pid=%s) in %s", executable, proc.pid, cwd)
        return SubprocessHandle(proc)


def build_invocation_args(
    prompt: str,
    *,
    continuation_id: str | None = None,
    model: str | None = None,
    permission_mode: PermissionMode = PermissionMode.DEFAULT,
) -> list[str]:
    """Build the CLI argument list for one turn.

    Order: output format flags, resume, model, permission flag, and
    the prompt as the final positional argument.
    """
    args = ["--print", "--output-format", "stream-json", "--verbose"]
    if continuation_id:
        args.extend(["--resume", continuation_id])
    if model:
        args.extend(["--model", model])
    if permission_mode == PermissionMode.PLAN:
        args.extend(["--permission-mode", "plan"])
    elif permission_mode == PermissionMode.BYPASS:
        args.append("--dangerously-skip-permissions")
    args.append(prompt)
    return args


def default_local_install() -> Path:
    return Path.home() / ".claude" / "local" / "claude"


def resolve_claude_command(command: str = "") -> str:
    """Resolve the assistant binary.

    Prefers the configured command, then the local install under
    ~/.claude/local, then ``claude`` on PATH. An unresolvable
    configured value is kept so launch errors name it.
    """
    if command:
        expanded = os.path.expanduser(command)
        if shutil.which(expanded) or os.path.isfile(expanded):
            return expanded
        logger.debug("Configured command %s not found; keeping as-is", command)
        return expanded
    local = default_local_install()
    if local.is_file():
        return str(local)
    return shutil.which("claude") or "claude"


def build_process_env() -> dict[str, str]:
    env = os.environ.copy()
    env.setdefault("TERM", "xterm-256color")
    return env
