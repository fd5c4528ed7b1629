"""Shared fakes: a synthetic process launcher and a scripted model."""
from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from sessiondeck.engine.config import DeckConfig
from sessiondeck.engine.model_client import ModelResponse
from sessiondeck.engine.session_manager import SessionManager


class FakeProcess:
    """ProcessHandle whose output is pushed by the test."""

    def __init__(self, pid: int) -> None:
        self.pid = pid
        self._stdout: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._stderr: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._exit: asyncio.Future[int] = asyncio.get_running_loop().create_future()
        self.terminated = False
        self.killed = False

    def push_stdout(self, data: bytes | str) -> None:
        self._stdout.put_nowait(data.encode("utf-8") if isinstance(data, str) else data)

    def push_stderr(self, data: bytes | str) -> None:
        self._stderr.put_nowait(data.encode("utf-8") if isinstance(data, str) else data)

    def push_record(self, record: dict[str, Any]) -> None:
        self.push_stdout(json.dumps(record) + "\n")

    def finish(self, code: int = 0) -> None:
        if self._exit.done():
            return
        self._stdout.put_nowait(None)
        self._stderr.put_nowait(None)
        self._exit.set_result(code)

    @property
    def finished(self) -> bool:
        return self._exit.done()

    async def _chunks(self, queue: asyncio.Queue[bytes | None]) -> AsyncIterator[bytes]:
        while True:
            item = await queue.get()
            if item is None:
                return
            yield item

    def stdout_chunks(self) -> AsyncIterator[bytes]:
        return self._chunks(self._stdout)

    def stderr_chunks(self) -> AsyncIterator[bytes]:
        return self._chunks(self._stderr)

    async def wait(self) -> int:
        return await asyncio.shield(self._exit)

    def terminate(self) -> None:
        self.terminated = True
        self.finish(-15)

    def kill(self) -> None:
        self.killed = True
        self.finish(-9)


class FakeLauncher:
    """Records launches and hands out FakeProcess instances."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.processes: list[FakeProcess] = []
        self.fail_with: OSError | None = None
        # When set, launch() blocks until the event is set.
        self.hold: asyncio.Event | None = None

    async def launch(
        self,
        executable: str,
        argv: list[str],
        cwd: str,
        env: dict[str, str] | None,
    ) -> FakeProcess:
        self.calls.append({
            "executable": executable, "argv": list(argv), "cwd": cwd, "env": env,
        })
        if self.hold is not None:
            await self.hold.wait()
        if self.fail_with is not None:
            raise self.fail_with
        proc = FakeProcess(pid=1000 + len(self.processes))
        self.processes.append(proc)
        return proc

    @property
    def last(self) -> FakeProcess:
        return self.processes[-1]


class ScriptedModel:
    """ModelClient replaying a fixed list of responses.

    Items may be a ModelResponse, an exception to raise, or an async
    callable producing a ModelResponse. Once the script runs out a
    plain end_turn text reply is returned.
    """

    def __init__(self, script: list[Any] | None = None) -> None:
        self.script = list(script or [])
        self.calls: list[dict[str, Any]] = []

    async def create(
        self,
        *,
        model: str,
        system: str,
        tools: list[dict[str, Any]],
        messages: list[dict[str, Any]],
    ) -> ModelResponse:
        self.calls.append({
            "model": model, "system": system, "tools": tools, "messages": messages,
        })
        if not self.script:
            return text_reply("done")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return await item()
        return item


def text_reply(text: str) -> ModelResponse:
    return ModelResponse(
        content=[{"type": "text", "text": text}], stop_reason="end_turn",
    )


def tool_reply(*calls: tuple[str, dict[str, Any]], text: str = "") -> ModelResponse:
    content: list[dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})
    for i, (name, tool_input) in enumerate(calls):
        content.append({
            "type": "tool_use", "id": f"toolu_{name}_{i}", "name": name, "input": tool_input,
        })
    return ModelResponse(content=content, stop_reason="tool_use")


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def fakes():
    """Namespace of helper classes and functions for tests."""
    class _Fakes:
        Launcher = FakeLauncher
        Model = ScriptedModel
        text_reply = staticmethod(text_reply)
        tool_reply = staticmethod(tool_reply)
        wait_until = staticmethod(wait_until)
    return _Fakes


@pytest.fixture
def config(tmp_path) -> DeckConfig:
    return DeckConfig(
        claude_command="claude-test",
        project_root=str(tmp_path),
        kill_grace_seconds=0.5,
    )


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def manager(config, launcher) -> SessionManager:
    return SessionManager(config=config, launcher=launcher)
