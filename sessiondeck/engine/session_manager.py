"""Session manager: creates, drives, and kills assistant sessions.

Central registry for all sessions. Enforces the concurrent session
limit, launches one CLI process per turn, and pumps its output
through a StreamDecoder into the owning Session.

Unlike a bare fire-and-forget launcher, send() refuses to start a
second process while one is running for the same session: two
processes resuming the same continuation id would race.
"""
from __future__ import annotations

import asyncio
import codecs
import itertools
import logging
import os
from typing import TYPE_CHECKING

from .config import DeckConfig
from .errors import (
    CapacityExceededError,
    InvalidPermissionModeError,
    ProcessLaunchError,
    SessionBusyError,
    SessionNotFoundError,
    UnsupportedOperationError,
)
from .events import SessionEvents, SessionKilled, SessionModeChanged, SessionSpawned
from .models import PermissionMode, SessionStatus, SessionView, parse_permission_mode
from .process import (
    SubprocessLauncher,
    build_invocation_args,
    build_process_env,
    resolve_claude_command,
)
from .session import Session
from .stream_decoder import StreamDecoder

if TYPE_CHECKING:
    from .history import HistoryStore
    from .process import ProcessHandle, ProcessLauncher

logger = logging.getLogger(__name__)


class SessionManager:
    """Owns every Session and its child process.

    Observers subscribe to ``manager.events``; nothing else mutates
    session state.
    """

    def __init__(
        self,
        config: DeckConfig | None = None,
        launcher: ProcessLauncher | None = None,
        history: HistoryStore | None = None,
    ) -> None:
        self._config = config or DeckConfig()
        self._launcher: ProcessLauncher = launcher or SubprocessLauncher()
        self._history = history
        self._sessions: dict[str, Session] = {}
        self._ids = itertools.count(1)
        self._command = resolve_claude_command(self._config.claude_command)
        self.events = SessionEvents()

    @property
    def command(self) -> str:
        return self._command

    @property
    def count(self) -> int:
        return len(self._sessions)

    def _get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def spawn(
        self,
        cwd: str,
        model: str | None = None,
        permission_mode: PermissionMode | str | None = None,
        resume_id: str | None = None,
    ) -> SessionView:
        """Register a new idle session. No process starts until send().

        Raises:
            CapacityExceededError: If max_sessions are already open.
            InvalidPermissionModeError: If permission_mode is unknown.
        """
        if len(self._sessions) >= self._config.max_sessions:
            raise CapacityExceededError(self._config.max_sessions)

        mode = PermissionMode.DEFAULT
        if permission_mode is not None:
            try:
                mode = parse_permission_mode(permission_mode)
            except ValueError:
                raise InvalidPermissionModeError(str(permission_mode)) from None

        session_id = f"session-{next(self._ids)}"
        session = Session(
            session_id,
            os.path.abspath(os.path.expanduser(cwd)),
            self.events,
            model=model or self._config.default_model,
            permission_mode=mode,
            continuation_id=resume_id,
            buffer_capacity=self._config.buffer_capacity,
        )
        self._sessions[session_id] = session
        logger.info(
            "Session spawned: %s (cwd=%s, model=%s, mode=%s, resume=%s)",
            session_id, session.cwd, session.model, mode.value,
            (resume_id or "none")[:8],
        )

        view = session.view()
        self.events.spawned.publish(SessionSpawned(session=view))
        return view

    async def send(self, session_id: str, text: str) -> None:
        """Start one CLI turn for the session with *text* as the task.

        Returns once the process is running; output is consumed by a
        background pump task.

        Raises:
            SessionNotFoundError: Unknown session.
            SessionBusyError: A process is already running.
            ProcessLaunchError: The CLI could not be started.
        """
        session = self._get(session_id)
        if session.busy:
            raise SessionBusyError(session_id)

        args = build_invocation_args(
            text,
            continuation_id=session.continuation_id,
            model=session.model,
            permission_mode=session.permission_mode,
        )
        session.launching = True
        session.set_status(SessionStatus.THINKING)
        try:
            handle = await self._launcher.launch(
                self._command, args, session.cwd, build_process_env(),
            )
        except OSError as exc:
            logger.error(
                "Session %s: failed to launch %s: %s",
                session_id, self._command, exc,
            )
            if self._sessions.get(session_id) is session:
                session.set_status(SessionStatus.ERROR)
            raise ProcessLaunchError(session_id, self._command, str(exc)) from exc
        finally:
            session.launching = False

        if self._sessions.get(session_id) is not session:
            # Killed while we were launching.
            handle.terminate()
            raise SessionNotFoundError(session_id)

        session.process = handle
        session.pump_task = asyncio.create_task(
            self._pump(session, handle),
            name=f"session-pump-{session_id}",
        )
        logger.info(
            "Session %s: started turn (pid=%s, resume=%s)",
            session_id, handle.pid, (session.continuation_id or "none")[:8],
        )

        if self._history is not None:
            await self._append_history(session_id, {"role": "user", "content": text})

    async def _pump(self, session: Session, handle: ProcessHandle) -> None:
        """Consume both streams, then force idle on exit."""
        try:
            await asyncio.gather(
                self._read_stdout(session, handle),
                self._read_stderr(session, handle),
            )
            exit_code = await handle.wait()
            if exit_code != 0:
                logger.warning(
                    "Session %s: process exited with code %s", session.id, exit_code,
                )
            else:
                logger.info("Session %s: process exited", session.id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Session %s: output pump failed", session.id)
        finally:
            if session.process is handle:
                session.process = None
                session.pump_task = None
            if self._sessions.get(session.id) is session:
                session.set_status(SessionStatus.IDLE)

    async def _read_stdout(self, session: Session, handle: ProcessHandle) -> None:
        decoder = StreamDecoder()
        async for chunk in handle.stdout_chunks():
            text = decoder.decode_text(chunk)
            session.record_output(text, "stdout")
            for record in decoder.feed_text(text):
                await self._dispatch(session, record)
        for record in decoder.flush():
            await self._dispatch(session, record)

    async def _dispatch(self, session: Session, record: dict) -> None:
        message = session.handle_record(record)
        if message is not None and self._history is not None:
            await self._append_history(session.id, message.to_dict())

    async def _read_stderr(self, session: Session, handle: ProcessHandle) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        async for chunk in handle.stderr_chunks():
            text = decoder.decode(chunk)
            if text:
                logger.warning("Session %s stderr: %s", session.id, text.rstrip())
                session.record_output(text, "stderr")

    async def _append_history(self, session_id: str, message: dict) -> None:
        try:
            await self._history.append(session_id, message)
        except Exception:
            logger.exception("Session %s: history append failed", session_id)

    def send_key(self, session_id: str, key: str) -> None:
        self._get(session_id)
        raise UnsupportedOperationError("send_key")

    def resize(self, session_id: str, cols: int, rows: int) -> None:
        self._get(session_id)
        raise UnsupportedOperationError("resize")

    async def kill(self, session_id: str) -> None:
        """Terminate and remove a session. Unknown ids are a no-op."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return

        handle = session.process
        pump = session.pump_task
        session.process = None
        session.pump_task = None
        if handle is not None:
            handle.terminate()
            try:
                await asyncio.wait_for(
                    handle.wait(), timeout=self._config.kill_grace_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Session %s: process ignored SIGTERM, killing", session_id,
                )
                handle.kill()
            except Exception:
                logger.debug("Session %s: wait after terminate failed", session_id, exc_info=True)
        if pump is not None and not pump.done():
            pump.cancel()
            await asyncio.gather(pump, return_exceptions=True)

        session.buffer.clear()
        logger.info("Session killed: %s", session_id)
        self.events.killed.publish(SessionKilled(session_id=session_id))

    def set_permission_mode(
        self, session_id: str, mode: PermissionMode | str,
    ) -> None:
        session = self._get(session_id)
        try:
            parsed = parse_permission_mode(mode)
        except ValueError:
            raise InvalidPermissionModeError(str(mode)) from None
        session.permission_mode = parsed
        logger.info("Session %s: permission mode -> %s", session_id, parsed.value)
        self.events.mode.publish(SessionModeChanged(session_id=session_id, mode=parsed))

    def mark_status(self, session_id: str, status: SessionStatus) -> bool:
        """Drive a session's status from outside the stream parser.

        Hook for classifiers that recognise ``waiting_input`` or
        ``error`` conditions.
        """
        return self._get(session_id).set_status(status)

    def get(self, session_id: str) -> SessionView | None:
        session = self._sessions.get(session_id)
        return session.view() if session else None

    def get_status(self, session_id: str) -> SessionStatus | None:
        session = self._sessions.get(session_id)
        return session.status if session else None

    def list(self) -> list[SessionView]:
        return [s.view() for s in self._sessions.values()]

    def get_buffer(self, session_id: str, lines: int = 100) -> list[str]:
        session = self._sessions.get(session_id)
        if session is None:
            return []
        return session.tail(lines)

    async def shutdown(self) -> None:
        logger.info("Shutting down %d sessions...", len(self._sessions))
        for session_id in list(self._sessions):
            await self.kill(session_id)
