"""Overseer agent: a tool-using model loop that drives sessions.

One chat() runs at most ``max_turns`` model calls. Each call sees
the full conversation history; requested tools are run in order
through the ToolExecutor and their results are fed back as a single
user turn. The ``sleep`` tool suspends the loop on a OneShotGate
until the WakeRegistry resolves it.

Abort is cooperative: the turn's CancellationToken is checked before
the model call, after it, and before every tool. Skipped tool calls
still get an (error) result so the history stays replayable.
"""
from __future__ import annotations

import asyncio
import copy
import dataclasses
import json
import logging
from typing import TYPE_CHECKING, Any

from .cancellation import CancellationToken
from .config import DeckConfig
from .errors import (
    ModelCallError,
    OverseerBusyError,
    ToolValidationError,
    TurnCancelledError,
)
from .events import (
    OverseerAborted,
    OverseerAwake,
    OverseerCleared,
    OverseerError,
    OverseerEvents,
    OverseerMessageEvent,
    OverseerModelChanged,
    OverseerSleeping,
    OverseerStatusChanged,
)
from .models import (
    MessageRole,
    OverseerMessage,
    OverseerStatus,
    ToolCallRecord,
    ToolCallStatus,
    WakeCondition,
    WakeConditionType,
    WakeReason,
)
from .tools import ToolExecutor
from .wake import OneShotGate, WakeRegistry

if TYPE_CHECKING:
    from .history import HistoryStore
    from .model_client import ModelClient
    from .session_manager import SessionManager

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an overseer agent managing multiple coding assistant sessions running side by side.

You have access to these tools to monitor and control the sessions:

1. list_sessions - Get status of all active sessions
2. get_session_buffer - Read recent output from a specific session
3. send_to_session - Send a message or task to a session
4. spawn_session - Create a new session in a project directory
5. kill_session - Terminate a session
6. set_permission_mode - Change a session's permission mode (default, acceptEdits, bypassPermissions, plan)
7. search_history - Search past chat sessions
8. sleep - Pause your execution and wait for conditions to be met

Your responsibilities:
1. Monitor ongoing work across all sessions
2. Coordinate tasks when the user asks (e.g., "have session 1 build while session 2 runs tests")
3. Summarize progress across sessions
4. Alert if something seems stuck or errored
5. Execute multi-session workflows autonomously

A session works on one message at a time; sending to a busy session fails.
When you need to wait for a session to finish a task, use the sleep tool with appropriate wake conditions.
You can wake on: timeout, a session completing, a session erroring, or a session needing input.

Be concise in your responses. Focus on status updates and actions."""

_SLEEP_SESSION_KEYS: list[tuple[str, WakeConditionType]] = [
    ("wake_on_complete", WakeConditionType.SESSION_COMPLETE),
    ("wake_on_error", WakeConditionType.SESSION_ERROR),
    ("wake_on_input_needed", WakeConditionType.SESSION_INPUT_NEEDED),
]


def _tool_result_block(tool_use_id: str, result: Any, is_error: bool) -> dict[str, Any]:
    block: dict[str, Any] = {
        "type": "tool_result",
        "tool_use_id": tool_use_id,
        "content": result if isinstance(result, str) else json.dumps(result, default=str),
    }
    if is_error:
        block["is_error"] = True
    return block


def _is_error_result(result: Any) -> bool:
    return isinstance(result, dict) and "error" in result


class Overseer:
    """Agentic control loop over a SessionManager."""

    def __init__(
        self,
        manager: SessionManager,
        model_client: ModelClient,
        config: DeckConfig | None = None,
        history: HistoryStore | None = None,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self._manager = manager
        self._model_client = model_client
        self._config = config or DeckConfig()
        self._model = self._config.overseer_model
        self._system_prompt = system_prompt
        self.events = OverseerEvents()
        self._registry = WakeRegistry(manager.events, on_wake=self._handle_wake)
        self._executor = ToolExecutor(
            manager, self._config, history, sleep_handler=self._start_sleep,
        )
        self._history: list[dict[str, Any]] = []
        self._status = OverseerStatus.IDLE
        self._token: CancellationToken | None = None
        self._pending_gate: OneShotGate | None = None
        self._loop_lock = asyncio.Lock()
        self._running = False
        # chat() calls waiting on _loop_lock
        self._queued = 0

    # ── Read-only state ──

    @property
    def status(self) -> OverseerStatus:
        return self._status

    @property
    def model(self) -> str:
        return self._model

    @property
    def is_sleeping(self) -> bool:
        return self._registry.pending

    @property
    def wake_conditions(self) -> list[WakeCondition]:
        return self._registry.conditions

    @property
    def history(self) -> list[dict[str, Any]]:
        """Copy of the model conversation history."""
        return copy.deepcopy(self._history)

    @property
    def running(self) -> bool:
        return self._running

    # ── Control surface ──

    async def chat(self, text: str) -> None:
        """Append a user message and run the agent loop to completion.

        Raises:
            OverseerBusyError: A loop is thinking or acting.
            ModelCallError: The model call failed; status is idle.
        """
        busy = self._running or self._queued > 0
        if self._registry.pending:
            # The suspended turn is discarded, not resumed.
            if self._token is not None:
                self._token.cancel()
            self._registry.resolve(WakeReason.MANUAL)
        elif busy and not (self._token and self._token.cancelled):
            raise OverseerBusyError("chat", self._status.value)

        # Installed before waiting on the lock so abort() can reach it.
        token = CancellationToken()
        self._token = token
        self._queued += 1
        try:
            await self._loop_lock.acquire()
        finally:
            self._queued -= 1

        self._running = True
        try:
            token.raise_if_cancelled()
            self._append_user_text(text)
            self._emit_message(MessageRole.USER, text)
            self._set_status(OverseerStatus.THINKING)
            await self._run_loop(token)
        except TurnCancelledError:
            logger.info("Overseer turn cancelled")
        except asyncio.CancelledError:
            # Cancelled from outside: release any sleep listeners.
            token.cancel()
            self._pending_gate = None
            self._registry.resolve(WakeReason.ABORTED)
            self._set_status(OverseerStatus.IDLE)
            raise
        except Exception as exc:
            if not isinstance(exc, ModelCallError):
                logger.exception("Overseer loop failed")
            self._set_status(OverseerStatus.IDLE)
            self.events.error.publish(OverseerError(error=str(exc)))
            raise
        finally:
            self._running = False
            self._loop_lock.release()

    def wake(self) -> None:
        """Resume a sleeping loop. No-op when not sleeping."""
        if not self._registry.pending:
            return
        self._registry.resolve(WakeReason.MANUAL)

    def abort(self) -> None:
        """Cancel the in-flight turn. No-op when idle."""
        if not (self._running or self._queued) and self._status == OverseerStatus.IDLE:
            return
        if self._token is not None and self._token.cancelled:
            return
        if self._token is not None:
            self._token.cancel()
        self._registry.resolve(WakeReason.ABORTED)
        self._set_status(OverseerStatus.IDLE)
        logger.info("Overseer aborted")
        self.events.aborted.publish(OverseerAborted())

    def clear_history(self) -> None:
        if self._running or self._status != OverseerStatus.IDLE:
            raise OverseerBusyError("clear history", self._status.value)
        self._history.clear()
        self.events.cleared.publish(OverseerCleared())

    def set_model(self, model: str) -> None:
        self._model = model
        logger.info("Overseer model -> %s", model)
        self.events.model.publish(OverseerModelChanged(model=model))

    # ── Agent loop ──

    async def _run_loop(self, token: CancellationToken) -> None:
        max_turns = self._config.max_turns
        for turn in range(max_turns):
            token.raise_if_cancelled()
            self._set_status(OverseerStatus.THINKING)
            logger.debug("Overseer turn %d/%d", turn + 1, max_turns)
            response = await token.guard(self._model_client.create(
                model=self._model,
                system=self._system_prompt,
                tools=self._executor.definitions,
                messages=self.history,
            ))
            token.raise_if_cancelled()

            if response.content:
                self._history.append({"role": "assistant", "content": response.content})
            if response.text:
                self._emit_message(MessageRole.ASSISTANT, response.text)

            tool_uses = response.tool_uses
            if not tool_uses or response.stop_reason == "end_turn":
                self._set_status(OverseerStatus.IDLE)
                return

            self._set_status(OverseerStatus.ACTING)
            results = await self._run_tools(tool_uses, token)
            self._history.append({"role": "user", "content": results})
            token.raise_if_cancelled()

        logger.warning("Overseer reached maximum turns (%d)", max_turns)
        self._emit_message(
            MessageRole.ASSISTANT,
            f"Reached maximum turns ({max_turns}). Stopping.",
        )
        self._set_status(OverseerStatus.IDLE)

    async def _run_tools(
        self,
        tool_uses: list[dict[str, Any]],
        token: CancellationToken,
    ) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        for block in tool_uses:
            tool_use_id = str(block.get("id", ""))
            name = str(block.get("name", ""))
            tool_input = block.get("input") or {}

            if token.cancelled:
                results.append(_tool_result_block(tool_use_id, {"error": "aborted"}, True))
                continue

            record = ToolCallRecord(
                name=name,
                input=dict(tool_input) if isinstance(tool_input, dict) else {},
                tool_use_id=tool_use_id,
            )
            self._emit_message(MessageRole.TOOL, f"Running {name}", record)

            result = await self._executor.execute(name, tool_input, token)
            is_error = _is_error_result(result)
            record.status = ToolCallStatus.ERROR if is_error else ToolCallStatus.COMPLETED
            record.result = result
            summary = f"{name} failed: {result['error']}" if is_error else f"{name} completed"
            self._emit_message(MessageRole.TOOL, summary, record)

            gate, self._pending_gate = self._pending_gate, None
            if name == "sleep" and gate is not None:
                reason = await gate.wait()
                logger.debug("Overseer sleep ended: %s", reason.value)
                if not token.cancelled:
                    self._set_status(OverseerStatus.ACTING)

            results.append(_tool_result_block(tool_use_id, result, is_error))
        return results

    # ── Sleep / wake ──

    def _start_sleep(self, tool_input: dict[str, Any]) -> dict[str, Any]:
        conditions: list[WakeCondition] = []
        timeout_ms = tool_input.get("timeout_ms")
        if timeout_ms is not None:
            conditions.append(WakeCondition(
                type=WakeConditionType.TIMEOUT, timeout_ms=int(timeout_ms),
            ))
        for key, ctype in _SLEEP_SESSION_KEYS:
            session_id = tool_input.get(key)
            if session_id:
                conditions.append(WakeCondition(type=ctype, session_id=session_id))

        if not conditions:
            raise ToolValidationError(
                "sleep", "requires timeout_ms or at least one wake_on_* session ID",
            )
        if self._registry.pending:
            raise ToolValidationError("sleep", "already sleeping")

        self._pending_gate = self._registry.install(conditions)
        self._set_status(OverseerStatus.SLEEPING)
        self.events.sleeping.publish(OverseerSleeping(conditions=list(conditions)))
        return {
            "status": "sleeping",
            "conditions": [c.to_dict() for c in conditions],
        }

    def _handle_wake(self, reason: WakeReason) -> None:
        if reason == WakeReason.ABORTED:
            return
        self._set_status(OverseerStatus.IDLE)
        self.events.awake.publish(OverseerAwake(reason=reason))

    # ── Helpers ──

    def _append_user_text(self, text: str) -> None:
        # Keep roles alternating when an aborted turn left a user entry last.
        if self._history and self._history[-1]["role"] == "user":
            last = self._history[-1]
            content = last["content"]
            if isinstance(content, str):
                content = [{"type": "text", "text": content}]
            else:
                content = list(content)
            content.append({"type": "text", "text": text})
            last["content"] = content
            return
        self._history.append({"role": "user", "content": text})

    def _set_status(self, status: OverseerStatus) -> None:
        if self._status == status:
            return
        old = self._status
        self._status = status
        logger.debug("Overseer: %s -> %s", old.value, status.value)
        self.events.status.publish(OverseerStatusChanged(status=status, old_status=old))

    def _emit_message(
        self,
        role: MessageRole,
        content: str,
        tool_call: ToolCallRecord | None = None,
    ) -> None:
        message = OverseerMessage(
            role=role,
            content=content,
            tool_call=dataclasses.replace(tool_call) if tool_call else None,
        )
        self.events.message.publish(OverseerMessageEvent(message=message))
