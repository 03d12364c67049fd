from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Sequence

from .errors import (
    AgentError,
    ContinueLimitExceeded,
    PersistenceError,
    ToolExecutionError,
    UnknownToolError,
)
from .events.store import EventStore
from .llm.base import ModelBackend
from .mcp.manager import ToolServerManager
from .mcp.models import Notification
from .session.models import Content, FunctionCall, FunctionResponse, Part, Session, Text
from .session.store import SessionStore
from .tools.base import ToolContext, ToolDeclaration
from .tools.builtin_tools.terminal_tools import TERMINAL_TOOLS
from .tools.registry import ToolRegistry, qualified_name
from .util.cancel import CancelToken, ensure_token

logger = logging.getLogger(__name__)

CONTINUE_PROMPT = (
    "Task may not be finished. Please continue.\n"
    "If you have finished the task, please call the 'complete' function.\n"
    "If you have any questions, please call the 'askQuestion' function."
)


class EngineState(Enum):
    AWAITING_MODEL = "awaiting_model"
    HANDLING_FUNCTION_CALLS = "handling_function_calls"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TurnOutcome:
    state: EngineState
    text: str = ""
    terminal_call: FunctionCall | None = None
    terminal_result: dict[str, Any] | None = None


def _preview(obj: Any, limit: int = 2000) -> str:
    try:
        s = json.dumps(obj, ensure_ascii=False, indent=2, default=str)
    except (TypeError, ValueError):
        s = str(obj)
    if len(s) > limit:
        s = s[:limit] + "\n... (truncated)"
    return s


class ConversationEngine:
    """Drives one session's conversation with the model.

    ``process_message`` runs the turn loop: send to the model, execute the
    function calls it asks for in order, send the results back, and repeat
    until a terminal tool (``complete`` / ``askQuestion``) runs, the model
    answers with plain text, or something fails. The session is saved when
    the loop completes and, best-effort, when it fails.
    """

    def __init__(
        self,
        backend: ModelBackend,
        registry: ToolRegistry,
        manager: ToolServerManager,
        store: SessionStore,
        session: Session | None = None,
        *,
        system_prompt: str | None = None,
        max_continues: int | None = None,
        cwd: Path | None = None,
        events: EventStore | None = None,
    ):
        self.backend = backend
        self.registry = registry
        self.manager = manager
        self.store = store
        self.session = session or Session()
        self.system_prompt = system_prompt
        self.max_continues = max_continues
        self.cwd = cwd or Path.cwd()
        self.events = events
        self.state = EngineState.AWAITING_MODEL

    # -- session -----------------------------------------------------------

    def load_session(self, session_id: str) -> Session:
        self.session = self.store.load(session_id)
        return self.session

    def save_session(self) -> None:
        self.store.save(self.session)
        self._event("session.saved", {"history_len": len(self.session.history)})

    def available_functions(self) -> list[str]:
        return self.registry.names()

    def declarations(self) -> list[ToolDeclaration]:
        return self.registry.declarations()

    def handle_notification(self, server: str, notification: Notification) -> None:
        logger.info("[%s] notification %s: %s", server, notification.method, notification.params)

    def _event(self, event_type: str, data: dict[str, Any]) -> None:
        if self.events is not None:
            self.events.append(event_type, data)

    # -- turn loop ---------------------------------------------------------

    def process_message(self, user_input: str, cancel: CancelToken | None = None) -> TurnOutcome:
        if not user_input or not user_input.strip():
            raise ValueError("empty input")
        token = ensure_token(cancel)
        logger.info("--- Start session %s ---", self.session.id)

        self.state = EngineState.AWAITING_MODEL
        outgoing: list[Part] = [Text(user_input)]
        calls: list[FunctionCall] = []
        continues = 0
        outcome = TurnOutcome(state=EngineState.AWAITING_MODEL)
        try:
            while self.state not in (EngineState.COMPLETED, EngineState.FAILED):
                if self.state is EngineState.AWAITING_MODEL:
                    reply = self._exchange(outgoing, token)
                    calls = reply.function_calls()
                    if calls:
                        self.state = EngineState.HANDLING_FUNCTION_CALLS
                    elif reply.has_text():
                        outcome.text = reply.text()
                        self.state = EngineState.COMPLETED
                    else:
                        continues += 1
                        if self.max_continues is not None and continues > self.max_continues:
                            raise ContinueLimitExceeded(
                                f"model gave no text or function call {continues} times in a row"
                            )
                        logger.info("No actionable response, asking the model to continue")
                        self._event("engine.nudge", {"count": continues})
                        outgoing = [Text(CONTINUE_PROMPT)]

                elif self.state is EngineState.HANDLING_FUNCTION_CALLS:
                    responses: list[Part] = []
                    for call in calls:
                        result = self._execute(call, token)
                        if call.name in TERMINAL_TOOLS:
                            # later calls in this turn are not executed
                            outcome.terminal_call = call
                            outcome.terminal_result = result
                            self.state = EngineState.COMPLETED
                            break
                        responses.append(FunctionResponse(name=call.name, response=result))
                    else:
                        continues = 0
                        outgoing = responses
                        self.state = EngineState.AWAITING_MODEL
        except AgentError as e:
            self._fail(e)
            raise
        except Exception as e:
            logger.exception("Unexpected failure in session %s", self.session.id)
            self._fail(e)
            raise

        outcome.state = self.state
        self._event("engine.completed", {"terminal": outcome.terminal_call.name if outcome.terminal_call else None})
        self.save_session()
        logger.info("--- Finish session %s ---", self.session.id)
        return outcome

    def _fail(self, e: BaseException) -> None:
        """Move to FAILED and save what the session holds so far."""
        self.state = EngineState.FAILED
        logger.error("Processing failed: %s", e)
        self._event("engine.failed", {"error": str(e)[:2000], "type": type(e).__name__})
        try:
            self.save_session()
        except PersistenceError as save_err:
            logger.error("Failed to save session %s: %s", self.session.id, save_err)

    def _exchange(self, parts: Sequence[Part], token: CancelToken) -> Content:
        """Send ``parts`` as the user turn and return the model's reply.

        History gains the user turn and the reply only once the model answered.
        """
        token.raise_if_cancelled("model request")
        user = Content(role="user", parts=list(parts))
        self._event("llm.request", {"history_len": len(self.session.history), "parts": len(user.parts)})
        logger.debug("Sending to model:\n%s", _preview([repr(p) for p in user.parts]))
        t0 = time.perf_counter()
        reply = self.backend.generate(
            [*self.session.history, user],
            tools=self.registry.declarations(),
            system_instruction=self.system_prompt,
            cancel=token,
        )
        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        self.session.history.append(user)
        self.session.history.append(reply)
        self.session.touch()

        for part in reply.parts:
            if isinstance(part, Text) and part.text.strip():
                logger.info("Response from AI:\n%s", part.text.strip())
        self._event(
            "llm.response",
            {
                "elapsed_ms": elapsed_ms,
                "text": reply.text()[:4000],
                "function_calls": [{"name": c.name, "args": c.args} for c in reply.function_calls()],
            },
        )
        return reply

    def _execute(self, call: FunctionCall, token: CancelToken) -> dict[str, Any]:
        token.raise_if_cancelled(f"function {call.name}")
        logger.info("AI uses function calling: %s", call.name)
        logger.debug("Function call args:\n%s", _preview(call.args))
        self._event("tool.call", {"tool": call.name, "args": call.args})
        if not self.registry.has(call.name):
            raise UnknownToolError(f"unknown function: {call.name}")
        t0 = time.perf_counter()

        tool = self.registry.get_local(call.name)
        if tool is None:
            result = self.manager.dispatch(qualified_name(call.name), call.args, token)
        else:
            ctx = ToolContext(cwd=str(self.cwd), session_id=self.session.id, cancel=token)
            try:
                result = tool.execute(ctx, dict(call.args)).to_response()
            except AgentError:
                raise
            except Exception as e:
                raise ToolExecutionError(f"function {call.name} failed: {e}") from e

        self._event(
            "tool.result",
            {
                "tool": call.name,
                "is_error": bool(result.get("is_error")),
                "elapsed_ms": int((time.perf_counter() - t0) * 1000),
                "preview": _preview(result, 4000),
            },
        )
        logger.debug("Function result:\n%s", _preview(result))
        return result
