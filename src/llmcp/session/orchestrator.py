"""Turn loop: model call, directive extraction, permission gate, dispatch."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Protocol

from llmcp.directives.formatter import format_directive_error, format_directive_result
from llmcp.directives.models import Directive
from llmcp.directives.parser import extract
from llmcp.llm.client import ModelClientError, ModelMessage

from .dispatch import DirectiveDispatcher
from .manager import SessionManager
from .models import PermissionDecision, Session
from .permissions import PermissionRequest, build_permission_request

LOGGER = logging.getLogger(__name__)

LOG_VERSION = 1
RequestPermission = Callable[[PermissionRequest], Awaitable[bool]]


class ChatModel(Protocol):
    async def complete(self, messages: Sequence[ModelMessage]) -> str: ...


class TurnState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    HAVE_DIRECTIVES = "have_directives"
    AWAITING_PERMISSION = "awaiting_permission"
    EXECUTING = "executing"
    IDLE = "idle"


class StopReason(str, Enum):
    NO_DIRECTIVES = "no_directives"
    PERMISSION_DENIED = "permission_denied"
    MODEL_ERROR = "model_error"
    ITERATION_LIMIT = "iteration_limit"


@dataclass(slots=True)
class TurnOutcome:
    """How a call to :meth:`SessionOrchestrator.send_message` ended."""

    session: Session
    iterations: int
    stop_reason: StopReason
    state: TurnState = TurnState.IDLE


class SessionOrchestrator:
    """Runs the reply/extract/authorize/execute cycle until the model stops asking.

    The loop only ends normally when a reply carries no directive. A model
    failure, a permission denial, or the optional ``max_iterations`` bound end
    it early; each of those leaves one system-origin message in the session.
    """

    def __init__(
        self,
        *,
        client: ChatModel,
        sessions: SessionManager,
        dispatcher: DirectiveDispatcher,
        log_dir: str | Path,
        request_permission: RequestPermission | None = None,
        max_iterations: int | None = None,
    ) -> None:
        self.client = client
        self.sessions = sessions
        self.dispatcher = dispatcher
        self.log_dir = Path(log_dir)
        self.request_permission = request_permission
        self.max_iterations = max_iterations
        self.state = TurnState.IDLE

    async def send_message(self, session_id: str, content: str) -> TurnOutcome:
        self.sessions.append_user_message(session_id, content)
        iterations = 0
        try:
            while True:
                if self.max_iterations is not None and iterations >= self.max_iterations:
                    self.sessions.append_system_message(
                        session_id,
                        f"Stopped after {iterations} model calls without a final answer.",
                    )
                    self._append_log(
                        session_id, iteration=iterations, event="iteration_limit_reached"
                    )
                    return self._outcome(session_id, iterations, StopReason.ITERATION_LIMIT)

                iterations += 1
                self.state = TurnState.AWAITING_MODEL
                session = self.sessions.get(session_id)
                try:
                    reply = await self.client.complete(session.model_messages())
                except ModelClientError as exc:
                    LOGGER.error(
                        "model_call_failed",
                        extra={"session_id": session_id, "iteration": iterations, "error": str(exc)},
                    )
                    self.sessions.append_system_message(session_id, f"Error: {exc}")
                    self._append_log(
                        session_id,
                        iteration=iterations,
                        event="model_error",
                        status="error",
                        detail=str(exc),
                    )
                    return self._outcome(session_id, iterations, StopReason.MODEL_ERROR)

                self.sessions.append_assistant_message(session_id, reply)
                directives = extract(reply)
                self._append_log(
                    session_id,
                    iteration=iterations,
                    event="model_reply",
                    detail=f"{len(directives)} directive(s)",
                )
                if not directives:
                    return self._outcome(session_id, iterations, StopReason.NO_DIRECTIVES)

                self.state = TurnState.HAVE_DIRECTIVES
                if not await self._authorize(session_id, directives, iteration=iterations):
                    self.sessions.append_system_message(
                        session_id, self._denial_message(directives)
                    )
                    return self._outcome(session_id, iterations, StopReason.PERMISSION_DENIED)

                self.state = TurnState.EXECUTING
                for directive in directives:
                    message = await self._run_directive(session_id, directive, iteration=iterations)
                    self.sessions.append_system_message(session_id, message)
        finally:
            self.state = TurnState.IDLE

    async def _authorize(
        self, session_id: str, directives: Sequence[Directive], *, iteration: int
    ) -> bool:
        permission = self.sessions.get(session_id).permission
        request = build_permission_request(directives)

        if permission.decision is PermissionDecision.DENIED:
            return False
        if permission.covers(request.level):
            return True

        self.state = TurnState.AWAITING_PERMISSION
        LOGGER.info(
            "permission_requested",
            extra={
                "session_id": session_id,
                "level": request.level.label,
                "escalation": permission.decision is PermissionDecision.ALLOWED,
                "directive_count": len(directives),
            },
        )
        allowed = await self._ask(request)
        granted = request.level if allowed else (permission.level or request.level)
        self.sessions.set_permission(session_id, allowed=allowed, level=granted)
        self._append_log(
            session_id,
            iteration=iteration,
            event="permission_decision",
            status="allowed" if allowed else "denied",
            detail=request.level.label,
        )
        return allowed

    async def _ask(self, request: PermissionRequest) -> bool:
        if self.request_permission is None:
            return False
        return bool(await self.request_permission(request))

    async def _run_directive(self, session_id: str, directive: Directive, *, iteration: int) -> str:
        try:
            result = await self.dispatcher.dispatch(directive)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "directive_failed",
                extra={
                    "session_id": session_id,
                    "directive_type": directive.kind.value,
                    "error_type": exc.__class__.__name__,
                    "error": str(exc),
                },
            )
            self._append_log(
                session_id,
                iteration=iteration,
                event="directive_executed",
                directive=directive,
                status="error",
                detail=str(exc) or exc.__class__.__name__,
            )
            return format_directive_error(directive, exc)

        self._append_log(
            session_id,
            iteration=iteration,
            event="directive_executed",
            directive=directive,
            status="ok",
        )
        return format_directive_result(directive, result)

    @staticmethod
    def _denial_message(directives: Sequence[Directive]) -> str:
        listed = "\n".join(f"- {directive.describe()}" for directive in directives)
        return f"Permission denied. The following actions were not performed:\n{listed}"

    def _outcome(self, session_id: str, iterations: int, reason: StopReason) -> TurnOutcome:
        self.state = TurnState.IDLE
        LOGGER.info(
            "turn_finished",
            extra={"session_id": session_id, "iterations": iterations, "stop_reason": reason.value},
        )
        return TurnOutcome(
            session=self.sessions.get(session_id),
            iterations=iterations,
            stop_reason=reason,
        )

    def _append_log(
        self,
        session_id: str,
        *,
        iteration: int,
        event: str,
        directive: Directive | None = None,
        status: str | None = None,
        detail: str | None = None,
    ) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        day_file = self.log_dir / f"session-{datetime.now(timezone.utc).date().isoformat()}.log"
        entry = {
            "log_version": LOG_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_id": session_id,
            "model": getattr(self.client, "model", None),
            "iteration": iteration,
            "event": event,
            "kind": directive.kind.value if directive else None,
            "parameters": directive.raw_parameters if directive else None,
            "status": status,
            "detail": detail,
        }
        with day_file.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry) + "\n")
