"""Owner of the session map; persists after every mutation."""

from __future__ import annotations

import logging
import re
import uuid

from llmcp.directives.models import PermissionLevel

from .models import Message, PermissionDecision, PermissionState, Session
from .store import SessionStore

LOGGER = logging.getLogger(__name__)

TITLE_PREVIEW_CHARS = 30
_DEFAULT_TITLE = re.compile(r"Chat \d+")


class SessionNotFoundError(KeyError):
    """Raised when a session id is unknown."""

    def __str__(self) -> str:
        return f"Session with id {self.args[0]} not found"


class SessionManager:
    """Creates, looks up and appends to sessions.

    Messages are only ever appended. Every change is written through to the
    store before the method returns, so a crash never loses an acknowledged
    message.
    """

    def __init__(self, store: SessionStore) -> None:
        self.store = store
        self._sessions = store.load()

    def create_session(self) -> Session:
        session = Session(id=str(uuid.uuid4()), title=self._default_title(len(self._sessions) + 1))
        self._sessions[session.id] = session
        self._save()
        LOGGER.info("session_created", extra={"session_id": session.id})
        return session

    def get(self, session_id: str) -> Session:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def list_sessions(self) -> list[Session]:
        return sorted(self._sessions.values(), key=lambda session: session.created_at, reverse=True)

    def delete_session(self, session_id: str) -> bool:
        if self._sessions.pop(session_id, None) is None:
            return False
        self._save()
        return True

    def append_user_message(self, session_id: str, content: str) -> Message:
        return self._append(session_id, Message(role="user", content=content))

    def append_assistant_message(self, session_id: str, content: str) -> Message:
        session = self.get(session_id)
        message = Message(role="assistant", content=content)
        session.messages.append(message)
        self._retitle(session)
        self._save()
        return message

    def append_system_message(self, session_id: str, content: str) -> Message:
        return self._append(
            session_id, Message(role="user", content=content, is_system_origin=True)
        )

    def set_permission(
        self,
        session_id: str,
        *,
        allowed: bool,
        level: PermissionLevel,
    ) -> PermissionState:
        session = self.get(session_id)
        session.permission = PermissionState(
            decision=PermissionDecision.ALLOWED if allowed else PermissionDecision.DENIED,
            level=level,
        )
        self._save()
        LOGGER.info(
            "session_permission_set",
            extra={
                "session_id": session_id,
                "decision": session.permission.decision.value,
                "level": level.label,
            },
        )
        return session.permission

    def _append(self, session_id: str, message: Message) -> Message:
        self.get(session_id).messages.append(message)
        self._save()
        return message

    def _retitle(self, session: Session) -> None:
        if not _DEFAULT_TITLE.fullmatch(session.title):
            return
        first_user = next(
            (
                message
                for message in session.messages
                if message.role == "user" and not message.is_system_origin
            ),
            None,
        )
        if first_user is None or not first_user.content.strip():
            return
        text = " ".join(first_user.content.split())
        if len(text) > TITLE_PREVIEW_CHARS:
            text = f"{text[:TITLE_PREVIEW_CHARS]}..."
        session.title = text

    @staticmethod
    def _default_title(number: int) -> str:
        return f"Chat {number}"

    def _save(self) -> None:
        self.store.save(self._sessions)
