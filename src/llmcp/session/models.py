"""Conversation data models owned by the session orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from llmcp.directives.models import PermissionLevel

MessageRole = Literal["user", "assistant"]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PermissionDecision(str, Enum):
    UNSET = "unset"
    ALLOWED = "allowed"
    DENIED = "denied"


@dataclass(frozen=True, slots=True)
class Message:
    """One conversation entry.

    System-origin messages (directive results, denials, errors) are sent to
    the model with the ``user`` role; ``is_system_origin`` lets a front end
    show them differently.
    """

    role: MessageRole
    content: str
    is_system_origin: bool = False
    created_at: str = field(default_factory=utc_now)

    def to_model_message(self) -> dict[str, str]:
        return {"role": "user" if self.is_system_origin else self.role, "content": self.content}

    def to_dict(self) -> dict[str, object]:
        return {
            "role": self.role,
            "content": self.content,
            "is_system_origin": self.is_system_origin,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> Message:
        role = payload.get("role")
        return cls(
            role="assistant" if role == "assistant" else "user",
            content=str(payload.get("content", "")),
            is_system_origin=bool(payload.get("is_system_origin", False)),
            created_at=str(payload.get("created_at") or utc_now()),
        )


@dataclass(slots=True)
class PermissionState:
    decision: PermissionDecision = PermissionDecision.UNSET
    level: PermissionLevel | None = None

    @property
    def is_set(self) -> bool:
        return self.decision is not PermissionDecision.UNSET

    def covers(self, level: PermissionLevel) -> bool:
        return (
            self.decision is PermissionDecision.ALLOWED
            and self.level is not None
            and level <= self.level
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "decision": self.decision.value,
            "level": self.level.name if self.level is not None else None,
        }

    @classmethod
    def from_dict(cls, payload: object) -> PermissionState:
        if not isinstance(payload, dict):
            return cls()
        try:
            decision = PermissionDecision(payload.get("decision", "unset"))
        except ValueError:
            decision = PermissionDecision.UNSET
        level_name = payload.get("level")
        level = PermissionLevel[level_name] if level_name in PermissionLevel.__members__ else None
        return cls(decision=decision, level=level)


@dataclass(slots=True)
class Session:
    """An ordered conversation and its permission decision."""

    id: str
    title: str
    messages: list[Message] = field(default_factory=list)
    permission: PermissionState = field(default_factory=PermissionState)
    created_at: str = field(default_factory=utc_now)

    def model_messages(self) -> list[dict[str, str]]:
        return [message.to_model_message() for message in self.messages]

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at,
            "permission": self.permission.to_dict(),
            "messages": [message.to_dict() for message in self.messages],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> Session:
        raw_messages = payload.get("messages")
        messages = [
            Message.from_dict(item)
            for item in (raw_messages if isinstance(raw_messages, list) else [])
            if isinstance(item, dict)
        ]
        return cls(
            id=str(payload["id"]),
            title=str(payload.get("title") or "Chat"),
            messages=messages,
            permission=PermissionState.from_dict(payload.get("permission")),
            created_at=str(payload.get("created_at") or utc_now()),
        )
