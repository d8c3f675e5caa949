"""Persistence for the session map."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from .models import Session

LOGGER = logging.getLogger(__name__)

STORE_VERSION = 1


class SessionStore(Protocol):
    def load(self) -> dict[str, Session]: ...

    def save(self, sessions: dict[str, Session]) -> None: ...


class MemorySessionStore:
    """Keeps serialized sessions in memory; useful for tests and one-off runs."""

    def __init__(self) -> None:
        self._payload: dict[str, dict[str, object]] = {}
        self.save_count = 0

    def load(self) -> dict[str, Session]:
        return {key: Session.from_dict(value) for key, value in self._payload.items()}

    def save(self, sessions: dict[str, Session]) -> None:
        self._payload = {key: session.to_dict() for key, session in sessions.items()}
        self.save_count += 1


class JsonFileSessionStore:
    """Stores every session in one JSON document, replaced atomically on save."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> dict[str, Session]:
        if not self.path.exists() or not self.path.is_file():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                parsed = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            self._set_aside(str(exc))
            return {}

        raw_sessions = parsed.get("sessions") if isinstance(parsed, dict) else None
        if not isinstance(raw_sessions, dict):
            self._set_aside("document has no sessions map")
            return {}

        sessions: dict[str, Session] = {}
        for key, value in raw_sessions.items():
            if not isinstance(value, dict) or "id" not in value:
                continue
            sessions[str(key)] = Session.from_dict(value)
        return sessions

    def save(self, sessions: dict[str, Session]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        document = {
            "version": STORE_VERSION,
            "sessions": {key: session.to_dict() for key, session in sessions.items()},
        }
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".sessions-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _set_aside(self, reason: str) -> Path:
        """Move an unreadable store out of the way so the next save cannot overwrite it."""
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        backup = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        os.replace(self.path, backup)
        LOGGER.error(
            "session_store_load_failed",
            extra={"path": str(self.path), "backup": str(backup), "error": reason},
        )
        return backup
