"""Event vocabulary and per-session phase tracking for the sync channel."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# server -> viewer
SERVER_PORT = "serverPort"
DATABASE_PATH = "databasePath"
DATABASE_PATH_CHANGED = "databasePathChanged"
DATABASE_CHANGED = "databaseChanged"
TABLES = "tables"
TABLE_DATA = "tableData"
ERROR = "error"

# viewer -> server
GET_TABLES = "getTables"
GET_TABLE_DATA = "getTableData"
CHANGE_DATABASE = "changeDatabase"

SERVER_EVENTS = (
    SERVER_PORT,
    DATABASE_PATH,
    DATABASE_PATH_CHANGED,
    DATABASE_CHANGED,
    TABLES,
    TABLE_DATA,
    ERROR,
)

# Pseudo-event delivered to viewer listeners when a session changes phase.
PHASE = "phase"


class SessionPhase(str, Enum):
    """Lifecycle of one viewer session."""

    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    READY = "ready"
    DISCONNECTED = "disconnected"


_TRANSITIONS: dict[SessionPhase, frozenset[SessionPhase]] = {
    SessionPhase.CONNECTING: frozenset({SessionPhase.HANDSHAKING, SessionPhase.DISCONNECTED}),
    SessionPhase.HANDSHAKING: frozenset({SessionPhase.READY, SessionPhase.DISCONNECTED}),
    SessionPhase.READY: frozenset({SessionPhase.DISCONNECTED}),
    SessionPhase.DISCONNECTED: frozenset({SessionPhase.CONNECTING}),
}


def can_transition(current: SessionPhase, target: SessionPhase) -> bool:
    return target in _TRANSITIONS[current]


@dataclass(slots=True)
class ViewerSession:
    """Viewer-side state for one transport connection.

    A new handshake always gets a fresh instance; ``READY`` is reached once
    the server has announced both its bound port and the active path.
    """

    port: int
    phase: SessionPhase = SessionPhase.CONNECTING
    server_port: int | None = None
    database_path: str | None = None
    history: list[SessionPhase] = field(default_factory=list)

    def advance(self, target: SessionPhase) -> None:
        if not can_transition(self.phase, target):
            raise ValueError(f"Illegal session transition {self.phase.value} -> {target.value}")
        self.history.append(self.phase)
        self.phase = target

    @property
    def is_live(self) -> bool:
        return self.phase in (SessionPhase.HANDSHAKING, SessionPhase.READY)

    def record_port(self, port: int) -> bool:
        """Store the confirmed port; True if the session just became ready."""

        self.server_port = port
        return self.try_ready()

    def record_path(self, path: str) -> bool:
        """Store the announced path; True if the session just became ready."""

        self.database_path = path
        return self.try_ready()

    def try_ready(self) -> bool:
        """Advance to READY once both identity events arrived while handshaking."""

        if self.phase is not SessionPhase.HANDSHAKING:
            return False
        if self.server_port is None or self.database_path is None:
            return False
        self.advance(SessionPhase.READY)
        return True


__all__ = [
    "CHANGE_DATABASE",
    "DATABASE_CHANGED",
    "DATABASE_PATH",
    "DATABASE_PATH_CHANGED",
    "ERROR",
    "GET_TABLES",
    "GET_TABLE_DATA",
    "PHASE",
    "SERVER_EVENTS",
    "SERVER_PORT",
    "SessionPhase",
    "TABLES",
    "TABLE_DATA",
    "ViewerSession",
    "can_transition",
]
