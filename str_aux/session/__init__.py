"""Per-symbol session state machine, store and persistence records."""

from .state import (
    AnchorPolicy,
    Snapshot,
    StreamTriple,
    Streams,
    SymbolSession,
    UpdateResult,
    create_session,
    export_streams,
    update_session,
)
from .store import SessionKey, SessionStore
from .records import (
    MemorySessionRepository,
    SessionEvent,
    SessionRecord,
    SessionRecordKey,
    SessionRepository,
    migrate_session_payload,
    session_from_payload,
)

__all__ = [
    "AnchorPolicy",
    "Snapshot",
    "StreamTriple",
    "Streams",
    "SymbolSession",
    "UpdateResult",
    "create_session",
    "update_session",
    "export_streams",
    "SessionKey",
    "SessionStore",
    "MemorySessionRepository",
    "SessionEvent",
    "SessionRecord",
    "SessionRecordKey",
    "SessionRepository",
    "migrate_session_payload",
    "session_from_payload",
]
