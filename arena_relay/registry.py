"""Session identity and the mirrored player state store."""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .models import Connection, PlayerGameplayState, Session

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Owns every :class:`Session` and decides which id a connection gets.

    A requested id is honoured when it is free, already bound to the asking
    connection, or bound to a connection whose transport has gone away.  A
    request for an id held by another live connection falls back to a fresh
    ``player_<n>`` id; the join acknowledgement is the only place the client
    learns which id it was granted.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._by_connection: Dict[int, str] = {}
        self._id_counter = itertools.count(1)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def session_for(self, connection: Connection) -> Optional[Session]:
        session_id = self._by_connection.get(id(connection))
        if session_id is None:
            return None
        session = self._sessions.get(session_id)
        if session is None or session.connection is not connection:
            return None
        return session

    def next_synthetic_id(self) -> str:
        """Draw ``player_<n>`` ids until one is not held by a live session."""

        while True:
            session_id = f"player_{next(self._id_counter)}"
            if session_id not in self._sessions:
                return session_id

    def claim(self, connection: Connection, requested: Optional[str]) -> Tuple[str, Optional[Session]]:
        """Pick the id for a connection without a session.

        Returns the granted id and, when the id is reclaimed from a dead
        connection, the stale session the caller must tear down before
        registering the new one.
        """

        if not requested:
            session_id = self.next_synthetic_id()
            logger.info("No requested id; assigned %s", session_id)
            return session_id, None

        holder = self._sessions.get(requested)
        if holder is None:
            logger.info("Granted requested id %s", requested)
            return requested, None
        if holder.connection is connection:
            logger.info("Connection re-confirmed id %s", requested)
            return requested, None
        if not holder.connection.is_open():
            logger.info("Reclaiming id %s from stale connection", requested)
            return requested, holder

        session_id = self.next_synthetic_id()
        logger.info("Requested id %s is held by a live connection; assigned %s", requested, session_id)
        return session_id, None

    def register(self, session_id: str, connection: Connection, state: PlayerGameplayState) -> Session:
        session = Session(id=session_id, connection=connection, state=state)
        self._sessions[session_id] = session
        self._by_connection[id(connection)] = session_id
        return session

    def remove(self, session: Session) -> None:
        if self._sessions.get(session.id) is session:
            del self._sessions[session.id]
        if self._by_connection.get(id(session.connection)) == session.id:
            del self._by_connection[id(session.connection)]

    def on_map(self, map_id: str, exclude: Optional[str] = None) -> List[Session]:
        return [
            session
            for session in self._sessions.values()
            if session.map_id == map_id and session.id != exclude
        ]


class PlayerStateStore:
    """Snapshots of each session's gameplay state, keyed by session id.

    New joiners are handed these snapshots for everyone already on their map,
    so the store must be refreshed after every mutation of a session.
    """

    def __init__(self) -> None:
        self._snapshots: Dict[str, Dict[str, Any]] = {}

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._snapshots

    def refresh(self, session: Session) -> Dict[str, Any]:
        snapshot = session.snapshot()
        self._snapshots[session.id] = snapshot
        return snapshot

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        return self._snapshots.get(session_id)

    def discard(self, session_id: str) -> None:
        self._snapshots.pop(session_id, None)

    def roster(self, session_ids: Iterable[str]) -> List[Dict[str, Any]]:
        """``[{playerId, playerData}]`` for every id that has a snapshot."""

        return [
            {"playerId": session_id, "playerData": self._snapshots[session_id]}
            for session_id in session_ids
            if session_id in self._snapshots
        ]
