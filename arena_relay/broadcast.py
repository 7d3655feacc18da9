"""Fan-out helpers that address payloads to map or lobby audiences."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from .models import Connection, Outbound, Session
from .registry import SessionRegistry

logger = logging.getLogger(__name__)


class BroadcastRouter:
    """Turns an audience description into outbound deliveries.

    Only connections that are open at the time of addressing receive a
    payload.  Nothing here sends; the transport drains the returned list.
    """

    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry

    @staticmethod
    def reply(connection: Connection, payload: Dict[str, Any]) -> List[Outbound]:
        return [Outbound(connection, payload)]

    def to_sessions(self, sessions: Iterable[Session], payload: Dict[str, Any]) -> List[Outbound]:
        return [Outbound(s.connection, payload) for s in sessions if s.connection.is_open()]

    def to_map(self, map_id: str, payload: Dict[str, Any], exclude: Optional[str] = None) -> List[Outbound]:
        return self.to_sessions(self._registry.on_map(map_id, exclude=exclude), payload)

    def to_members(
        self, member_ids: Iterable[str], payload: Dict[str, Any], exclude: Optional[str] = None
    ) -> List[Outbound]:
        sessions = []
        for member_id in member_ids:
            if member_id == exclude:
                continue
            session = self._registry.get(member_id)
            if session is not None:
                sessions.append(session)
        return self.to_sessions(sessions, payload)


def deliver(outbound: Iterable[Outbound]) -> None:
    """Hand each payload to its connection; one failing peer never stops the rest."""

    encoded: Dict[int, str] = {}
    for item in outbound:
        key = id(item.payload)
        if key not in encoded:
            encoded[key] = json.dumps(item.payload)
        try:
            item.connection.send(encoded[key])
        except Exception as exc:
            logger.error("Failed to queue %s: %s", item.payload.get("type"), exc)
