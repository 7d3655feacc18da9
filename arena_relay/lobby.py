"""Versus lobby for the designated multiplayer map."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from .broadcast import BroadcastRouter
from .config import RelayConfig
from .models import Outbound, Session
from .registry import PlayerStateStore

logger = logging.getLogger(__name__)

LOBBY_FULL_MESSAGE = "Lobby is full or game already started."
REGRESSION_STATUS = "A player left, waiting for more..."


class LobbyState(Enum):
    WAITING = "waiting"
    STARTING = "starting"
    RUNNING = "running"


@dataclass
class Lobby:
    map_id: str
    capacity: int
    members: List[str] = field(default_factory=list)
    ready: Set[str] = field(default_factory=set)
    state: LobbyState = LobbyState.WAITING

    def is_full(self) -> bool:
        return len(self.members) >= self.capacity

    def accepts(self, session_id: str) -> bool:
        if self.state is not LobbyState.WAITING:
            return False
        return session_id in self.members or not self.is_full()


class LobbyMatchmaker:
    """Drives the lobby through waiting, starting and running.

    The lobby fills to capacity while *waiting*; reaching capacity moves it
    to *starting* and tells every member to load the match.  Once every
    member reports its assets are loaded the lobby is *running*.  Losing a
    member while *starting* drops it back to *waiting* with an empty ready
    set.  The lobby is discarded as soon as its last member leaves.
    """

    def __init__(self, config: RelayConfig, router: BroadcastRouter, store: PlayerStateStore) -> None:
        self._config = config
        self._router = router
        self._store = store
        self.lobby: Optional[Lobby] = None

    @property
    def map_id(self) -> str:
        return self._config.multiplayer_map_id

    def _lobby_update(self, lobby: Lobby, status_text: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": "lobby_update",
            "playerCount": len(lobby.members),
            "maxPlayers": lobby.capacity,
        }
        if status_text is not None:
            payload["statusText"] = status_text
        return payload

    def admit(self, session: Session, existing_players: List[Dict[str, Any]]) -> Tuple[bool, List[Outbound]]:
        """Try to seat ``session``; returns whether it was admitted and what to send."""

        if self.lobby is None:
            self.lobby = Lobby(map_id=self.map_id, capacity=self._config.lobby_capacity)
            logger.info("Created lobby for %s", self.map_id)
        lobby = self.lobby

        if not lobby.accepts(session.id):
            logger.info(
                "Rejected %s from lobby %s (state=%s, members=%d)",
                session.id,
                lobby.map_id,
                lobby.state.value,
                len(lobby.members),
            )
            return False, self._router.reply(
                session.connection, {"type": "error", "message": LOBBY_FULL_MESSAGE}
            )

        if session.id not in lobby.members:
            lobby.members.append(session.id)

        outbound = self._router.reply(
            session.connection,
            {
                "type": "map_joined_ack",
                "status": "success",
                "map_id": lobby.map_id,
                "yourId": session.id,
                "existingPlayers": existing_players,
                "lobbyPlayerCount": len(lobby.members),
                "lobbyMaxPlayers": lobby.capacity,
            },
        )
        outbound += self._router.to_members(lobby.members, self._lobby_update(lobby))
        outbound += self._router.to_members(
            lobby.members,
            {
                "type": "player_joined",
                "playerId": session.id,
                "mapId": lobby.map_id,
                "playerData": self._store.get(session.id),
            },
            exclude=session.id,
        )

        if len(lobby.members) == lobby.capacity:
            lobby.state = LobbyState.STARTING
            logger.info("Lobby %s is full; instructing clients to load match", lobby.map_id)
            outbound += self._router.to_members(
                lobby.members,
                {
                    "type": "load_match",
                    "map_id": lobby.map_id,
                    "existingPlayers": self._store.roster(lobby.members),
                },
            )
        return True, outbound

    def mark_ready(self, session: Session) -> List[Outbound]:
        lobby = self.lobby
        if (
            lobby is None
            or session.map_id != self.map_id
            or lobby.state is not LobbyState.STARTING
            or session.id not in lobby.members
        ):
            logger.warning(
                "match_assets_ready from %s outside a starting lobby for %s (lobby=%s)",
                session.id,
                self.map_id,
                lobby.state.value if lobby else None,
            )
            return []

        lobby.ready.add(session.id)
        logger.info(
            "%s ready for match on %s (%d/%d)",
            session.id,
            lobby.map_id,
            len(lobby.ready),
            len(lobby.members),
        )
        if len(lobby.ready) != len(lobby.members):
            return []

        lobby.state = LobbyState.RUNNING
        logger.info("All players ready on %s; starting simulation", lobby.map_id)
        return self._router.to_members(lobby.members, {"type": "start_match_simulation"})

    def remove(self, session_id: str, left_notice: Dict[str, Any]) -> List[Outbound]:
        """Take ``session_id`` out of the lobby and tell whoever is left."""

        lobby = self.lobby
        if lobby is None or session_id not in lobby.members:
            return []

        lobby.members.remove(session_id)
        lobby.ready.discard(session_id)

        if not lobby.members:
            logger.info("Lobby %s is empty; removing it", lobby.map_id)
            self.lobby = None
            return []

        if lobby.state is LobbyState.RUNNING:
            return self._router.to_map(lobby.map_id, left_notice, exclude=session_id)

        outbound = self._router.to_members(lobby.members, self._lobby_update(lobby))
        outbound += self._router.to_members(lobby.members, left_notice)
        if lobby.state is LobbyState.STARTING and len(lobby.members) < lobby.capacity:
            logger.info("Player left lobby %s while starting; reverting to waiting", lobby.map_id)
            lobby.state = LobbyState.WAITING
            lobby.ready.clear()
            outbound += self._router.to_members(
                lobby.members, self._lobby_update(lobby, REGRESSION_STATUS)
            )
        return outbound
