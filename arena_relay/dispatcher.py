"""Single entry point for every state change in the relay."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from .broadcast import BroadcastRouter
from .combat import Clock, CombatResolver, monotonic_ms
from .config import RelayConfig
from .lobby import LobbyMatchmaker
from .models import (
    Connection,
    Outbound,
    PlayerGameplayState,
    PlayerPatch,
    Session,
    is_number,
    parse_daggers,
)
from .registry import PlayerStateStore, SessionRegistry

logger = logging.getLogger(__name__)

INVALID_JSON_MESSAGE = "Invalid JSON message format."


class World:
    """Owns the registry, state store and lobby, and mutates them per message.

    ``dispatch`` and ``disconnect`` never send anything themselves; they
    return the deliveries the transport should make, in order.  Callers are
    expected to serialise calls so that no two run at once.
    """

    def __init__(self, config: Optional[RelayConfig] = None, clock: Clock = monotonic_ms) -> None:
        self.config = config or RelayConfig()
        self.config.validate()
        self.registry = SessionRegistry()
        self.store = PlayerStateStore()
        self.router = BroadcastRouter(self.registry)
        self.matchmaker = LobbyMatchmaker(self.config, self.router, self.store)
        self.combat = CombatResolver(
            self.registry, self.store, self.router, self.config.hit_cooldown_ms, clock
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def dispatch(self, connection: Connection, frame: Any) -> List[Outbound]:
        """Handle one inbound frame from ``connection``."""

        try:
            message = json.loads(frame)
        except (TypeError, ValueError):
            logger.error("Failed to parse message as JSON: %r", frame)
            return self.router.reply(connection, {"type": "error", "message": INVALID_JSON_MESSAGE})
        if not isinstance(message, dict):
            logger.error("Message is not a JSON object: %r", frame)
            return self.router.reply(connection, {"type": "error", "message": INVALID_JSON_MESSAGE})

        msg_type = message.get("type")
        session = self.registry.session_for(connection)
        logger.debug("Received from %s: %s", session.id if session else "(unidentified)", msg_type)
        if not isinstance(msg_type, str):
            return []
        handler = getattr(self, f"_handle_{msg_type}", None)
        if handler is None:
            return []
        return handler(connection, message)

    def disconnect(self, connection: Connection, reason: Optional[str] = None) -> List[Outbound]:
        """Unwind whatever ``connection`` owns after a close or transport error."""

        session = self.registry.session_for(connection)
        if session is None:
            logger.info("A connection without a live session went away")
            return []
        if reason:
            logger.warning("Connection for %s failed (%s)", session.id, reason)
        else:
            logger.info("Client %s disconnected", session.id)
        return self._teardown(session, reason)

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------
    def _fresh_state(self) -> PlayerGameplayState:
        return PlayerGameplayState(
            x=self.config.spawn_x,
            y=self.config.spawn_y,
            hp=self.config.default_hp,
            hp_max=self.config.default_hp,
        )

    def _left_notice(self, session: Session, reason: Optional[str] = None) -> Dict[str, Any]:
        notice: Dict[str, Any] = {"type": "player_left", "playerId": session.id}
        if reason:
            notice["reason"] = reason
        return notice

    def _teardown(self, session: Session, reason: Optional[str]) -> List[Outbound]:
        # State goes first so a failing send can never leave the session behind.
        self.registry.remove(session)
        self.store.discard(session.id)
        if session.map_id is None:
            return []
        return self._leave_map(session, session.map_id, self._left_notice(session, reason))

    def _leave_map(self, session: Session, map_id: str, notice: Dict[str, Any]) -> List[Outbound]:
        lobby = self.matchmaker.lobby
        if map_id == self.matchmaker.map_id and lobby is not None and session.id in lobby.members:
            return self.matchmaker.remove(session.id, notice)
        return self.router.to_map(map_id, notice, exclude=session.id)

    def _session_or_warn(self, connection: Connection, msg_type: str) -> Optional[Session]:
        session = self.registry.session_for(connection)
        if session is None:
            logger.warning("%s from a client that has not joined a map; ignoring", msg_type)
        return session

    # ------------------------------------------------------------------
    # Message handlers
    # ------------------------------------------------------------------
    def _handle_join_map(self, connection: Connection, message: Dict[str, Any]) -> List[Outbound]:
        map_id = message.get("map_id")
        if not isinstance(map_id, str) or not map_id:
            logger.warning("join_map without a map_id; ignoring")
            return []

        outbound: List[Outbound] = []
        session = self.registry.session_for(connection)
        if session is None:
            requested = message.get("requestedPlayerId")
            if not isinstance(requested, str):
                requested = None
            session_id, stale = self.registry.claim(connection, requested)
            state = self._fresh_state()
            if stale is not None:
                state = stale.state.copy()
                outbound += self._teardown(stale, None)
            session = self.registry.register(session_id, connection, state)

        previous_map = session.map_id
        if previous_map is not None and previous_map != map_id:
            outbound += self._leave_map(session, previous_map, self._left_notice(session))
            previous_map = None

        logger.info("Client %s is joining map %s", session.id, map_id)
        session.map_id = map_id
        if is_number(message.get("initialX")):
            session.state.x = message["initialX"]
        if is_number(message.get("initialY")):
            session.state.y = message["initialY"]
        daggers = parse_daggers(message.get("daggers"))
        if daggers is not None:
            session.state.daggers = daggers
        self.store.refresh(session)

        others = self.registry.on_map(map_id, exclude=session.id)
        existing_players = self.store.roster(other.id for other in others)

        if map_id == self.matchmaker.map_id:
            admitted, lobby_outbound = self.matchmaker.admit(session, existing_players)
            if not admitted:
                session.map_id = previous_map
                self.store.refresh(session)
            return outbound + lobby_outbound

        outbound += self.router.reply(
            connection,
            {
                "type": "map_joined_ack",
                "map_id": map_id,
                "status": "success",
                "yourId": session.id,
                "existingPlayers": existing_players,
            },
        )
        outbound += self.router.to_map(
            map_id,
            {
                "type": "player_joined",
                "playerId": session.id,
                "mapId": map_id,
                "playerData": self.store.get(session.id),
            },
            exclude=session.id,
        )
        return outbound

    def _handle_player_update(self, connection: Connection, message: Dict[str, Any]) -> List[Outbound]:
        session = self._session_or_warn(connection, "player_update")
        if session is None:
            return []
        PlayerPatch.from_payload(message.get("data")).apply(session.state)
        self.store.refresh(session)
        if session.map_id is None:
            return []
        return self.router.to_map(
            session.map_id,
            {"type": "game_state_update", "playerData": session.update_view()},
            exclude=session.id,
        )

    def _handle_hit_player(self, connection: Connection, message: Dict[str, Any]) -> List[Outbound]:
        session = self._session_or_warn(connection, "hit_player")
        if session is None:
            return []
        return self.combat.resolve(session, message)

    def _handle_action_spin_change(self, connection: Connection, message: Dict[str, Any]) -> List[Outbound]:
        session = self._session_or_warn(connection, "action_spin_change")
        if session is None:
            return []
        index = message.get("daggerIndex")
        daggers = session.state.daggers
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(daggers):
            logger.warning("Invalid action_spin_change from %s: %r", session.id, message)
            return []

        new_spin = message.get("newSpin")
        daggers[index].spin = new_spin
        self.store.refresh(session)
        if session.map_id is None:
            return []
        return self.router.to_map(
            session.map_id,
            {
                "type": "dagger_spin_update",
                "playerId": session.id,
                "daggerIndex": index,
                "newSpin": new_spin,
            },
            exclude=session.id,
        )

    def _handle_match_assets_ready(self, connection: Connection, message: Dict[str, Any]) -> List[Outbound]:
        session = self._session_or_warn(connection, "match_assets_ready")
        if session is None:
            return []
        return self.matchmaker.mark_ready(session)
