"""Melee hit resolution."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List

from .broadcast import BroadcastRouter
from .models import Outbound, Session, is_number
from .registry import PlayerStateStore, SessionRegistry

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class CombatResolver:
    """Applies ``hit_player`` requests to the target's authoritative health.

    Each target remembers when it last accepted a hit from each attacker;
    another hit from that attacker inside the cooldown window is dropped.
    A target at zero health cannot be hit, which is what keeps
    ``player_died`` to a single announcement.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        store: PlayerStateStore,
        router: BroadcastRouter,
        cooldown_ms: float,
        clock: Clock = monotonic_ms,
    ) -> None:
        self._registry = registry
        self._store = store
        self._router = router
        self._cooldown_ms = cooldown_ms
        self._clock = clock

    def resolve(self, attacker: Session, message: Dict[str, Any]) -> List[Outbound]:
        if attacker.map_id is None:
            logger.warning("hit_player from %s before joining a map", attacker.id)
            return []

        target_id = message.get("targetId")
        damage = message.get("damage")
        if not target_id or not isinstance(target_id, str) or not is_number(damage):
            logger.warning("Malformed hit_player from %s: %r", attacker.id, message)
            return []

        target = self._registry.get(target_id)
        if target is None or target.map_id != attacker.map_id or target.state.hp <= 0:
            return []

        now = self._clock()
        last = target.last_hit_by.get(attacker.id)
        if last is not None and now - last < self._cooldown_ms:
            return []
        target.last_hit_by[attacker.id] = now

        target.state.hp -= damage
        target.state.clamp_hp()
        died = target.state.hp <= 0
        self._store.refresh(target)
        logger.info(
            "%s hit %s for %s damage; %s hp now %s", attacker.id, target.id, damage, target.id, target.state.hp
        )

        outbound = self._router.to_map(
            attacker.map_id,
            {
                "type": "hp_update",
                "playerId": target.id,
                "hp": target.state.hp,
                "hp_max": target.state.hp_max,
                "attackerId": attacker.id,
            },
        )
        if died:
            logger.info("%s killed by %s", target.id, attacker.id)
            outbound += self._router.to_map(
                attacker.map_id,
                {"type": "player_died", "playerId": target.id, "killerId": attacker.id},
            )
        return outbound
