"""Data models exchanged between the relay and its clients.

Every piece of per-player state lives in a dataclass with explicit
``from_payload`` and ``serialise`` helpers so the wire format stays in one
place.  Field names on the wire follow the client's camelCase/snake_case mix
and are therefore spelled out here rather than derived.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol


class Connection(Protocol):
    """Transport handle as seen by the dispatcher."""

    def is_open(self) -> bool:
        ...

    def send(self, text: str) -> None:
        ...


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class Dagger:
    """A weapon slot; unknown client attributes are carried through untouched."""

    index: Any = None
    spin: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Dagger":
        extra = {key: value for key, value in payload.items() if key not in ("index", "spin")}
        return cls(index=payload.get("index"), spin=payload.get("spin"), extra=copy.deepcopy(extra))

    def serialise(self) -> Dict[str, Any]:
        data = copy.deepcopy(self.extra)
        data["index"] = self.index
        data["spin"] = self.spin
        return data


def parse_daggers(payload: Any) -> Optional[List[Dagger]]:
    """Return the dagger list, or ``None`` when the payload is not a list of objects."""

    if not isinstance(payload, list):
        return None
    if not all(isinstance(item, dict) for item in payload):
        return None
    return [Dagger.from_payload(item) for item in payload]


@dataclass
class PlayerGameplayState:
    """Last-known position, health and weapon configuration of a player."""

    x: float
    y: float
    hp: float
    hp_max: float
    daggers: List[Dagger] = field(default_factory=list)

    def clamp_hp(self) -> None:
        self.hp = max(0, min(self.hp, self.hp_max))

    def copy(self) -> "PlayerGameplayState":
        return PlayerGameplayState(
            x=self.x,
            y=self.y,
            hp=self.hp,
            hp_max=self.hp_max,
            daggers=[Dagger(d.index, d.spin, copy.deepcopy(d.extra)) for d in self.daggers],
        )

    def serialise(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "hp": self.hp,
            "hp_max": self.hp_max,
            "daggers": [dagger.serialise() for dagger in self.daggers],
        }


@dataclass
class PlayerPatch:
    """Subset of gameplay fields reported by a ``player_update``."""

    x: Optional[float] = None
    y: Optional[float] = None
    hp: Optional[float] = None
    hp_max: Optional[float] = None
    daggers: Optional[List[Dagger]] = None

    @classmethod
    def from_payload(cls, data: Any) -> "PlayerPatch":
        """Keep only recognised fields with usable values; drop everything else."""

        patch = cls()
        if not isinstance(data, dict):
            return patch
        for name in ("x", "y", "hp", "hp_max"):
            value = data.get(name)
            if is_number(value):
                setattr(patch, name, value)
        if "daggers" in data:
            patch.daggers = parse_daggers(data["daggers"])
        return patch

    def is_empty(self) -> bool:
        return all(
            value is None for value in (self.x, self.y, self.hp, self.hp_max, self.daggers)
        )

    def apply(self, state: PlayerGameplayState) -> None:
        if self.x is not None:
            state.x = self.x
        if self.y is not None:
            state.y = self.y
        if self.hp_max is not None and self.hp_max > 0:
            state.hp_max = self.hp_max
        if self.hp is not None:
            state.hp = self.hp
        if self.daggers is not None:
            state.daggers = self.daggers
        state.clamp_hp()


@dataclass
class Session:
    """Server-side record of one logical player."""

    id: str
    connection: Connection
    state: PlayerGameplayState
    map_id: Optional[str] = None
    last_hit_by: Dict[str, float] = field(default_factory=dict)

    def snapshot(self) -> Dict[str, Any]:
        data = self.state.serialise()
        data["id"] = self.id
        data["map_id"] = self.map_id
        return data

    def update_view(self) -> Dict[str, Any]:
        """Reduced projection relayed on every ``player_update``; daggers omitted."""

        return {
            "id": self.id,
            "x": self.state.x,
            "y": self.state.y,
            "hp": self.state.hp,
            "hp_max": self.state.hp_max,
        }


@dataclass(frozen=True)
class Outbound:
    """A payload addressed to one connection."""

    connection: Connection
    payload: Dict[str, Any]
