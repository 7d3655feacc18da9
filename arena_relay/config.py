"""Configuration objects for the relay runtime."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

LOBBY_CAPACITY = 2
MULTIPLAYER_MAP_ID = "map19"
HIT_COOLDOWN_MS = 800

ENV_PREFIX = "ARENA_RELAY_"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class RelayConfig:
    """Static configuration describing how the relay behaves.

    Attributes
    ----------
    lobby_capacity:
        Number of sessions a versus lobby admits before it instructs its
        members to load the match.  Only two-player lobbies are supported.
    multiplayer_map_id:
        The single map identifier whose joins go through the lobby
        matchmaker instead of the plain map broadcast.
    hit_cooldown_ms:
        Minimum gap between two accepted hits from the same attacker on the
        same target.
    spawn_x, spawn_y, default_hp:
        Gameplay state handed to a session before the client reports its own.
    host, port, log_level:
        Settings consumed by the ASGI entry point.
    """

    lobby_capacity: int = LOBBY_CAPACITY
    multiplayer_map_id: str = MULTIPLAYER_MAP_ID
    hit_cooldown_ms: int = HIT_COOLDOWN_MS
    spawn_x: float = 100.0
    spawn_y: float = 100.0
    default_hp: int = 100
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    def validate(self) -> None:
        if self.lobby_capacity != LOBBY_CAPACITY:
            raise ValueError("Only two-player lobbies are supported")
        if not self.multiplayer_map_id:
            raise ValueError("multiplayer_map_id must be a non-empty string")
        if self.hit_cooldown_ms < 0:
            raise ValueError("Hit cooldown cannot be negative")
        if self.default_hp <= 0:
            raise ValueError("default_hp must be positive")
        if not 0 < self.port < 65536:
            raise ValueError("port must be between 1 and 65535")
        if logging.getLevelName(self.log_level.upper()) not in (
            logging.DEBUG,
            logging.INFO,
            logging.WARNING,
            logging.ERROR,
            logging.CRITICAL,
        ):
            raise ValueError(f"Unknown log level {self.log_level!r}")

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Build a config from ``ARENA_RELAY_*`` environment variables."""

        env = os.environ
        config = cls(
            multiplayer_map_id=env.get(ENV_PREFIX + "MULTIPLAYER_MAP_ID", MULTIPLAYER_MAP_ID),
            hit_cooldown_ms=int(env.get(ENV_PREFIX + "HIT_COOLDOWN_MS", str(HIT_COOLDOWN_MS))),
            host=env.get(ENV_PREFIX + "HOST", "0.0.0.0"),
            port=int(env.get(ENV_PREFIX + "PORT", "8080")),
            log_level=env.get(ENV_PREFIX + "LOG_LEVEL", "INFO").upper(),
        )
        config.validate()
        return config


def configure_logging(config: RelayConfig) -> None:
    """Route relay and uvicorn logging to the console at the configured level."""

    level = config.log_level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
