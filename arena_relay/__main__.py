"""Run the relay with uvicorn: ``python -m arena_relay``."""

from __future__ import annotations

import uvicorn

from .config import RelayConfig, configure_logging
from .server import create_app


def main() -> None:
    config = RelayConfig.from_env()
    configure_logging(config)
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
