# FILE: codeplanner/gateway/__main__.py
"""
Gateway process entry point.

    python -m codeplanner.gateway

uvicorn handles SIGINT/SIGTERM; the app lifespan closes open relays and
the broker on shutdown.
"""

import logging
import sys

import uvicorn
from dotenv import load_dotenv

# Load .env before reading settings
load_dotenv()

from codeplanner.config import Settings
from codeplanner.errors import ConfigurationError
from codeplanner.gateway.app import create_app

logger = logging.getLogger("codeplanner.gateway")


def main() -> int:
    try:
        settings = Settings.from_env()
        app = create_app(settings)
    except ConfigurationError as e:
        logger.error("[gateway] startup failed: %s", e.message)
        return 1
    logging.getLogger().setLevel(settings.log_level)
    uvicorn.run(app, host=settings.gateway_host, port=settings.gateway_port, log_level=settings.log_level.lower())
    return 0


def run() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sys.exit(main())


if __name__ == "__main__":
    run()
