"""
Run the bridge: python -m i2a

Settings come from I2A_* environment variables or a .env file.
"""
from __future__ import annotations

import sys

import uvicorn

from i2a.config import ConfigurationError, get_config
from i2a.logging import get_logger

logger = get_logger(__name__)


def main() -> int:
    try:
        config = get_config()
    except ConfigurationError as e:
        logger.critical(f"Invalid configuration: {e}")
        return 2

    # uvicorn finishes lifespan startup (router + readiness gate) before binding the port
    uvicorn.run(
        "i2a.main:app",
        host="127.0.0.1",
        port=config.port,
        lifespan="on",
        log_level="warning",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
