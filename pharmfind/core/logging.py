"""Logging configuration."""
import logging
import sys
from typing import Optional

from pharmfind.core.config import settings

# Libraries that log every request or statement at INFO
QUIET_LOGGERS = ("httpx", "sqlalchemy.engine", "aiosqlite", "asyncio")


def setup_logging(level: Optional[str] = None) -> None:
    """Configure application logging at the given level (settings.log_level by default)."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
