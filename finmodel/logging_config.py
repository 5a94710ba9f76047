"""
Application-wide logging setup.

Every module asks for a named logger (`logging.getLogger("finmodel.<module>")`);
`configure_logging` is called once from the FastAPI lifespan and from
`seed_data.py`. Format: timestamp | level | logger | message.
"""

import logging

from .config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Configure the root logger. Unknown level names fall back to INFO."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    logging.getLogger("finmodel").info(f"Logging initialized with level {level}")
