"""
Logging setup for the drone process.
"""
import logging
import sys

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure the root logger once and return the drone logger."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=_FORMAT,
        datefmt="%H:%M:%S",
        stream=sys.stdout,
    )
    # aioice/aiortc are very chatty at INFO
    logging.getLogger("aioice").setLevel(logging.WARNING)
    logging.getLogger("aiortc").setLevel(logging.WARNING)

    logger = logging.getLogger("drone_relay")
    logger.info(f"[drone] 📝 Logging initialized at {level.upper()}")
    return logger
