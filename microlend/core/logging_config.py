"""Central logging configuration for the microlend backend."""

import logging
from typing import Union


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_NOISY_LOGGERS = ("google", "urllib3", "grpc")


def setup_logging(level: Union[int, str] = logging.INFO) -> None:
    """Configure the root logger once for consistent application logs."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    if logging.getLogger().handlers:
        logging.getLogger("microlend").setLevel(level)
        return
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Create or retrieve a module logger."""
    return logging.getLogger(name)
