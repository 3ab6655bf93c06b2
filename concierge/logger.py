import logging
import os
from typing import Optional


ROOT_LOGGER_NAME = "concierge"
_LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


def _level_from_env() -> int:
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)

    if not root.handlers:
        level = _level_from_env()
        root.setLevel(level)

        handler = logging.StreamHandler()
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        root.addHandler(handler)

        # Prevent double logging if the application root logger is configured
        root.propagate = False

    return root


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Returns the bot's logger, or one of its children.

    Only the `concierge` logger carries a handler. Module loggers such as
    `concierge.github.api` propagate to it, so `LOG_LEVEL` and the format
    are set in one place.
    """
    root = _configure_root()

    if not name or name == ROOT_LOGGER_NAME:
        return root

    if not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    return logging.getLogger(name)
