import os
from dotenv import load_dotenv

from concierge.errors import ConfigurationError

load_dotenv()

# === Raw environment values ===

# Path to the JSON/YAML file holding `secret` and the `repositories` map
CONFIG_PATH = os.getenv("CONFIG_PATH", "./config.json")

# Shared webhook secret; overrides `secret` from the config file
SECRET = os.getenv("SECRET")

PORT = os.getenv("PORT")
LISTEN_PATH = os.getenv("LISTEN_PATH")

DEFAULT_PORT = 5000
DEFAULT_LISTEN_PATH = "/"

# GitHub login of the bot; used for the stop directive and self-detection
BOT_NAME = os.getenv("BOT_NAME", "concierge-bot")

GITHUB_API = os.getenv("GITHUB_API", "https://api.github.com").rstrip("/")

HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))

# Stale pull request scan configuration
STALE_SCAN_ENABLED = os.getenv("STALE_SCAN_ENABLED", "true").lower() == "true"
STALE_SCAN_HOUR = int(os.getenv("STALE_SCAN_HOUR", "22"))

DEFAULT_MAX_DAYS_SINCE_UPDATE = 30


def validate_settings() -> None:
    """
    Validate environment-level configuration.

    Raises ConfigurationError if values are missing or invalid.
    """
    if not CONFIG_PATH:
        raise ConfigurationError("CONFIG_PATH is not set")

    if not 0 <= STALE_SCAN_HOUR <= 23:
        raise ConfigurationError(
            f"STALE_SCAN_HOUR must be between 0 and 23, got {STALE_SCAN_HOUR}"
        )

    if not BOT_NAME:
        raise ConfigurationError("BOT_NAME is not set")

    if LISTEN_PATH is not None and not LISTEN_PATH.startswith("/"):
        raise ConfigurationError(f"LISTEN_PATH must start with '/': {LISTEN_PATH}")
