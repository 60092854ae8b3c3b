"""
Configuration module for the Singles In Your Area advert responder.

This module centralizes all configuration values and supports environment variable overrides.
Per-advert settings (template image, text box, colors) live in a TOML adverts file,
see config.example.toml for the accepted keys.
"""

import logging
import os
import sys
import time
import tomllib
from typing import Any, Dict, List, Optional

from errors import ConfigError

APP_NAME = "singles-in-your-area"
APP_VERSION = "0.3.3"

# ========= GEOLOCATION CONFIGURATION =========

GEOIP_DB_PATH = os.getenv("GEOIP_DB_PATH", "GeoLite2-City.mmdb")


def _get_locales(env_var: str, default: List[str]) -> List[str]:
    """Get the preferred place-name locales from environment or use defaults."""
    env_value = os.getenv(env_var)
    if env_value:
        # Split by comma and strip whitespace
        return [loc.strip() for loc in env_value.split(",") if loc.strip()]
    return default


GEOIP_LOCALES = _get_locales("GEOIP_LOCALES", ["en"])

# Label drawn when the client's city cannot be resolved
FALLBACK_LABEL = os.getenv("FALLBACK_LABEL", "your area")

# ========= TEMPLATE CONFIGURATION =========

ADVERTS_CONFIG = os.getenv("ADVERTS_CONFIG", "config.toml")

# "fixed", "round_robin" or "random"
SELECTION_POLICY = os.getenv("SELECTION_POLICY", "fixed")
SELECTION_SEED: Optional[int] = (
    int(os.environ["SELECTION_SEED"]) if os.getenv("SELECTION_SEED") else None
)
# Template used by the "fixed" policy (default: first in the adverts file)
DEFAULT_TEMPLATE = os.getenv("DEFAULT_TEMPLATE") or None

# ========= FONT CONFIGURATION =========

# Empty means Pillow's bundled font
FONT_PATH = os.getenv("FONT_PATH", "")
PLACEHOLDER_GLYPH = os.getenv("PLACEHOLDER_GLYPH", "?")

# ========= OUTPUT CONFIGURATION =========

# Smaller PNGs at the cost of extra CPU per request
PNG_OPTIMIZE = os.getenv("PNG_OPTIMIZE", "false").lower() in ("1", "true", "yes")

# ========= SERVER CONFIGURATION =========

SERVER_HOST = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.getenv("SERVER_PORT", "3035"))

# e.g. "X-Forwarded-For" when running behind a reverse proxy
TRUSTED_FORWARD_HEADER = os.getenv("TRUSTED_FORWARD_HEADER") or None

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def load_adverts(path: str) -> Dict[str, Dict[str, Any]]:
    """
    Read the adverts file.

    Args:
        path: Path to a TOML file with one table per advert

    Returns:
        Dict mapping advert name to its raw definition, in file order

    Raises:
        ConfigError: If the file is missing, malformed or defines no adverts
    """
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"adverts file not found: {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"failed to parse adverts file {path}: {e}") from e

    adverts = {name: entry for name, entry in data.items() if isinstance(entry, dict)}
    if not adverts:
        raise ConfigError(f"no adverts defined in {path}")
    return adverts


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure the root logger once.

    Level precedence: explicit `level` arg, then LOG_LEVEL, then INFO.
    """
    root = logging.getLogger()
    if getattr(root, "_siya_configured", False):
        return

    lvl = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)

    formatter = logging.Formatter(
        "[%(asctime)s.%(msecs)03dZ] %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    # Timestamps in UTC
    formatter.converter = time.gmtime

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(lvl)
    root._siya_configured = True  # type: ignore[attr-defined]
