"""
mememarket.config — YAML Configuration Loader
================================================

Reads ``config.yaml`` for **tuning-only** settings (cache TTLs, storage
retry policy, text-generation timeouts).  Secrets and deployment values
(``DATABASE_URL``, ``GEMINI_API_KEY``, CORS origins) come from the
environment / ``.env`` instead.

Usage::

    from mememarket.config import load_config

    cfg = load_config()                 # ./config.yaml, or defaults
    print(cfg.leaderboard_ttl_seconds)  # 60.0
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"
CONFIG_PATH_ENV = "MEMEMARKET_CONFIG"


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MarketConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Every field has a default so a fresh checkout runs without a config
    file.
    """

    app_name: str = "Meme Market"

    # Economy
    starting_credits: int = 1000

    # Leaderboard
    leaderboard_ttl_seconds: float = 60.0
    leaderboard_default_limit: int = 10

    # Record store
    storage_timeout_seconds: float = 10.0
    storage_max_attempts: int = 3
    storage_backoff_seconds: float = 0.2
    storage_max_backoff_seconds: float = 2.0

    # Text generation
    textgen_model: str = "gemini-1.5-flash"
    textgen_timeout_seconds: float = 8.0
    textgen_cache_ttl_seconds: float = 3600.0

    # Realtime
    realtime_max_pending: int = 256

    # Dev
    seed_demo_users: bool = True


_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def _as_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
        return value.strip().lower() in _TRUE
    raise ValueError(f"expected a boolean, got {value!r}")


_CASTS = {
    "app_name": str,
    "starting_credits": int,
    "leaderboard_ttl_seconds": float,
    "leaderboard_default_limit": int,
    "storage_timeout_seconds": float,
    "storage_max_attempts": int,
    "storage_backoff_seconds": float,
    "storage_max_backoff_seconds": float,
    "textgen_model": str,
    "textgen_timeout_seconds": float,
    "textgen_cache_ttl_seconds": float,
    "realtime_max_pending": int,
    "seed_demo_users": _as_bool,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> MarketConfig:
    """Read *path* and return a :class:`MarketConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  When omitted,
        ``$MEMEMARKET_CONFIG`` or ``./config.yaml`` is used, and a missing
        file falls back to the built-in defaults.

    Raises
    ------
    FileNotFoundError
        If an explicitly requested file doesn't exist.
    ValueError
        If a key holds a value that can't be converted to its field type.
    """
    explicit = path is not None or bool(os.getenv(CONFIG_PATH_ENV))
    config_path = Path(path or os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)

    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(
                f"Configuration file not found: {config_path.resolve()}\n"
                "Hint: copy config.yaml.example → config.yaml and edit it."
            )
        logger.info("No %s found — using default configuration", config_path)
        return MarketConfig()

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    known = {f.name for f in fields(MarketConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))

    values = {}
    for key in known & set(raw):
        try:
            values[key] = _CASTS[key](raw[key])
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid value for config key '{key}': {raw[key]!r}") from exc

    return MarketConfig(**values)
