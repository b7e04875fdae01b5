"""Read fallback configuration values from the repository's .env.defaults.

Environment variables always win; this file only supplies values for keys the
environment leaves unset, so a checkout can carry sane non-secret defaults
(target mode, bypass domain, local server command) without exporting them.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Dict


def _defaults_path() -> Path:
    explicit = os.getenv("E2E_ENV_DEFAULTS")
    if explicit:
        return Path(explicit)
    return Path(__file__).resolve().parents[2] / ".env.defaults"


@lru_cache(maxsize=1)
def _load_env_defaults() -> Dict[str, str]:
    env_defaults = _defaults_path()
    if not env_defaults.exists():
        return {}

    defaults: Dict[str, str] = {}
    for raw in env_defaults.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        value = value.strip()
        if len(value) >= 2 and value[0] in ('"', "'") and value[-1] == value[0]:
            value = value[1:-1]
        defaults[key.strip()] = value
    return defaults


def get_env_default(key: str) -> str | None:
    return _load_env_defaults().get(key)


def env(key: str, default: str | None = None) -> str | None:
    """Environment value, then .env.defaults value, then ``default``.

    Empty strings count as unset.
    """
    value = os.getenv(key)
    if value:
        return value
    value = get_env_default(key)
    if value:
        return value
    return default


def reload_env_defaults() -> None:
    """Drop the cached .env.defaults contents (used by tests)."""
    _load_env_defaults.cache_clear()
