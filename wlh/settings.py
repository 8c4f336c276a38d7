from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Healthz
    healthz_bind_address: str = os.getenv("WLH_HEALTHZ_BIND_ADDRESS", ":11251")
    healthz_name: str = os.getenv("WLH_HEALTHZ_NAME", "wlh")
    # Zero means close immediately on SIGINT/SIGTERM without draining connections.
    shutdown_grace_s: float = _env_float("WLH_SHUTDOWN_GRACE_S", 0.0)
    keepalive_period_s: int = _env_int("WLH_KEEPALIVE_PERIOD_S", 180)
    max_header_bytes: int = _env_int("WLH_MAX_HEADER_BYTES", 1 << 20)
    access_log: bool = _env_bool("WLH_ACCESS_LOG", False)

    # Resource store
    store_db_path: str = os.getenv("WLH_STORE_DB_PATH", "wlh.db")
    api_url: str | None = os.getenv("WLH_API_URL")
    api_token: str | None = os.getenv("WLH_API_TOKEN")
    api_timeout_s: int = _env_int("WLH_API_TIMEOUT_S", 10)

    # Naming
    podgroup_prefix: str = os.getenv("WLH_PODGROUP_PREFIX", "podgroup-")


settings = Settings()
