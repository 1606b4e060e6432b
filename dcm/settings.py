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


@dataclass(frozen=True)
class Settings:
    # Core
    config_path: str = os.getenv("DCM_CONFIG_PATH", "config.yaml")
    db_path: str = os.getenv("DCM_DB_PATH", "dcm.db")
    host: str = os.getenv("DCM_HOST", "0.0.0.0")
    port: int = _env_int("DCM_PORT", 8082)

    # Docker engine deadlines; pulls get their own, longer one.
    docker_timeout_s: int = _env_int("DCM_DOCKER_TIMEOUT_S", 60)
    pull_timeout_s: int = _env_int("DCM_PULL_TIMEOUT_S", 600)

    # Metrics
    stats_workers: int = _env_int("DCM_STATS_WORKERS", 8)
    serve_partial_metrics: bool = _env_bool("DCM_SERVE_PARTIAL_METRICS", False)
    # Off by default: series of removed containers keep their last value.
    prune_stale_metrics: bool = _env_bool("DCM_PRUNE_STALE_METRICS", False)


settings = Settings()
