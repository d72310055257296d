from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Settings:
    redis_url: str
    # Games are session-scoped: records expire after this many idle seconds.
    game_ttl_seconds: int
    lock_ttl_ms: int
    # Advertised to clients that run the settle step themselves after animating a slide.
    settle_delay_ms: int
    log_level: str


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from e


def settings_from_env() -> Settings:
    return Settings(
        redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
        game_ttl_seconds=_int_env("LAYER2048_GAME_TTL_SECONDS", 86_400),
        lock_ttl_ms=_int_env("LAYER2048_LOCK_TTL_MS", 5_000),
        settle_delay_ms=_int_env("LAYER2048_SETTLE_DELAY_MS", 150),
        log_level=os.environ.get("LAYER2048_LOG_LEVEL", "INFO").upper(),
    )
