from __future__ import annotations

from contextlib import contextmanager

import redis


class GameBusyError(ValueError):
    """Another operation on the same game is still running."""


@contextmanager
def game_lock(*, r: redis.Redis, game_id: str, ttl_ms: int = 5_000):
    """Per-game single-writer lock.

    Every engine operation runs inside this so two requests never interleave on one game.
    The TTL bounds how long a crashed holder can block the game.
    """

    key = f"lock:game:{game_id}"
    acquired = r.set(key, "1", nx=True, px=ttl_ms)
    if not acquired:
        raise GameBusyError("Game is busy")
    try:
        yield
    finally:
        r.delete(key)
