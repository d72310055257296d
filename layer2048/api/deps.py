from __future__ import annotations

from collections.abc import Generator

import redis

from layer2048.config import Settings, settings_from_env
from layer2048.infra.redis_client import create_redis


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        client.close()


def get_settings() -> Settings:
    return settings_from_env()
