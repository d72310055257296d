from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import cast

import redis

# Older entries are trimmed once a game's stream grows past this.
EVENT_STREAM_MAXLEN = 1_000


@dataclass(frozen=True, slots=True)
class EventStream:
    game_id: str

    @property
    def key(self) -> str:
        return f"events:{self.game_id}"


def publish_event(
    *,
    r: redis.Redis,
    stream: EventStream,
    fields: Mapping[str, str],
    maxlen: int = EVENT_STREAM_MAXLEN,
    ttl_seconds: int | None = None,
) -> str:
    """Append an entry to a game's event stream.

    The stream is capped at roughly `maxlen` entries and, when `ttl_seconds` is given,
    expires together with the game record.
    """

    # redis-py stubs expect field/value unions; we only ever write string fields/values.
    stream_id = r.xadd(stream.key, {str(k): str(v) for k, v in fields.items()}, maxlen=maxlen, approximate=True)
    if ttl_seconds is not None:
        r.expire(stream.key, ttl_seconds)
    return cast(str, stream_id)


def read_events(*, r: redis.Redis, stream: EventStream, count: int = 20, start: str = "-", end: str = "+") -> list[tuple[str, dict[str, str]]]:
    return r.xrange(stream.key, min=start, max=end, count=count)


def delete_stream(*, r: redis.Redis, stream: EventStream) -> None:
    r.delete(stream.key)
