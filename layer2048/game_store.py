from __future__ import annotations

import logging
import random
from datetime import UTC, datetime
from uuid import UUID, uuid4

import redis

from layer2048.api.models import GameState
from layer2048.engine import GameEngine
from layer2048.streams import EventStream, delete_stream

logger = logging.getLogger(__name__)

GAMES_SET_KEY = "layer2048:games"
GAME_KEY_PREFIX = "layer2048:game:"  # + {uuid}


class GameNotFoundError(ValueError):
    pass


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _game_key(game_id: UUID) -> str:
    return f"{GAME_KEY_PREFIX}{game_id}"


def rng_for(state: GameState) -> random.Random:
    """Deterministic RNG for the next action on this game.

    Seeding from (seed, actions_applied) replays identically for the same action history.
    """

    return random.Random(f"{state.seed}:{state.actions_applied}")


def engine_for(state: GameState) -> GameEngine:
    return GameEngine.from_snapshot(state.board, rng=rng_for(state))


def save_game(*, r: redis.Redis, state: GameState, ttl_seconds: int | None = None) -> None:
    state.last_updated_at = _now()
    r.set(_game_key(state.game_id), state.model_dump_json(), ex=ttl_seconds)


def get_game(*, r: redis.Redis, game_id: UUID) -> GameState | None:
    raw = r.get(_game_key(game_id))
    if not raw:
        return None
    return GameState.model_validate_json(raw)


def require_game(*, r: redis.Redis, game_id: UUID) -> GameState:
    state = get_game(r=r, game_id=game_id)
    if state is None:
        raise GameNotFoundError("Game not found")
    return state


def create_game(*, r: redis.Redis, seed: int | None = None, ttl_seconds: int | None = None) -> GameState:
    game_id = uuid4()
    now = _now()

    if seed is None:
        seed = random.SystemRandom().randint(1, 2**31 - 1)

    engine = GameEngine(rng=random.Random(f"{seed}:init"))
    engine.reset()

    state = GameState(
        game_id=game_id,
        created_at=now,
        last_updated_at=now,
        seed=seed,
        board=engine.snapshot(),
    )

    r.set(_game_key(game_id), state.model_dump_json(), ex=ttl_seconds)
    r.sadd(GAMES_SET_KEY, str(game_id))
    logger.info("Created game %s (seed=%s)", game_id, seed)
    return state


def delete_game(*, r: redis.Redis, game_id: UUID) -> None:
    removed = r.delete(_game_key(game_id))
    r.srem(GAMES_SET_KEY, str(game_id))
    delete_stream(r=r, stream=EventStream(game_id=str(game_id)))
    if not removed:
        raise GameNotFoundError("Game not found")
    logger.info("Deleted game %s", game_id)


def list_games(*, r: redis.Redis) -> list[GameState]:
    ids = sorted(r.smembers(GAMES_SET_KEY))
    out: list[GameState] = []
    for sid in ids:
        try:
            gid = UUID(sid)
        except ValueError:
            continue
        state = get_game(r=r, game_id=gid)
        if state is None:
            # Record expired; drop it from the index too.
            r.srem(GAMES_SET_KEY, sid)
            continue
        out.append(state)
    out.sort(key=lambda s: s.created_at, reverse=True)
    return out
