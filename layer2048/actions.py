from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal, get_args
from uuid import UUID

import redis

from layer2048.api.models import GameState, MoveRequest, SetLayerRequest, SettleRequest, SpawnRequest
from layer2048.engine import Cell, GameEngine, MoveResult
from layer2048.game_store import GameNotFoundError, engine_for, get_game, save_game
from layer2048.lock import game_lock
from layer2048.streams import EventStream, publish_event

logger = logging.getLogger(__name__)

ActionName = Literal["reset", "move", "settle", "add_layer", "set_layer", "spawn"]
ACTION_NAMES: frozenset[str] = frozenset(get_args(ActionName))


@dataclass(frozen=True, slots=True)
class ActionResult:
    state: GameState
    event_id: str
    move: MoveResult | None = None
    spawned: Cell | None = None


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def _cell_str(cell: Cell | None) -> str:
    return "" if cell is None else ",".join(str(v) for v in cell)


def _apply(
    *,
    engine: GameEngine,
    action: ActionName,
    payload: dict[str, Any],
) -> tuple[MoveResult | None, Cell | None]:
    """Run one engine operation. Payloads are validated with the request models."""

    if action == "reset":
        engine.reset()
        return None, None

    if action == "move":
        req = MoveRequest.model_validate(payload)
        result = engine.move(req.direction)
        spawned = engine.settle(result.generation) if req.settle and result.moved else None
        return result, spawned

    if action == "settle":
        req_settle = SettleRequest.model_validate(payload)
        return None, engine.settle(req_settle.generation)

    if action == "add_layer":
        # A new layer starts with two tiles, like a fresh game.
        index = engine.add_layer()
        engine.add_random_tile(index)
        spawned = engine.add_random_tile(index)
        return None, spawned

    if action == "set_layer":
        req_layer = SetLayerRequest.model_validate(payload)
        engine.set_current_layer(req_layer.index)
        return None, None

    if action == "spawn":
        req_spawn = SpawnRequest.model_validate(payload)
        return None, engine.add_random_tile(req_spawn.layer)

    raise ValueError(f"Unknown action: {action}")


def _event_fields(*, state: GameState, action: str, move: MoveResult | None, spawned: Cell | None) -> dict[str, str]:
    board = state.board
    fields = {
        "type": "action_applied",
        "action": action,
        "game_id": str(state.game_id),
        "generation": str(board.generation),
        "phase": board.phase.value,
        "current_layer": str(board.current_layer),
        "layer_count": str(board.layer_count),
        "score": str(board.score),
        "won": str(board.won).lower(),
        "over": str(board.over).lower(),
        "spawned": _cell_str(spawned),
        "ts": _now_iso(),
    }
    if move is not None:
        fields["direction"] = move.direction.value if move.direction is not None else ""
        fields["moved"] = str(move.moved).lower()
        fields["score_gained"] = str(move.score_gained)
    return fields


def dispatch_action(
    *,
    r: redis.Redis,
    game_id: UUID,
    action: str,
    payload: dict[str, Any] | None = None,
    ttl_seconds: int | None = None,
    lock_ttl_ms: int = 5_000,
) -> ActionResult:
    """Entry point for every state change on a stored game.

    Applies an action by:
    - acquiring the per-game lock
    - loading the game and rebuilding its engine
    - running the engine operation
    - persisting the new snapshot
    - appending an event to the game's stream
    """

    if action not in ACTION_NAMES:
        raise ValueError(f"Unknown action: {action}")
    act: ActionName = action  # type: ignore[assignment]

    with game_lock(r=r, game_id=str(game_id), ttl_ms=lock_ttl_ms):
        state = get_game(r=r, game_id=game_id)
        if state is None:
            raise GameNotFoundError("Game not found")

        engine = engine_for(state)
        move, spawned = _apply(engine=engine, action=act, payload=payload or {})

        state.board = engine.snapshot()
        state.actions_applied += 1
        save_game(r=r, state=state, ttl_seconds=ttl_seconds)

        event_id = publish_event(
            r=r,
            stream=EventStream(game_id=str(game_id)),
            fields=_event_fields(state=state, action=act, move=move, spawned=spawned),
            ttl_seconds=ttl_seconds,
        )

    logger.info(
        "Applied %s to game %s (score=%s, layer=%s/%s)",
        act,
        game_id,
        state.board.score,
        state.board.current_layer,
        state.board.layer_count,
    )
    return ActionResult(state=state, event_id=event_id, move=move, spawned=spawned)
