from __future__ import annotations

from typing import Any
from uuid import UUID

import redis
from fastapi import APIRouter, Depends, HTTPException, Response, WebSocket, WebSocketDisconnect, status

from layer2048.actions import ActionResult, dispatch_action
from layer2048.api.deps import get_redis, get_settings
from layer2048.api.models import (
    GameCreateRequest,
    GameListResponse,
    GameState,
    MoveRequest,
    MoveResponse,
    SetLayerRequest,
    SettleRequest,
    SpawnRequest,
)
from layer2048.config import Settings
from layer2048.game_store import GameNotFoundError, create_game, delete_game, get_game, list_games
from layer2048.lock import GameBusyError
from layer2048.streams import EventStream, read_events
from layer2048.websocket_hub import hub

router = APIRouter()


def _http_error(e: ValueError) -> HTTPException:
    if isinstance(e, GameNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, GameBusyError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


async def _notify(state: GameState) -> None:
    board = state.board
    await hub.broadcast(
        str(state.game_id),
        {
            "type": "game_updated",
            "game_id": str(state.game_id),
            "generation": board.generation,
            "phase": board.phase.value,
            "score": board.score,
        },
    )


async def _run(
    *,
    r: redis.Redis,
    settings: Settings,
    game_id: UUID,
    action: str,
    payload: dict[str, Any] | None = None,
) -> ActionResult:
    try:
        result = dispatch_action(
            r=r,
            game_id=game_id,
            action=action,
            payload=payload,
            ttl_seconds=settings.game_ttl_seconds,
            lock_ttl_ms=settings.lock_ttl_ms,
        )
    except ValueError as e:
        raise _http_error(e) from e

    await _notify(result.state)
    return result


@router.websocket("/ws/game/{game_id}")
async def game_updates_ws(websocket: WebSocket, game_id: UUID) -> None:
    gid = str(game_id)
    await hub.connect(gid, websocket)

    try:
        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(gid, websocket)
    except Exception:
        await hub.disconnect(gid, websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/game", response_model=GameState, status_code=status.HTTP_201_CREATED)
async def create_game_route(
    payload: GameCreateRequest | None = None,
    r: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> GameState:
    seed = payload.seed if payload is not None else None
    state = create_game(r=r, seed=seed, ttl_seconds=settings.game_ttl_seconds)
    await _notify(state)
    return state


@router.get("/game", response_model=GameListResponse)
async def list_games_route(r: redis.Redis = Depends(get_redis)) -> GameListResponse:
    return GameListResponse(games=list_games(r=r))


@router.get("/game/{game_id}", response_model=GameState)
async def get_game_route(game_id: UUID, r: redis.Redis = Depends(get_redis)) -> GameState:
    state = get_game(r=r, game_id=game_id)
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game not found")
    return state


@router.delete("/game/{game_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_game_route(game_id: UUID, r: redis.Redis = Depends(get_redis)) -> Response:
    try:
        delete_game(r=r, game_id=game_id)
    except ValueError as e:
        raise _http_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/game/{game_id}/reset", response_model=GameState)
async def reset_route(
    game_id: UUID,
    r: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> GameState:
    result = await _run(r=r, settings=settings, game_id=game_id, action="reset")
    return result.state


@router.post("/game/{game_id}/move", response_model=MoveResponse)
async def move_route(
    game_id: UUID,
    payload: MoveRequest,
    r: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> MoveResponse:
    result = await _run(r=r, settings=settings, game_id=game_id, action="move", payload=payload.model_dump())
    move = result.move
    if move is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Move produced no result")
    return MoveResponse(
        game=result.state,
        moved=move.moved,
        score_gained=move.score_gained,
        spawned=result.spawned,
    )


@router.post("/game/{game_id}/settle", response_model=GameState)
async def settle_route(
    game_id: UUID,
    payload: SettleRequest | None = None,
    r: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> GameState:
    body = payload.model_dump() if payload is not None else {}
    result = await _run(r=r, settings=settings, game_id=game_id, action="settle", payload=body)
    return result.state


@router.post("/game/{game_id}/layers", response_model=GameState)
async def add_layer_route(
    game_id: UUID,
    r: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> GameState:
    result = await _run(r=r, settings=settings, game_id=game_id, action="add_layer")
    return result.state


@router.put("/game/{game_id}/layers/current", response_model=GameState)
async def set_layer_route(
    game_id: UUID,
    payload: SetLayerRequest,
    r: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> GameState:
    result = await _run(r=r, settings=settings, game_id=game_id, action="set_layer", payload=payload.model_dump())
    return result.state


@router.post("/game/{game_id}/spawn", response_model=GameState)
async def spawn_route(
    game_id: UUID,
    payload: SpawnRequest | None = None,
    r: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> GameState:
    body = payload.model_dump() if payload is not None else {}
    result = await _run(r=r, settings=settings, game_id=game_id, action="spawn", payload=body)
    return result.state


@router.post("/games/{game_id}/actions/{action}", response_model=GameState)
async def generic_action_route(
    game_id: UUID,
    action: str,
    body: dict[str, Any],
    r: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> GameState:
    result = await _run(r=r, settings=settings, game_id=game_id, action=action, payload=body)
    return result.state


@router.get("/games/{game_id}/events")
async def get_events_route(
    game_id: UUID,
    count: int = 20,
    start: str = "-",
    end: str = "+",
    r: redis.Redis = Depends(get_redis),
) -> dict[str, object]:
    """Read a game's event stream (oldest first)."""

    if count < 1 or count > 200:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="count must be between 1 and 200")

    stream = EventStream(game_id=str(game_id))
    try:
        entries = read_events(r=r, stream=stream, count=count, start=start, end=end)
    except redis.ResponseError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    events = [{"id": eid, "fields": fields} for eid, fields in entries]
    return {"game_id": str(game_id), "stream": stream.key, "events": events}
