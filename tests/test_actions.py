from __future__ import annotations

from uuid import uuid4

import fakeredis
import pytest
from pydantic import ValidationError

from layer2048.actions import dispatch_action
from layer2048.api.models import GamePhase
from layer2048.game_store import GameNotFoundError, create_game, get_game, save_game
from layer2048.lock import GameBusyError, game_lock


def _tile_count(grid: list[list[int]]) -> int:
    return sum(1 for row in grid for v in row if v)


def test_move_with_settle_spawns_and_persists(redis_client: fakeredis.FakeRedis) -> None:
    state = create_game(r=redis_client, seed=11)
    state.board.layers[0] = [[0, 2, 0, 2], [0] * 4, [0] * 4, [0] * 4]
    save_game(r=redis_client, state=state)

    result = dispatch_action(r=redis_client, game_id=state.game_id, action="move", payload={"direction": "left"})

    assert result.move is not None
    assert result.move.moved is True
    assert result.move.score_gained == 4
    assert result.spawned is not None

    stored = get_game(r=redis_client, game_id=state.game_id)
    assert stored is not None
    assert stored.actions_applied == 1
    assert stored.board.score == 4
    assert stored.board.layers[0][0][0] == 4
    assert _tile_count(stored.board.layers[0]) == 2
    assert stored.board.phase == GamePhase.ready
    assert stored.board.new_tiles == [result.spawned]


def test_move_without_settle_leaves_pending_then_settle(redis_client: fakeredis.FakeRedis) -> None:
    state = create_game(r=redis_client, seed=12)
    state.board.layers[0] = [[0, 0, 0, 2], [0] * 4, [0] * 4, [0] * 4]
    save_game(r=redis_client, state=state)

    moved = dispatch_action(
        r=redis_client,
        game_id=state.game_id,
        action="move",
        payload={"direction": "left", "settle": False},
    )
    assert moved.state.board.phase == GamePhase.settling
    assert moved.state.board.pending_layer == 0
    assert _tile_count(moved.state.board.layers[0]) == 1

    settled = dispatch_action(
        r=redis_client,
        game_id=state.game_id,
        action="settle",
        payload={"generation": moved.state.board.generation},
    )
    assert settled.spawned is not None
    assert settled.state.board.phase == GamePhase.ready
    assert _tile_count(settled.state.board.layers[0]) == 2


def test_settle_after_reset_is_dropped(redis_client: fakeredis.FakeRedis) -> None:
    state = create_game(r=redis_client, seed=13)
    state.board.layers[0] = [[0, 0, 0, 2], [0] * 4, [0] * 4, [0] * 4]
    save_game(r=redis_client, state=state)

    moved = dispatch_action(
        r=redis_client, game_id=state.game_id, action="move", payload={"direction": "left", "settle": False}
    )
    stale_generation = moved.state.board.generation

    reset = dispatch_action(r=redis_client, game_id=state.game_id, action="reset")
    assert reset.state.board.generation == stale_generation + 1

    settled = dispatch_action(
        r=redis_client, game_id=state.game_id, action="settle", payload={"generation": stale_generation}
    )
    assert settled.spawned is None
    assert settled.state.board.layers == reset.state.board.layers


def test_add_layer_spawns_two_tiles_on_new_layer(redis_client: fakeredis.FakeRedis) -> None:
    state = create_game(r=redis_client, seed=14)

    result = dispatch_action(r=redis_client, game_id=state.game_id, action="add_layer")

    board = result.state.board
    assert board.layer_count == 2
    assert board.current_layer == 0
    assert _tile_count(board.layers[1]) == 2
    assert board.layers[0] == state.board.layers[0]


def test_set_layer_and_spawn(redis_client: fakeredis.FakeRedis) -> None:
    state = create_game(r=redis_client, seed=15)
    dispatch_action(r=redis_client, game_id=state.game_id, action="add_layer")

    out_of_range = dispatch_action(r=redis_client, game_id=state.game_id, action="set_layer", payload={"index": 5})
    assert out_of_range.state.board.current_layer == 0

    switched = dispatch_action(r=redis_client, game_id=state.game_id, action="set_layer", payload={"index": 1})
    assert switched.state.board.current_layer == 1

    spawned = dispatch_action(r=redis_client, game_id=state.game_id, action="spawn", payload={})
    assert spawned.spawned is not None
    assert spawned.spawned[0] == 1
    assert _tile_count(spawned.state.board.layers[1]) == 3

    missing_layer = dispatch_action(r=redis_client, game_id=state.game_id, action="spawn", payload={"layer": 9})
    assert missing_layer.spawned is None


def test_dispatch_publishes_event(redis_client: fakeredis.FakeRedis) -> None:
    state = create_game(r=redis_client, seed=16)
    result = dispatch_action(r=redis_client, game_id=state.game_id, action="move", payload={"direction": "layer-up"})

    entries = redis_client.xrange(f"events:{state.game_id}")
    assert len(entries) == 1
    event_id, fields = entries[0]
    assert event_id == result.event_id
    assert fields["type"] == "action_applied"
    assert fields["action"] == "move"
    assert fields["direction"] == "layer-up"
    assert fields["moved"] == "false"
    assert fields["layer_count"] == "1"


def test_dispatch_unknown_action(redis_client: fakeredis.FakeRedis) -> None:
    state = create_game(r=redis_client)
    with pytest.raises(ValueError) as e:
        dispatch_action(r=redis_client, game_id=state.game_id, action="undo")
    assert "Unknown action" in str(e.value)


def test_dispatch_invalid_payload(redis_client: fakeredis.FakeRedis) -> None:
    state = create_game(r=redis_client)
    with pytest.raises(ValidationError):
        dispatch_action(r=redis_client, game_id=state.game_id, action="move", payload={"direction": "diagonal"})


def test_dispatch_missing_game(redis_client: fakeredis.FakeRedis) -> None:
    with pytest.raises(GameNotFoundError):
        dispatch_action(r=redis_client, game_id=uuid4(), action="reset")


def test_dispatch_rejects_concurrent_writer(redis_client: fakeredis.FakeRedis) -> None:
    state = create_game(r=redis_client)

    with game_lock(r=redis_client, game_id=str(state.game_id)):
        with pytest.raises(GameBusyError):
            dispatch_action(r=redis_client, game_id=state.game_id, action="reset")

    # Lock released: the action goes through now.
    result = dispatch_action(r=redis_client, game_id=state.game_id, action="reset")
    assert result.state.actions_applied == 1


def test_actions_are_reproducible_for_same_history(redis_client: fakeredis.FakeRedis) -> None:
    a = create_game(r=redis_client, seed=99)
    b = create_game(r=redis_client, seed=99)

    for gid in (a.game_id, b.game_id):
        for direction in ("left", "up", "right", "down"):
            dispatch_action(r=redis_client, game_id=gid, action="move", payload={"direction": direction})

    sa = get_game(r=redis_client, game_id=a.game_id)
    sb = get_game(r=redis_client, game_id=b.game_id)
    assert sa is not None and sb is not None
    assert sa.board.layers == sb.board.layers
    assert sa.board.score == sb.board.score
