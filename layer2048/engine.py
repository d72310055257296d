from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from layer2048.api.models import BoardSnapshot, Direction, GamePhase
from layer2048.core.grid import (
    WINNING_TILE,
    Grid,
    copy_grid,
    empty_cells,
    empty_grid,
    has_available_moves,
    has_winning_tile,
    slide_grid,
)
from layer2048.fsm import MovePhaseFSM

logger = logging.getLogger(__name__)

FOUR_PROBABILITY = 0.1

Cell = tuple[int, int, int]


@dataclass(frozen=True, slots=True)
class MoveResult:
    """Outcome of `GameEngine.move`.

    - `moved`: the board changed (only ever true for sliding directions).
    - `score_gained`: sum of the tiles produced by merges in this move.
    - `generation`: pass it back to `settle` to guard against an intervening reset.
    """

    direction: Direction | None
    moved: bool
    score_gained: int
    layer: int
    generation: int


class GameEngine:
    """Layered 2048 game state.

    All state lives on the instance; it is created by `reset()` and only changed
    by the engine operations. Bad input never raises, it is a no-op.
    """

    def __init__(
        self,
        *,
        rng: random.Random | None = None,
        auto_settle: bool = False,
        winning_tile: int = WINNING_TILE,
    ) -> None:
        self._rng = rng or random.Random()
        self.auto_settle = auto_settle
        self.winning_tile = winning_tile

        self.layers: list[Grid] = [empty_grid()]
        self.current_layer = 0
        self.score = 0
        self.won = False
        self.over = False
        self.new_tiles: set[Cell] = set()
        self.generation = 0
        self.pending_layer: int | None = None
        self._fsm = MovePhaseFSM()

    @property
    def layer_count(self) -> int:
        return len(self.layers)

    @property
    def phase(self) -> GamePhase:
        return self._fsm.phase

    def _valid_layer(self, index: int) -> bool:
        return 0 <= index < len(self.layers)

    def reset(self) -> None:
        self.layers = [empty_grid()]
        self.current_layer = 0
        self.score = 0
        self.won = False
        self.over = False
        self.new_tiles = set()
        self.pending_layer = None
        self.generation += 1
        self._fsm.restart()

        self.add_random_tile(0)
        self.add_random_tile(0)
        logger.info("Game reset (generation=%s)", self.generation)

    def add_random_tile(self, layer_index: int | None = None) -> Cell | None:
        """Spawn a 2 (90%) or 4 (10%) on a random empty cell of a layer.

        Defaults to the current layer. Returns the spawned `(layer, row, col)`, or
        None if the layer does not exist or is full.
        """

        target = self.current_layer if layer_index is None else layer_index
        if not self._valid_layer(target):
            logger.debug("Spawn skipped: no layer %s", target)
            return None

        grid = self.layers[target]
        candidates = empty_cells(grid)
        if not candidates:
            return None

        row, col = self._rng.choice(candidates)
        value = 4 if self._rng.random() < FOUR_PROBABILITY else 2

        updated = copy_grid(grid)
        updated[row][col] = value
        self.layers[target] = updated

        cell = (target, row, col)
        self.new_tiles.add(cell)
        logger.debug("Spawned %s at %s", value, cell)
        return cell

    def clear_new_tiles(self) -> None:
        self.new_tiles.clear()

    def add_layer(self) -> int:
        """Append an empty layer. The caller populates it; `current_layer` is unchanged."""

        self.layers.append(empty_grid())
        index = len(self.layers) - 1
        logger.info("Added layer %s (layer_count=%s)", index, len(self.layers))
        return index

    def set_current_layer(self, index: int) -> None:
        if self._valid_layer(index):
            self.current_layer = index

    def move(self, direction: Direction | str) -> MoveResult:
        try:
            direction = Direction(direction)
        except ValueError:
            logger.warning("Ignoring unknown direction %r", direction)
            return MoveResult(None, False, 0, self.current_layer, self.generation)

        if direction == Direction.layer_up:
            if self.current_layer < len(self.layers) - 1:
                self.current_layer += 1
            return MoveResult(direction, False, 0, self.current_layer, self.generation)

        if direction == Direction.layer_down:
            if self.current_layer > 0:
                self.current_layer -= 1
            return MoveResult(direction, False, 0, self.current_layer, self.generation)

        self.new_tiles.clear()

        # Only one settle may be outstanding; its spawn keeps its marker.
        if self.pending_layer is not None:
            self.settle()

        layer = self.current_layer
        new_grid, moved, gained = slide_grid(self.layers[layer], direction)
        result = MoveResult(direction, moved, gained, layer, self.generation)
        if not moved:
            return result

        self.layers[layer] = new_grid
        self.score += gained
        self.pending_layer = layer
        self._fsm.slid()
        logger.debug("Moved %s on layer %s (+%s, score=%s)", direction.value, layer, gained, self.score)

        if self.auto_settle:
            self.settle()
        return result

    def settle(self, generation: int | None = None) -> Cell | None:
        """Run the deferred half of a successful move: spawn one tile, then recheck status.

        No-op if nothing is pending, or if `generation` belongs to a game that has since been reset.
        """

        if self.pending_layer is None:
            return None
        if generation is not None and generation != self.generation:
            logger.debug("Dropping stale settle (generation=%s, current=%s)", generation, self.generation)
            return None

        layer = self.pending_layer
        self.pending_layer = None
        self._fsm.settled()

        spawned = self.add_random_tile(layer)
        self.check_game_status()
        return spawned

    def check_game_status(self) -> None:
        # Only the current layer is evaluated; other layers are never checked.
        grid = self.layers[self.current_layer]
        won = has_winning_tile(grid, self.winning_tile)
        over = not has_available_moves(grid)

        if won and not self.won:
            logger.info("Layer %s reached %s", self.current_layer, self.winning_tile)
        if over and not self.over:
            logger.info("No moves left on layer %s (score=%s)", self.current_layer, self.score)

        self.won = won
        self.over = over

    def snapshot(self) -> BoardSnapshot:
        return BoardSnapshot(
            layers=[copy_grid(g) for g in self.layers],
            current_layer=self.current_layer,
            score=self.score,
            won=self.won,
            over=self.over,
            new_tiles=sorted(self.new_tiles),
            generation=self.generation,
            phase=self.phase,
            pending_layer=self.pending_layer,
        )

    @classmethod
    def from_snapshot(
        cls,
        snapshot: BoardSnapshot,
        *,
        rng: random.Random | None = None,
        auto_settle: bool = False,
    ) -> "GameEngine":
        engine = cls(rng=rng, auto_settle=auto_settle)
        engine.layers = [copy_grid(g) for g in snapshot.layers]
        engine.current_layer = snapshot.current_layer
        engine.score = snapshot.score
        engine.won = snapshot.won
        engine.over = snapshot.over
        engine.new_tiles = set(snapshot.new_tiles)
        engine.generation = snapshot.generation
        engine.pending_layer = snapshot.pending_layer
        engine._fsm = MovePhaseFSM(snapshot.phase)
        return engine
