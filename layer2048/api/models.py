from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

GRID_SIZE = 4


class Direction(StrEnum):
    left = "left"
    right = "right"
    up = "up"
    down = "down"
    layer_up = "layer-up"
    layer_down = "layer-down"

    @property
    def is_layer_navigation(self) -> bool:
        return self in (Direction.layer_up, Direction.layer_down)


class GamePhase(StrEnum):
    ready = "ready"
    # A slide was applied; the tile spawn + status recheck is still outstanding.
    settling = "settling"


class BoardSnapshot(BaseModel):
    """Read-only view of a GameEngine, also used as its stored form."""

    layers: list[list[list[int]]] = Field(..., min_length=1)
    current_layer: int = Field(0, ge=0)
    score: int = Field(0, ge=0)
    won: bool = False
    over: bool = False

    # (layer, row, col) of recently spawned tiles, for spawn animations.
    new_tiles: list[tuple[int, int, int]] = Field(default_factory=list)

    generation: int = Field(0, ge=0)
    phase: GamePhase = GamePhase.ready
    pending_layer: int | None = None

    @field_validator("layers")
    @classmethod
    def _check_grids(cls, layers: list[list[list[int]]]) -> list[list[list[int]]]:
        for grid in layers:
            if len(grid) != GRID_SIZE or any(len(row) != GRID_SIZE for row in grid):
                raise ValueError(f"every layer must be a {GRID_SIZE}x{GRID_SIZE} grid")
            for row in grid:
                for value in row:
                    if value < 0 or (value != 0 and (value < 2 or value & (value - 1))):
                        raise ValueError(f"invalid cell value: {value}")
        return layers

    @model_validator(mode="after")
    def _check_indices(self) -> "BoardSnapshot":
        if self.current_layer >= len(self.layers):
            raise ValueError("current_layer out of range")
        if (self.phase == GamePhase.settling) != (self.pending_layer is not None):
            raise ValueError("pending_layer must be set exactly when phase is settling")
        if self.pending_layer is not None and not 0 <= self.pending_layer < len(self.layers):
            raise ValueError("pending_layer out of range")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def layer_count(self) -> int:
        return len(self.layers)


class GameState(BaseModel):
    game_id: UUID
    created_at: datetime
    last_updated_at: datetime

    # For reproducibility/debugging. Per-action RNGs are derived from seed + actions_applied.
    seed: int
    actions_applied: int = 0

    board: BoardSnapshot


class GameCreateRequest(BaseModel):
    seed: int | None = Field(None, ge=1, le=2**31 - 1)


class MoveRequest(BaseModel):
    direction: Direction
    # Run the deferred spawn + status recheck in the same request.
    settle: bool = True


class SettleRequest(BaseModel):
    generation: int | None = None


class SetLayerRequest(BaseModel):
    index: int


class SpawnRequest(BaseModel):
    layer: int | None = None


class MoveResponse(BaseModel):
    game: GameState
    moved: bool
    score_gained: int
    spawned: tuple[int, int, int] | None = None


class GameListResponse(BaseModel):
    games: list[GameState]
