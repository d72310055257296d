from __future__ import annotations

from collections.abc import Sequence

from layer2048.api.models import GRID_SIZE, Direction

Grid = list[list[int]]

WINNING_TILE = 2048


def empty_grid() -> Grid:
    return [[0] * GRID_SIZE for _ in range(GRID_SIZE)]


def copy_grid(grid: Sequence[Sequence[int]]) -> Grid:
    return [list(row) for row in grid]


def empty_cells(grid: Sequence[Sequence[int]]) -> list[tuple[int, int]]:
    """(row, col) of every empty cell, in row-major order."""

    return [(i, j) for i, row in enumerate(grid) for j, value in enumerate(row) if value == 0]


def slide_line(line: Sequence[int]) -> tuple[list[int], bool, int]:
    """Slide one row/column toward index 0, merging equal neighbours once.

    Returns `(new_line, moved, gained)` where `gained` is the sum of the merged tiles.
    A merged tile is never merged again in the same slide: `[2, 2, 2, 2] -> [4, 4, 0, 0]`.
    """

    original = list(line)
    compacted = [v for v in original if v != 0]

    gained = 0
    # Single pass over the compacted line; a merge zeroes i+1 so it cannot merge again.
    for i in range(len(compacted) - 1):
        if compacted[i] != 0 and compacted[i] == compacted[i + 1]:
            compacted[i] *= 2
            gained += compacted[i]
            compacted[i + 1] = 0

    result = [v for v in compacted if v != 0]
    result.extend([0] * (len(original) - len(result)))
    return result, result != original, gained


def slide_grid(grid: Sequence[Sequence[int]], direction: Direction) -> tuple[Grid, bool, int]:
    """Apply `slide_line` to every row (left/right) or column (up/down).

    The input grid is not mutated; a new grid is always returned.
    """

    if direction.is_layer_navigation:
        raise ValueError(f"Not a sliding direction: {direction.value}")

    horizontal = direction in (Direction.left, Direction.right)
    reverse = direction in (Direction.right, Direction.down)

    out = copy_grid(grid)
    moved = False
    gained = 0

    for k in range(GRID_SIZE):
        if horizontal:
            line = list(grid[k])
        else:
            line = [grid[i][k] for i in range(GRID_SIZE)]

        if reverse:
            line.reverse()
        new_line, line_moved, line_gained = slide_line(line)
        if reverse:
            new_line.reverse()

        if horizontal:
            out[k] = new_line
        else:
            for i in range(GRID_SIZE):
                out[i][k] = new_line[i]

        moved = moved or line_moved
        gained += line_gained

    return out, moved, gained


def has_available_moves(grid: Sequence[Sequence[int]]) -> bool:
    """True if any cell is empty or equals its right or lower neighbour."""

    for i in range(GRID_SIZE):
        for j in range(GRID_SIZE):
            value = grid[i][j]
            if value == 0:
                return True
            if j < GRID_SIZE - 1 and value == grid[i][j + 1]:
                return True
            if i < GRID_SIZE - 1 and value == grid[i + 1][j]:
                return True
    return False


def has_winning_tile(grid: Sequence[Sequence[int]], target: int = WINNING_TILE) -> bool:
    return any(value == target for row in grid for value in row)
