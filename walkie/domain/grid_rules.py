"""Grid rules that are independent from HTTP and DB.

Tiles are indexed row-major: ``index = row * width + col``. Row 0 is the top
(finish) row and row ``width - 1`` is the bottom (start) row, so moving
forward means moving to a smaller row number.
"""

from collections import deque
from dataclasses import dataclass
from typing import AbstractSet, List

from walkie.domain.errors import InvalidGameParameters

MAX_NONCE_ATTEMPTS = 100
BASIS_POINTS = 10000


@dataclass(frozen=True)
class GridConfig:
    width: int
    trap_count: int
    min_reward_count: int
    max_reward_count: int

    @property
    def size(self) -> int:
        return self.width * self.width


GRID_CONFIGS = {
    5: GridConfig(width=5, trap_count=3, min_reward_count=5, max_reward_count=8),
    6: GridConfig(width=6, trap_count=5, min_reward_count=7, max_reward_count=10),
    7: GridConfig(width=7, trap_count=7, min_reward_count=10, max_reward_count=14),
}

SUPPORTED_WIDTHS = tuple(sorted(GRID_CONFIGS))


def grid_config(width: int) -> GridConfig:
    """Return the fixed configuration for a grid width."""
    config = GRID_CONFIGS.get(width)
    if config is None:
        raise InvalidGameParameters(
            f"Grid width must be one of {SUPPORTED_WIDTHS}, got {width}"
        )
    return config


def row_of(tile: int, width: int) -> int:
    return tile // width


def start_row_tiles(width: int) -> List[int]:
    """Bottom row, where the token starts."""
    total = width * width
    return list(range(total - width, total))


def finish_row_tiles(width: int) -> List[int]:
    """Top row, where the finish tile sits."""
    return list(range(width))


def adjacent_tiles(tile: int, width: int) -> List[int]:
    """Orthogonal neighbours in up, down, left, right order."""
    x = tile % width
    y = tile // width
    adjacent = []
    if y > 0:
        adjacent.append(tile - width)
    if y < width - 1:
        adjacent.append(tile + width)
    if x > 0:
        adjacent.append(tile - 1)
    if x < width - 1:
        adjacent.append(tile + 1)
    return adjacent


def is_adjacent(source: int, target: int, width: int) -> bool:
    return target in adjacent_tiles(source, width)


def has_path(start: int, finish: int, traps: AbstractSet[int], width: int) -> bool:
    """Breadth-first search from start to finish treating traps as walls.

    Args:
        start (int): Start tile index
        finish (int): Finish tile index
        traps (AbstractSet[int]): Impassable tiles
        width (int): Grid width

    Returns:
        bool: True if a trap-avoiding orthogonal path exists
    """
    if start in traps or finish in traps:
        return False

    visited = {start}
    queue = deque([start])
    while queue:
        current = queue.popleft()
        if current == finish:
            return True
        for neighbor in adjacent_tiles(current, width):
            if neighbor not in visited and neighbor not in traps:
                visited.add(neighbor)
                queue.append(neighbor)
    return False
