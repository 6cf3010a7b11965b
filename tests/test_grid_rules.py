import pytest

from walkie.domain.errors import InvalidGameParameters
from walkie.domain.grid_rules import (
    GRID_CONFIGS,
    adjacent_tiles,
    finish_row_tiles,
    grid_config,
    has_path,
    is_adjacent,
    row_of,
    start_row_tiles,
)


def test_grid_configs():
    assert grid_config(5).trap_count == 3
    assert grid_config(6).size == 36
    assert (grid_config(7).min_reward_count, grid_config(7).max_reward_count) == (10, 14)
    assert sorted(GRID_CONFIGS) == [5, 6, 7]


@pytest.mark.parametrize("width", [0, 4, 8])
def test_unsupported_width_rejected(width):
    with pytest.raises(InvalidGameParameters):
        grid_config(width)


def test_rows():
    assert start_row_tiles(5) == [20, 21, 22, 23, 24]
    assert finish_row_tiles(5) == [0, 1, 2, 3, 4]
    assert row_of(22, 5) == 4
    assert row_of(4, 5) == 0


def test_adjacent_tiles_are_orthogonal():
    assert adjacent_tiles(12, 5) == [7, 17, 11, 13]
    assert adjacent_tiles(0, 5) == [5, 1]
    assert adjacent_tiles(24, 5) == [19, 23]
    # no wrap-around between rows
    assert not is_adjacent(4, 5, 5)
    assert not is_adjacent(6, 12, 5)


def test_has_path_open_grid():
    assert has_path(22, 2, frozenset(), 5)


def test_has_path_blocked_by_wall():
    wall = frozenset({10, 11, 12, 13, 14})
    assert not has_path(22, 2, wall, 5)


def test_has_path_around_traps():
    # 2 is only reachable through 1, 3 is blocked, 7 is blocked
    assert has_path(22, 2, frozenset({3, 7, 12}), 5)


def test_has_path_false_when_endpoint_is_trap():
    assert not has_path(22, 2, frozenset({2}), 5)
    assert not has_path(22, 2, frozenset({22}), 5)


def test_has_path_start_walled_in():
    assert not has_path(20, 2, frozenset({15, 21}), 5)
