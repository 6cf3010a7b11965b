from typing import Callable, List, Optional, Tuple

from walkie.domain.game_rules import TileClaim, classify_tile
from walkie.domain.grid_rules import adjacent_tiles
from walkie.domain.hashing import compute_final_seed, keccak256
from walkie.domain.map_generator import GameMap, GameParameters, generate_map

SALT = keccak256(b"walkie-test-salt")
VRF = keccak256(b"walkie-test-vrf")


def forward_path(game_map: GameMap, width: int) -> Optional[List[int]]:
    """Trap-free route from start to finish that never moves to a lower row.

    Returns the tiles to reveal in order (start excluded), or None.
    """
    failed = set()

    def walk(tile: int) -> Optional[List[int]]:
        if tile in failed:
            return None
        row, col = divmod(tile, width)
        for step in (-1, 1):
            lateral = [tile]
            c = col
            while True:
                current = row * width + c
                if current == game_map.finish_tile:
                    return lateral
                up = current - width
                if row > 0 and up not in game_map.trap_set:
                    rest = walk(up)
                    if rest is not None:
                        return lateral + rest
                c += step
                if not 0 <= c < width or row * width + c in game_map.trap_set:
                    break
                lateral.append(row * width + c)
        failed.add(tile)
        return None

    path = walk(game_map.start_tile)
    return None if path is None else path[1:]


def claims_for(game_map: GameMap, tiles: List[int]) -> List[TileClaim]:
    return [TileClaim(tile, *classify_tile(game_map, tile)) for tile in tiles]


def trap_next_to_start(game_map: GameMap, width: int) -> Optional[int]:
    for tile in adjacent_tiles(game_map.start_tile, width):
        if tile in game_map.trap_set:
            return tile
    return None


def find_vrf(
    salt: bytes,
    game_id: int,
    params: GameParameters,
    predicate: Callable[[GameMap], bool],
    attempts: int = 300,
) -> Tuple[bytes, GameMap]:
    """Pick a VRF output whose map satisfies ``predicate``."""
    for i in range(attempts):
        vrf_output = keccak256(b"vrf-candidate-" + i.to_bytes(4, "big"))
        game_map = generate_map(compute_final_seed(vrf_output, salt, game_id), game_id, params)
        if predicate(game_map):
            return vrf_output, game_map
    raise AssertionError("no VRF output produced a suitable map")


def has_rewarding_route(width: int) -> Callable[[GameMap], bool]:
    def predicate(game_map: GameMap) -> bool:
        path = forward_path(game_map, width)
        return path is not None and any(tile in game_map.reward_tiles for tile in path)

    return predicate


def has_trap_next_to_start(width: int) -> Callable[[GameMap], bool]:
    return lambda game_map: trap_next_to_start(game_map, width) is not None
