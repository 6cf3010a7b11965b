"""Deterministic map derivation.

Everything here is a pure function of (final_seed, game_id, GameParameters).
Each draw hashes its own domain tag and loop index, so a third party holding
only the final seed and game id can recompute any single value.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Sequence, Tuple

from walkie.domain.errors import InvalidGameParameters, MapGenerationExhausted
from walkie.domain.grid_rules import (
    BASIS_POINTS,
    MAX_NONCE_ATTEMPTS,
    finish_row_tiles,
    grid_config,
    has_path,
    start_row_tiles,
)
from walkie.domain.hashing import derive

# Multiplier per tier in basis points (1000 = 0.1x) and the cumulative roll
# thresholds out of 10000 that select each tier.
REWARD_TIERS = (1000, 2000, 5000, 10000, 20000, 50000, 100000)
TIER_THRESHOLDS = (3500, 6000, 8000, 9200, 9700, 9950, 10000)


@dataclass(frozen=True)
class GameParameters:
    grid_width: int
    trap_count: int
    min_reward_count: int
    max_reward_count: int
    bet_amount: int

    @classmethod
    def for_grid(cls, grid_width: int, bet_amount: int) -> "GameParameters":
        """Build the parameters fixed for a grid width."""
        config = grid_config(grid_width)
        if bet_amount < 0:
            raise InvalidGameParameters("bet_amount must be >= 0")
        return cls(
            grid_width=grid_width,
            trap_count=config.trap_count,
            min_reward_count=config.min_reward_count,
            max_reward_count=config.max_reward_count,
            bet_amount=bet_amount,
        )

    @property
    def tile_count(self) -> int:
        return self.grid_width * self.grid_width


@dataclass(frozen=True)
class GameMap:
    start_tile: int
    finish_tile: int
    trap_set: FrozenSet[int]
    map_nonce: int
    reward_tiles: Dict[int, int] = field(default_factory=dict)  # tile -> amount
    reward_tiers: Dict[int, int] = field(default_factory=dict)  # tile -> tier index


def select_start_and_finish(final_seed: bytes, game_id: int, grid_width: int) -> Tuple[int, int]:
    start_tiles = start_row_tiles(grid_width)
    finish_tiles = finish_row_tiles(grid_width)
    start_tile = start_tiles[derive(final_seed, game_id, "start") % len(start_tiles)]
    finish_tile = finish_tiles[derive(final_seed, game_id, "finish") % len(finish_tiles)]
    return start_tile, finish_tile


def _partial_shuffle(
    available: List[int], draws: int, final_seed: bytes, game_id: int, tag: str, *prefix: int
) -> List[int]:
    """Fisher-Yates truncated after ``draws`` swaps; returns the shuffled prefix."""
    for i in range(draws):
        j = i + derive(final_seed, game_id, tag, *prefix, i) % (len(available) - i)
        available[i], available[j] = available[j], available[i]
    return available[:draws]


def trap_candidates(
    final_seed: bytes,
    game_id: int,
    start_tile: int,
    finish_tile: int,
    params: GameParameters,
    nonce: int,
) -> FrozenSet[int]:
    """Trap layout proposed by one shuffle attempt (not yet checked for connectivity)."""
    available = [
        tile for tile in range(params.tile_count) if tile not in (start_tile, finish_tile)
    ]
    if params.trap_count > len(available):
        raise InvalidGameParameters("trap_count exceeds the number of free tiles")
    return frozenset(
        _partial_shuffle(available, params.trap_count, final_seed, game_id, "bomb", nonce)
    )


def place_traps(
    final_seed: bytes,
    game_id: int,
    start_tile: int,
    finish_tile: int,
    params: GameParameters,
) -> Tuple[FrozenSet[int], int]:
    """Return the first connected trap layout and the nonce that produced it.

    Raises:
        MapGenerationExhausted: No attempt within MAX_NONCE_ATTEMPTS left a path
    """
    for nonce in range(MAX_NONCE_ATTEMPTS):
        traps = trap_candidates(final_seed, game_id, start_tile, finish_tile, params, nonce)
        if has_path(start_tile, finish_tile, traps, params.grid_width):
            return traps, nonce
    raise MapGenerationExhausted(
        f"No connected trap layout for game {game_id} after {MAX_NONCE_ATTEMPTS} attempts"
    )


def recompute_traps(
    final_seed: bytes,
    game_id: int,
    start_tile: int,
    finish_tile: int,
    params: GameParameters,
    nonce: int,
) -> FrozenSet[int]:
    """Reproduce the trap layout for a recorded nonce."""
    if not 0 <= nonce < MAX_NONCE_ATTEMPTS:
        raise ValueError(f"map nonce must be in [0, {MAX_NONCE_ATTEMPTS}), got {nonce}")
    return trap_candidates(final_seed, game_id, start_tile, finish_tile, params, nonce)


def reward_count(final_seed: bytes, game_id: int, params: GameParameters) -> int:
    spread = params.max_reward_count - params.min_reward_count + 1
    return params.min_reward_count + derive(final_seed, game_id, "rewardCount") % spread


def select_reward_tiles(
    final_seed: bytes,
    game_id: int,
    start_tile: int,
    finish_tile: int,
    traps: FrozenSet[int],
    params: GameParameters,
) -> List[int]:
    available = [
        tile
        for tile in range(params.tile_count)
        if tile not in (start_tile, finish_tile) and tile not in traps
    ]
    count = min(reward_count(final_seed, game_id, params), len(available))
    return _partial_shuffle(available, count, final_seed, game_id, "rewardPos")


def reward_tier(final_seed: bytes, game_id: int, tile_index: int) -> int:
    """Index into REWARD_TIERS for a reward tile."""
    roll = derive(final_seed, game_id, "reward", tile_index) % BASIS_POINTS
    for tier, threshold in enumerate(TIER_THRESHOLDS):
        if roll < threshold:
            return tier
    return len(REWARD_TIERS) - 1


def reward_amount(final_seed: bytes, game_id: int, bet_amount: int, tile_index: int) -> int:
    multiplier = REWARD_TIERS[reward_tier(final_seed, game_id, tile_index)]
    return bet_amount * multiplier // BASIS_POINTS


def generate_map(final_seed: bytes, game_id: int, params: GameParameters) -> GameMap:
    """Derive the full map for a game.

    Args:
        final_seed (bytes): keccak256(vrf_output || salt || game_id || version)
        game_id (int): Game identifier (uint64)
        params (GameParameters): Grid width, trap count, reward range and bet

    Returns:
        GameMap: Start, finish, traps, rewards and the accepted nonce
    """
    start_tile, finish_tile = select_start_and_finish(final_seed, game_id, params.grid_width)
    traps, nonce = place_traps(final_seed, game_id, start_tile, finish_tile, params)
    reward_positions = select_reward_tiles(
        final_seed, game_id, start_tile, finish_tile, traps, params
    )
    tiers = {tile: reward_tier(final_seed, game_id, tile) for tile in reward_positions}
    amounts = {
        tile: params.bet_amount * REWARD_TIERS[tier] // BASIS_POINTS
        for tile, tier in tiers.items()
    }
    return GameMap(
        start_tile=start_tile,
        finish_tile=finish_tile,
        trap_set=traps,
        map_nonce=nonce,
        reward_tiles=amounts,
        reward_tiers=tiers,
    )


def missed_rewards(game_map: GameMap, revealed_tiles: Sequence[int]) -> Dict[int, int]:
    """Reward tiles the player never stepped on."""
    revealed = set(revealed_tiles)
    return {
        tile: amount
        for tile, amount in sorted(game_map.reward_tiles.items())
        if tile not in revealed
    }
