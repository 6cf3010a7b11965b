"""Per-game lifecycle rules.

AwaitingRandomness -> Active -> Completed, linear. A stuck game may also go
AwaitingRandomness -> Completed with a Refunded outcome; it never had a map.
Functions here return new states and never mutate their input.
"""

from dataclasses import dataclass, replace
from enum import Enum, IntEnum
from typing import Optional, Tuple

from walkie.domain.errors import IllegalMove, MoveRejection
from walkie.domain.grid_rules import BASIS_POINTS, is_adjacent, row_of
from walkie.domain.map_generator import GameMap


class GamePhase(str, Enum):
    awaiting_randomness = "awaiting_randomness"
    active = "active"
    completed = "completed"


class GameOutcome(str, Enum):
    unset = "unset"
    won = "won"
    lost = "lost"
    refunded = "refunded"


class TileType(IntEnum):
    safe = 0
    trap = 1
    reward = 2


@dataclass(frozen=True)
class TileClaim:
    tile_index: int
    tile_type: TileType
    reward: int = 0


@dataclass(frozen=True)
class GameState:
    phase: GamePhase = GamePhase.awaiting_randomness
    token_position: Optional[int] = None
    revealed_tiles: Tuple[int, ...] = ()
    claims: Tuple[TileClaim, ...] = ()
    collected_reward: int = 0
    outcome: GameOutcome = GameOutcome.unset
    payout: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.phase == GamePhase.completed


@dataclass(frozen=True)
class MoveResult:
    state: GameState
    claim: TileClaim
    terminal: bool


def compute_payout(collected_reward: int, house_fee_bps: int) -> int:
    """Winning payout: collected reward minus the house fee."""
    return collected_reward - collected_reward * house_fee_bps // BASIS_POINTS


def classify_tile(game_map: GameMap, tile_index: int) -> Tuple[TileType, int]:
    """Return the tile type and reward amount for a tile of the map."""
    if tile_index in game_map.trap_set:
        return TileType.trap, 0
    if tile_index == game_map.finish_tile:
        return TileType.safe, 0
    if tile_index in game_map.reward_tiles:
        return TileType.reward, game_map.reward_tiles[tile_index]
    return TileType.safe, 0


def activate(state: GameState, game_map: GameMap) -> GameState:
    """Randomness arrived: place the token on the start tile."""
    if state.phase != GamePhase.awaiting_randomness:
        raise IllegalMove(MoveRejection.game_not_active, "Game is not awaiting randomness")
    return replace(
        state,
        phase=GamePhase.active,
        token_position=game_map.start_tile,
        revealed_tiles=(game_map.start_tile,),
    )


def refund(state: GameState, bet_amount: int) -> GameState:
    """Close a game whose randomness never arrived."""
    if state.phase != GamePhase.awaiting_randomness:
        raise IllegalMove(MoveRejection.game_not_active, "Only games awaiting randomness can be refunded")
    return replace(
        state,
        phase=GamePhase.completed,
        outcome=GameOutcome.refunded,
        payout=bet_amount,
    )


def check_move(state: GameState, target: int, grid_width: int) -> None:
    """Raise IllegalMove if the token cannot move to ``target``."""
    if state.phase != GamePhase.active or state.token_position is None:
        raise IllegalMove(MoveRejection.game_not_active, "Game not active")
    if not 0 <= target < grid_width * grid_width:
        raise IllegalMove(MoveRejection.out_of_range, f"Invalid tile index {target}")
    if target in state.revealed_tiles:
        raise IllegalMove(MoveRejection.already_revealed, f"Tile {target} already revealed")
    if not is_adjacent(state.token_position, target, grid_width):
        raise IllegalMove(MoveRejection.not_adjacent, "Not adjacent (4 directions only)")
    if row_of(target, grid_width) > row_of(state.token_position, grid_width):
        raise IllegalMove(MoveRejection.backward, "Cannot move back to a lower row")


def apply_move(
    state: GameState,
    game_map: GameMap,
    target: int,
    grid_width: int,
    house_fee_bps: int,
) -> MoveResult:
    """Move the token onto ``target`` and record the claim.

    Args:
        state (GameState): Current state, must be Active
        game_map (GameMap): The hidden map of this game
        target (int): Requested tile
        grid_width (int): Grid width
        house_fee_bps (int): Fee taken from the collected reward on a win

    Returns:
        MoveResult: New state, the claim for the verifier and whether the game ended
    """
    check_move(state, target, grid_width)
    tile_type, reward = classify_tile(game_map, target)
    claim = TileClaim(tile_index=target, tile_type=tile_type, reward=reward)

    next_state = replace(
        state,
        token_position=target,
        revealed_tiles=state.revealed_tiles + (target,),
        claims=state.claims + (claim,),
        collected_reward=state.collected_reward + reward,
    )
    if tile_type == TileType.trap:
        next_state = replace(
            next_state, phase=GamePhase.completed, outcome=GameOutcome.lost, payout=0
        )
    elif target == game_map.finish_tile:
        next_state = replace(
            next_state,
            phase=GamePhase.completed,
            outcome=GameOutcome.won,
            payout=compute_payout(next_state.collected_reward, house_fee_bps),
        )
    return MoveResult(state=next_state, claim=claim, terminal=next_state.is_terminal)
