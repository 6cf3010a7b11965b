"""Independent re-derivation of a finished game.

The verifier owns no state. It takes the revealed seeds, the recorded map
nonce and the claim log, recomputes the map from scratch and accepts only if
every claim agrees with it. Settlement, the API and the CLI all call it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import FrozenSet, Optional, Sequence, Tuple

from walkie.domain import map_generator
from walkie.domain.errors import (
    IllegalMove,
    RejectionReason,
    VerificationFailure,
)
from walkie.domain.game_rules import (
    GameOutcome,
    GameState,
    TileClaim,
    TileType,
    activate,
    apply_move,
    classify_tile,
)
from walkie.domain.grid_rules import MAX_NONCE_ATTEMPTS, has_path
from walkie.domain.hashing import commit_salt, compute_final_seed
from walkie.domain.map_generator import GameMap, GameParameters


@dataclass(frozen=True)
class VerificationInput:
    game_id: int
    params: GameParameters
    vrf_output: bytes
    revealed_salt: bytes
    salt_commitment: bytes
    start_tile: int
    finish_tile: int
    map_nonce: int
    claim_log: Sequence[TileClaim]
    house_fee_bps: int
    committed_at: Optional[datetime] = None
    randomness_requested_at: Optional[datetime] = None
    claimed_outcome: Optional[GameOutcome] = None
    claimed_payout: Optional[int] = None


@dataclass(frozen=True)
class VerificationResult:
    accepted: bool
    reason: Optional[RejectionReason] = None
    detail: str = ""
    outcome: GameOutcome = GameOutcome.unset
    payout: int = 0
    final_seed: Optional[bytes] = None


def _reject(reason: RejectionReason, detail: str, final_seed: Optional[bytes] = None) -> VerificationResult:
    logging.error(f"Verification rejected: {reason.value}: {detail}")
    return VerificationResult(accepted=False, reason=reason, detail=detail, final_seed=final_seed)


def _check_commit_ordering(request: VerificationInput) -> Optional[VerificationResult]:
    if request.committed_at is None or request.randomness_requested_at is None:
        return None
    if request.committed_at > request.randomness_requested_at:
        return _reject(
            RejectionReason.protocol_violation,
            "salt was committed after randomness was requested",
        )
    return None


def _check_traps(
    request: VerificationInput, final_seed: bytes
) -> Tuple[FrozenSet[int], Optional[VerificationResult]]:
    """Trap set at the recorded nonce, or the reason that nonce is not the accepted one."""
    params = request.params
    if not 0 <= request.map_nonce < MAX_NONCE_ATTEMPTS:
        return frozenset(), _reject(
            RejectionReason.invalid_nonce,
            f"map nonce {request.map_nonce} outside [0, {MAX_NONCE_ATTEMPTS})",
            final_seed,
        )

    traps = map_generator.recompute_traps(
        final_seed, request.game_id, request.start_tile, request.finish_tile, params, request.map_nonce
    )
    if not has_path(request.start_tile, request.finish_tile, traps, params.grid_width):
        return traps, _reject(
            RejectionReason.connectivity_violated,
            f"trap layout at nonce {request.map_nonce} blocks start from finish",
            final_seed,
        )

    # The accepted nonce must be the first connected one
    for nonce in range(request.map_nonce):
        earlier = map_generator.trap_candidates(
            final_seed, request.game_id, request.start_tile, request.finish_tile, params, nonce
        )
        if has_path(request.start_tile, request.finish_tile, earlier, params.grid_width):
            return traps, _reject(
                RejectionReason.invalid_nonce,
                f"nonce {nonce} already produced a connected layout",
                final_seed,
            )
    return traps, None


def _replay_claims(
    request: VerificationInput, game_map: GameMap, final_seed: bytes
) -> VerificationResult:
    params = request.params
    state = activate(GameState(), game_map)

    for position, claim in enumerate(request.claim_log):
        try:
            result = apply_move(
                state, game_map, claim.tile_index, params.grid_width, request.house_fee_bps
            )
        except IllegalMove as e:
            return _reject(
                RejectionReason.illegal_move,
                f"claim #{position} to tile {claim.tile_index}: {e.reason.value}",
                final_seed,
            )

        actual_type, actual_reward = classify_tile(game_map, claim.tile_index)
        claimed_type = TileType(claim.tile_type)
        if (actual_type == TileType.trap) != (claimed_type == TileType.trap):
            return _reject(
                RejectionReason.trap_mismatch,
                f"tile {claim.tile_index} claimed {claimed_type.name}, map says {actual_type.name}",
                final_seed,
            )
        if claimed_type != actual_type or claim.reward != actual_reward:
            return _reject(
                RejectionReason.reward_mismatch,
                f"tile {claim.tile_index} claimed {claimed_type.name}/{claim.reward}, "
                f"map says {actual_type.name}/{actual_reward}",
                final_seed,
            )
        state = result.state

    if request.claimed_outcome is not None and request.claimed_outcome != state.outcome:
        return _reject(
            RejectionReason.outcome_mismatch,
            f"claimed {request.claimed_outcome.value}, replay gives {state.outcome.value}",
            final_seed,
        )
    if request.claimed_payout is not None and request.claimed_payout != state.payout:
        return _reject(
            RejectionReason.outcome_mismatch,
            f"claimed payout {request.claimed_payout}, replay gives {state.payout}",
            final_seed,
        )
    return VerificationResult(
        accepted=True, outcome=state.outcome, payout=state.payout, final_seed=final_seed
    )


def verify_game(request: VerificationInput) -> VerificationResult:
    """Recompute the map from the revealed inputs and replay the claim log.

    Args:
        request (VerificationInput): Seeds, parameters, recorded nonce and claims

    Returns:
        VerificationResult: ``accepted`` with the recomputed outcome and payout,
        or the first reason the game was rejected. A rejected game pays 0.
    """
    rejected = _check_commit_ordering(request)
    if rejected:
        return rejected

    if commit_salt(request.revealed_salt) != request.salt_commitment:
        return _reject(RejectionReason.salt_mismatch, "keccak256(revealed_salt) != salt_commitment")

    final_seed = compute_final_seed(request.vrf_output, request.revealed_salt, request.game_id)

    start_tile, finish_tile = map_generator.select_start_and_finish(
        final_seed, request.game_id, request.params.grid_width
    )
    if (start_tile, finish_tile) != (request.start_tile, request.finish_tile):
        return _reject(
            RejectionReason.start_finish_mismatch,
            f"claimed start/finish {request.start_tile}/{request.finish_tile}, "
            f"derived {start_tile}/{finish_tile}",
            final_seed,
        )

    traps, rejected = _check_traps(request, final_seed)
    if rejected:
        return rejected

    reward_positions = map_generator.select_reward_tiles(
        final_seed, request.game_id, start_tile, finish_tile, traps, request.params
    )
    game_map = GameMap(
        start_tile=start_tile,
        finish_tile=finish_tile,
        trap_set=traps,
        map_nonce=request.map_nonce,
        reward_tiles={
            tile: map_generator.reward_amount(
                final_seed, request.game_id, request.params.bet_amount, tile
            )
            for tile in reward_positions
        },
    )
    return _replay_claims(request, game_map, final_seed)


def raise_for_result(result: VerificationResult) -> VerificationResult:
    """Raise VerificationFailure for a rejected result, otherwise return it."""
    if not result.accepted:
        raise VerificationFailure(result.reason, result.detail)
    return result
