from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from walkie.domain.errors import RejectionReason, VerificationFailure
from walkie.domain.game_rules import (
    GameOutcome,
    GameState,
    TileClaim,
    TileType,
    activate,
    apply_move,
    classify_tile,
    compute_payout,
)
from walkie.domain.grid_rules import adjacent_tiles, has_path
from walkie.domain.hashing import commit_salt, compute_final_seed, keccak256
from walkie.domain import map_generator
from walkie.domain.map_generator import GameParameters, generate_map, recompute_traps
from walkie.domain.verifier import VerificationInput, raise_for_result, verify_game
from tests.helpers import (
    SALT,
    claims_for,
    find_vrf,
    forward_path,
    has_rewarding_route,
    has_trap_next_to_start,
    trap_next_to_start,
)

GAME_ID = 42
WIDTH = 5
FEE_BPS = 500
PARAMS = GameParameters.for_grid(WIDTH, 10**18)


def _input(vrf_output, game_map, claim_log, **overrides) -> VerificationInput:
    fields = dict(
        game_id=GAME_ID,
        params=PARAMS,
        vrf_output=vrf_output,
        revealed_salt=SALT,
        salt_commitment=commit_salt(SALT),
        start_tile=game_map.start_tile,
        finish_tile=game_map.finish_tile,
        map_nonce=game_map.map_nonce,
        claim_log=claim_log,
        house_fee_bps=FEE_BPS,
    )
    fields.update(overrides)
    return VerificationInput(**fields)


@pytest.fixture(scope="module")
def winning_game():
    vrf_output, game_map = find_vrf(SALT, GAME_ID, PARAMS, has_rewarding_route(WIDTH))
    path = forward_path(game_map, WIDTH)
    return vrf_output, game_map, path


def test_honest_win_accepted(winning_game):
    vrf_output, game_map, path = winning_game
    claims = claims_for(game_map, path)

    result = raise_for_result(verify_game(_input(vrf_output, game_map, claims)))

    collected = sum(claim.reward for claim in claims)
    assert collected > 0
    assert result.outcome == GameOutcome.won
    assert result.payout == compute_payout(collected, FEE_BPS)
    assert result.final_seed == compute_final_seed(vrf_output, SALT, GAME_ID)


def test_claim_log_from_game_rules_is_accepted(winning_game):
    vrf_output, game_map, path = winning_game
    state = activate(GameState(), game_map)
    for tile in path:
        state = apply_move(state, game_map, tile, WIDTH, FEE_BPS).state

    result = verify_game(
        _input(
            vrf_output,
            game_map,
            list(state.claims),
            claimed_outcome=state.outcome,
            claimed_payout=state.payout,
        )
    )
    assert result.accepted


def test_flipped_salt_bit_rejected(winning_game):
    vrf_output, game_map, path = winning_game
    tampered = bytes([SALT[0] ^ 0x01]) + SALT[1:]

    result = verify_game(
        _input(vrf_output, game_map, claims_for(game_map, path), revealed_salt=tampered)
    )
    assert not result.accepted
    assert result.reason == RejectionReason.salt_mismatch
    assert result.payout == 0
    with pytest.raises(VerificationFailure):
        raise_for_result(result)


def test_safe_tile_claimed_as_reward_rejected():
    def has_plain_safe_step(game_map):
        path = forward_path(game_map, WIDTH)
        return path is not None and any(
            classify_tile(game_map, tile)[0] == TileType.safe and tile != game_map.finish_tile
            for tile in path
        )

    vrf_output, game_map = find_vrf(SALT, GAME_ID, PARAMS, has_plain_safe_step)
    claims = claims_for(game_map, forward_path(game_map, WIDTH))
    position = next(
        i
        for i, claim in enumerate(claims)
        if claim.tile_type == TileType.safe and claim.tile_index != game_map.finish_tile
    )
    claims[position] = TileClaim(claims[position].tile_index, TileType.reward, 10**18)

    result = verify_game(_input(vrf_output, game_map, claims))
    assert result.reason == RejectionReason.reward_mismatch


def test_inflated_reward_amount_rejected(winning_game):
    vrf_output, game_map, path = winning_game
    claims = claims_for(game_map, path)
    position = next(i for i, claim in enumerate(claims) if claim.tile_type == TileType.reward)
    claims[position] = replace(claims[position], reward=claims[position].reward + 1)

    result = verify_game(_input(vrf_output, game_map, claims))
    assert result.reason == RejectionReason.reward_mismatch


def test_trap_claimed_as_safe_rejected():
    vrf_output, game_map = find_vrf(SALT, GAME_ID, PARAMS, has_trap_next_to_start(WIDTH))
    trap = trap_next_to_start(game_map, WIDTH)

    result = verify_game(_input(vrf_output, game_map, [TileClaim(trap, TileType.safe)]))
    assert result.reason == RejectionReason.trap_mismatch


def test_honest_loss_accepted():
    vrf_output, game_map = find_vrf(SALT, GAME_ID, PARAMS, has_trap_next_to_start(WIDTH))
    trap = trap_next_to_start(game_map, WIDTH)

    result = verify_game(_input(vrf_output, game_map, [TileClaim(trap, TileType.trap)]))
    assert result.accepted
    assert result.outcome == GameOutcome.lost
    assert result.payout == 0


def test_claim_after_terminal_tile_rejected():
    vrf_output, game_map = find_vrf(SALT, GAME_ID, PARAMS, has_trap_next_to_start(WIDTH))
    trap = trap_next_to_start(game_map, WIDTH)
    follow_up = next(
        tile for tile in adjacent_tiles(trap, WIDTH) if tile != game_map.start_tile
    )
    claims = [TileClaim(trap, TileType.trap)] + claims_for(game_map, [follow_up])

    result = verify_game(_input(vrf_output, game_map, claims))
    assert result.reason == RejectionReason.illegal_move


def test_non_adjacent_claim_rejected(winning_game):
    vrf_output, game_map, _ = winning_game
    far_tile = game_map.finish_tile

    result = verify_game(_input(vrf_output, game_map, claims_for(game_map, [far_tile])))
    assert result.reason == RejectionReason.illegal_move


def test_wrong_start_rejected(winning_game):
    vrf_output, game_map, path = winning_game
    other_start = game_map.start_tile - 1 if game_map.start_tile % WIDTH else game_map.start_tile + 1

    result = verify_game(
        _input(vrf_output, game_map, claims_for(game_map, path), start_tile=other_start)
    )
    assert result.reason == RejectionReason.start_finish_mismatch


def test_nonce_out_of_bound_rejected(winning_game):
    vrf_output, game_map, path = winning_game
    result = verify_game(_input(vrf_output, game_map, [], map_nonce=100))
    assert result.reason == RejectionReason.invalid_nonce


def test_skipping_a_connected_nonce_rejected():
    for i in range(300):
        vrf_output = keccak256(b"nonce-candidate-" + i.to_bytes(4, "big"))
        seed = compute_final_seed(vrf_output, SALT, GAME_ID)
        game_map = generate_map(seed, GAME_ID, PARAMS)
        later_traps = recompute_traps(
            seed, GAME_ID, game_map.start_tile, game_map.finish_tile, PARAMS, game_map.map_nonce + 1
        )
        if has_path(game_map.start_tile, game_map.finish_tile, later_traps, WIDTH):
            break
    else:
        pytest.fail("no map with two connected nonces found")

    result = verify_game(_input(vrf_output, game_map, [], map_nonce=game_map.map_nonce + 1))
    assert result.reason == RejectionReason.invalid_nonce


def test_commit_after_randomness_request_rejected(winning_game):
    vrf_output, game_map, path = winning_game
    requested_at = datetime(2026, 1, 1, 12, 0, 0)

    result = verify_game(
        _input(
            vrf_output,
            game_map,
            claims_for(game_map, path),
            committed_at=requested_at + timedelta(seconds=1),
            randomness_requested_at=requested_at,
        )
    )
    assert result.reason == RejectionReason.protocol_violation


def test_claimed_payout_must_match(winning_game):
    vrf_output, game_map, path = winning_game
    claims = claims_for(game_map, path)
    honest = verify_game(_input(vrf_output, game_map, claims))

    result = verify_game(
        _input(vrf_output, game_map, claims, claimed_payout=honest.payout + 1)
    )
    assert result.reason == RejectionReason.outcome_mismatch

    result = verify_game(
        _input(vrf_output, game_map, claims, claimed_outcome=GameOutcome.lost)
    )
    assert result.reason == RejectionReason.outcome_mismatch


def test_traps_are_derived_once_per_verification(winning_game, monkeypatch):
    vrf_output, game_map, path = winning_game
    calls = []

    def counting_recompute(*args):
        calls.append(args[-1])
        return recompute_traps(*args)

    monkeypatch.setattr(map_generator, "recompute_traps", counting_recompute)
    result = verify_game(_input(vrf_output, game_map, claims_for(game_map, path)))

    assert result.accepted
    assert calls == [game_map.map_nonce]
