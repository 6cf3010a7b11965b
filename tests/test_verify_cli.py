import json

from walkie.domain.hashing import commit_salt, compute_final_seed, to_hex32
from walkie.domain.map_generator import GameParameters, generate_map
from walkie.verify_cli import main, render_grid
from tests.helpers import SALT, VRF

GAME_ID = 7
BET = 10**18


def _args(*extra):
    return ["--vrf", to_hex32(VRF), "--salt", to_hex32(SALT), "--game-id", str(GAME_ID), *extra]


def _expected_map(width):
    seed = compute_final_seed(VRF, SALT, GAME_ID)
    return generate_map(seed, GAME_ID, GameParameters.for_grid(width, BET))


def test_json_output_matches_generator(capsys):
    assert main(_args("--grid", "6", "--bet", str(BET), "--json")) == 0
    printed = json.loads(capsys.readouterr().out)

    game_map = _expected_map(6)
    assert printed["start_tile"] == game_map.start_tile
    assert printed["finish_tile"] == game_map.finish_tile
    assert printed["map_nonce"] == game_map.map_nonce
    assert printed["trap_tiles"] == sorted(game_map.trap_set)
    assert printed["reward_tiles"] == {str(t): a for t, a in game_map.reward_tiles.items()}


def test_text_output_draws_grid(capsys):
    assert main(_args("--bet", str(BET), "--commitment", to_hex32(commit_salt(SALT)))) == 0
    out = capsys.readouterr().out
    assert render_grid(_expected_map(5), 5) in out


def test_commitment_mismatch_fails(capsys):
    assert main(_args("--commitment", to_hex32(commit_salt(VRF)))) == 1
    assert "does not match" in capsys.readouterr().err


def test_render_grid_marks_tiles():
    game_map = _expected_map(5)
    rows = render_grid(game_map, 5).splitlines()
    assert len(rows) == 5
    assert rows[0].split().count("F") == 1
    assert rows[-1].split().count("S") == 1
    assert sum(row.split().count("X") for row in rows) == len(game_map.trap_set)
