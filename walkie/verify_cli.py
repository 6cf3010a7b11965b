"""Recompute a game map from its revealed seeds.

Usage:
    python -m walkie.verify_cli --vrf 0x.. --salt 0x.. --game-id 42 --grid 5
    python -m walkie.verify_cli --vrf 0x.. --salt 0x.. --game-id 42 --grid 6 --bet 1000000000000000000 --json
"""

import argparse
import json
import sys
from typing import List, Optional

from walkie.domain.hashing import commit_salt, compute_final_seed, from_hex32, to_hex32
from walkie.domain.map_generator import GameMap, GameParameters, generate_map


def get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Walkie map checker")
    parser.add_argument("--vrf", type=str, help="VRF output (0x + 64 hex)", required=True)
    parser.add_argument("--salt", type=str, help="Revealed operator salt (0x + 64 hex)", required=True)
    parser.add_argument("--game-id", type=int, help="Game id", required=True)
    parser.add_argument("--grid", type=int, choices=[5, 6, 7], default=5, help="Grid width")
    parser.add_argument("--bet", type=int, default=0, help="Bet in wei, for reward amounts")
    parser.add_argument("--commitment", type=str, help="Published salt commitment to check")
    parser.add_argument("--json", action="store_true", help="Print the map as JSON")
    return parser


def render_grid(game_map: GameMap, grid_width: int) -> str:
    """One line per row, top (finish) row first: S start, F finish, X trap, R reward."""
    lines = []
    for row in range(grid_width):
        cells = []
        for col in range(grid_width):
            tile = row * grid_width + col
            if tile == game_map.start_tile:
                cells.append("S")
            elif tile == game_map.finish_tile:
                cells.append("F")
            elif tile in game_map.trap_set:
                cells.append("X")
            elif tile in game_map.reward_tiles:
                cells.append("R")
            else:
                cells.append(".")
        lines.append(" ".join(cells))
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    args = get_parser().parse_args(argv)
    vrf_output = from_hex32(args.vrf)
    salt = from_hex32(args.salt)

    if args.commitment is not None and commit_salt(salt) != from_hex32(args.commitment):
        print("salt does not match commitment", file=sys.stderr)
        return 1

    final_seed = compute_final_seed(vrf_output, salt, args.game_id)
    game_map = generate_map(final_seed, args.game_id, GameParameters.for_grid(args.grid, args.bet))

    if args.json:
        print(
            json.dumps(
                {
                    "game_id": args.game_id,
                    "final_seed": to_hex32(final_seed),
                    "start_tile": game_map.start_tile,
                    "finish_tile": game_map.finish_tile,
                    "map_nonce": game_map.map_nonce,
                    "trap_tiles": sorted(game_map.trap_set),
                    "reward_tiles": {
                        str(tile): amount for tile, amount in sorted(game_map.reward_tiles.items())
                    },
                },
                indent=2,
            )
        )
        return 0

    print(f"final seed: {to_hex32(final_seed)}")
    print(f"start {game_map.start_tile}, finish {game_map.finish_tile}, nonce {game_map.map_nonce}")
    print(f"traps: {sorted(game_map.trap_set)}")
    for tile, amount in sorted(game_map.reward_tiles.items()):
        print(f"reward {tile}: {amount}")
    print(render_grid(game_map, args.grid))
    return 0


if __name__ == "__main__":
    sys.exit(main())
