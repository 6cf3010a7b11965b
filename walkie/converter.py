from typing import List

from walkie.domain.game_rules import (
    GameOutcome,
    GamePhase,
    GameState,
    TileClaim,
    TileType,
)
from walkie.domain.hashing import compute_final_seed, from_hex32, to_hex32
from walkie.domain.map_generator import GameMap, GameParameters, missed_rewards
from walkie.domain.verifier import VerificationInput, VerificationResult
from walkie.models.dc_models import (
    PublicGameModel,
    RewardTileModel,
    TileClaimModel,
    VerifyRequestModel,
    VerifyResponseModel,
)
from walkie.models.schema_models import GameDataSchema


class DataConverter:
    """This class is used to convert data between stored rows, domain objects and client models."""

    def params_from_game(self, game: GameDataSchema) -> GameParameters:
        return GameParameters(
            grid_width=game.grid_width,
            trap_count=game.trap_count,
            min_reward_count=game.min_reward_count,
            max_reward_count=game.max_reward_count,
            bet_amount=game.bet_amount,
        )

    def claims_from_game(self, game: GameDataSchema) -> List[TileClaim]:
        return [
            TileClaim(
                tile_index=claim.tile_index,
                tile_type=TileType(claim.tile_type),
                reward=claim.reward,
            )
            for claim in game.claims
        ]

    def state_from_game(self, game: GameDataSchema) -> GameState:
        return GameState(
            phase=game.phase,
            token_position=game.token_position,
            revealed_tiles=tuple(game.revealed_tiles),
            claims=tuple(self.claims_from_game(game)),
            collected_reward=game.collected_reward,
            outcome=game.outcome,
            payout=game.payout,
        )

    def map_from_game(self, game: GameDataSchema) -> GameMap:
        """Rebuild the hidden map stored when randomness arrived"""
        if game.start_tile is None or game.trap_tiles is None:
            raise ValueError(f"Game {game.game_id} has no map yet")
        return GameMap(
            start_tile=game.start_tile,
            finish_tile=game.finish_tile,
            trap_set=frozenset(game.trap_tiles),
            map_nonce=game.map_nonce,
            reward_tiles={
                int(tile): int(amount) for tile, amount in (game.reward_tiles or {}).items()
            },
        )

    def convert_gameschema_to_publicmodel(self, game: GameDataSchema) -> PublicGameModel:
        """Convert a stored game to the model sent to clients

        Seeds, traps and reward positions are only filled in once the game is completed.

        Args:
            game (GameDataSchema): The stored game

        Returns:
            PublicGameModel: The game as a player or spectator may see it
        """
        public_game = PublicGameModel(
            game_id=game.game_id,
            player_id=game.player_id,
            grid_width=game.grid_width,
            bet_amount=game.bet_amount,
            phase=game.phase.value,
            outcome=game.outcome.value,
            salt_commitment=game.salt_commitment,
            start_tile=game.start_tile,
            finish_tile=game.finish_tile,
            token_position=game.token_position,
            revealed_tiles=list(game.revealed_tiles),
            claims=[TileClaimModel.model_validate(claim) for claim in game.claims],
            collected_reward=game.collected_reward,
            payout=game.payout,
            settlement_status=game.settlement_status.value,
        )
        if game.phase != GamePhase.completed:
            return public_game

        public_game.operator_salt = game.operator_salt
        if game.vrf_output is None:
            # refunded before randomness arrived, there is no map
            return public_game

        game_map = self.map_from_game(game)
        missed = missed_rewards(game_map, game.revealed_tiles)
        public_game.vrf_output = game.vrf_output
        public_game.final_seed = to_hex32(
            compute_final_seed(
                from_hex32(game.vrf_output), from_hex32(game.operator_salt), game.game_id
            )
        )
        public_game.map_nonce = game.map_nonce
        public_game.trap_tiles = sorted(game_map.trap_set)
        public_game.reward_tiles = [
            RewardTileModel(tile_index=tile, amount=amount, collected=tile not in missed)
            for tile, amount in sorted(game_map.reward_tiles.items())
        ]
        return public_game

    def convert_verifymodel_to_input(
        self, request: VerifyRequestModel, default_house_fee_bps: int
    ) -> VerificationInput:
        params = GameParameters.for_grid(request.grid_width, request.bet_amount)
        return VerificationInput(
            game_id=request.game_id,
            params=params,
            vrf_output=from_hex32(request.vrf_output),
            revealed_salt=from_hex32(request.revealed_salt),
            salt_commitment=from_hex32(request.salt_commitment),
            start_tile=request.start_tile,
            finish_tile=request.finish_tile,
            map_nonce=request.map_nonce,
            claim_log=[
                TileClaim(
                    tile_index=claim.tile_index,
                    tile_type=TileType(claim.tile_type),
                    reward=claim.reward,
                )
                for claim in request.claim_log
            ],
            house_fee_bps=(
                default_house_fee_bps
                if request.house_fee_bps is None
                else request.house_fee_bps
            ),
            committed_at=request.committed_at,
            randomness_requested_at=request.randomness_requested_at,
            claimed_outcome=(
                None if request.claimed_outcome is None else GameOutcome(request.claimed_outcome)
            ),
            claimed_payout=request.claimed_payout,
        )

    def convert_result_to_model(self, result: VerificationResult) -> VerifyResponseModel:
        return VerifyResponseModel(
            accepted=result.accepted,
            reason=None if result.reason is None else result.reason.value,
            detail=result.detail,
            outcome=result.outcome.value,
            payout=result.payout,
            final_seed=None if result.final_seed is None else to_hex32(result.final_seed),
        )
