"""Game orchestration.

Ties the commit/reveal coordinator, the VRF source, the pure game rules and
settlement together. Routers call this; it calls walkie.services.game_db for
persistence and raises walkie.domain.errors exceptions for the router to map.
"""

import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from walkie.commitment_manager import CommitRevealCoordinator, PendingCommitment
from walkie.converter import DataConverter
from walkie.domain.errors import (
    GameInProgress,
    GameNotFound,
    InvalidGameParameters,
    MapGenerationExhausted,
    NotGameOwner,
    ProtocolViolation,
    RandomnessUnavailable,
)
from walkie.domain.game_rules import (
    GameOutcome,
    GamePhase,
    GameState,
    MoveResult,
    activate,
    apply_move,
    check_move,
    refund,
)
from walkie.domain.hashing import compute_final_seed, to_hex32
from walkie.domain.map_generator import GameParameters, generate_map
from walkie.game_lock_manager import GameLockManager
from walkie.models.dc_models import PublicGameModel, SettlementStatus
from walkie.models.schema_models import GameDataSchema
from walkie.services import game_db
from walkie.settlement import SettlementClient
from walkie.vrf_client import VRFClient

GamePublisher = Callable[[int], Awaitable[None]]

data_converter = DataConverter()


async def _no_publish(game_id: int) -> None:
    return None


class GameService:
    def __init__(
        self,
        coordinator: CommitRevealCoordinator,
        vrf_client: VRFClient,
        settlement: SettlementClient,
        lock_manager: GameLockManager,
        house_fee_bps: int,
        min_bet: int,
        max_bet: int,
        vrf_fee: int = 0,
        vrf_timeout_seconds: int = 900,
        publisher: Optional[GamePublisher] = None,
    ):
        self.coordinator = coordinator
        self.vrf_client = vrf_client
        self.settlement = settlement
        self.lock_manager = lock_manager
        self.house_fee_bps = house_fee_bps
        self.min_bet = min_bet
        self.max_bet = max_bet
        self.vrf_fee = vrf_fee
        self.vrf_timeout = timedelta(seconds=vrf_timeout_seconds)
        self.publisher: GamePublisher = publisher or _no_publish

    async def _read_game(self, game_id: int) -> GameDataSchema:
        game = await game_db.read_game_data(game_id)
        if game is None:
            raise GameNotFound(f"Game {game_id} not found")
        return game

    async def _ensure_no_unfinished_game(self, player_id: str):
        unfinished = await game_db.read_unfinished_game_id(player_id)
        if unfinished is not None:
            raise GameInProgress(f"Player {player_id} already has game {unfinished} in progress")

    async def prepare_game(self, player_id: str) -> PendingCommitment:
        """Commit a fresh salt for the player's next bet"""
        await self._ensure_no_unfinished_game(player_id)
        return await self.coordinator.commit(player_id)

    async def place_bet(self, player_id: str, grid_width: int, bet_amount: int) -> GameDataSchema:
        """Create the game and request randomness for it.

        The salt commitment must already exist. It is bound to the new game
        before the randomness request goes out.

        Args:
            player_id (str): Player placing the bet
            grid_width (int): 5, 6 or 7
            bet_amount (int): Bet in wei

        Returns:
            GameDataSchema: The game, awaiting randomness
        """
        params = GameParameters.for_grid(grid_width, bet_amount)
        if not self.min_bet <= bet_amount <= self.max_bet:
            raise InvalidGameParameters(
                f"Bet must be between {self.min_bet} and {self.max_bet}, got {bet_amount}"
            )
        await self._ensure_no_unfinished_game(player_id)

        pending = await self.coordinator.peek(player_id)
        game_id = await game_db.create_game_data(
            player_id,
            params,
            pending.commitment_hex,
            to_hex32(pending.salt),
            pending.created_at,
        )
        await self.coordinator.consume(player_id, game_id)

        requested_at = datetime.now()
        if requested_at < pending.created_at:
            raise ProtocolViolation(f"Game {game_id} would request randomness before its commitment")
        try:
            request_id = await self.vrf_client.request_randomness(game_id, self.vrf_fee)
        except Exception as e:
            logging.error(f"Randomness request for game {game_id} failed, refunding: {e}")
            await self.coordinator.release(game_id)
            await self._refund(game_id, datetime.now())
            raise RandomnessUnavailable(
                f"Randomness request for game {game_id} failed, bet refunded"
            ) from e
        await self.coordinator.register_randomness_request(game_id, request_id)
        await game_db.record_randomness_request(game_id, request_id, requested_at)

        logging.info(f"Game {game_id} created for {player_id}: grid {grid_width}, bet {bet_amount}")
        await self.publisher(game_id)
        return await self._read_game(game_id)

    async def on_randomness(self, request_id: str, vrf_output: bytes) -> GameDataSchema:
        """VRF callback: derive the hidden map and open the game"""
        game_id = await self.coordinator.resolve_request(request_id)
        if game_id is None:
            game_id = await game_db.read_game_id_by_request(request_id)
        if game_id is None:
            raise ProtocolViolation(f"Randomness for unknown request {request_id}")

        game_lock = await self.lock_manager.get_lock(game_id)
        async with game_lock:
            game = await self._read_game(game_id)
            if game.phase != GamePhase.awaiting_randomness:
                raise ProtocolViolation(
                    f"Randomness for game {game_id} arrived while {game.phase.value}"
                )
            salt = self.coordinator.bound_salt(game)
            final_seed = compute_final_seed(vrf_output, salt, game_id)
            try:
                game_map = generate_map(final_seed, game_id, data_converter.params_from_game(game))
            except MapGenerationExhausted as e:
                # Left awaiting randomness; the refund job returns the bet
                logging.error(f"Map generation failed for game {game_id}: {e}")
                raise
            state = activate(GameState(), game_map)
            await game_db.record_activation(
                game_id, to_hex32(vrf_output), game_map, state, datetime.now()
            )

        logging.info(f"Game {game_id} active, map nonce {game_map.map_nonce}")
        await self.publisher(game_id)
        return await self._read_game(game_id)

    async def reveal_tile(self, game_id: int, player_id: str, tile_index: int) -> MoveResult:
        """Move the token onto a tile.

        Reveals for one game run one at a time in arrival order; each one
        sees the position left by the previous one.

        Raises:
            GameNotFound: Unknown game
            NotGameOwner: The player does not own the game
            IllegalMove: The move was rejected, nothing changed
        """
        game_lock = await self.lock_manager.get_lock(game_id)
        async with game_lock:
            game = await self._read_game(game_id)
            if game.player_id != player_id:
                raise NotGameOwner(f"Game {game_id} does not belong to {player_id}")

            state = data_converter.state_from_game(game)
            check_move(state, tile_index, game.grid_width)
            game_map = data_converter.map_from_game(game)
            result = apply_move(state, game_map, tile_index, game.grid_width, self.house_fee_bps)
            await game_db.record_move(
                game_id,
                len(game.claims),
                result.claim,
                result.state,
                completed_at=datetime.now() if result.terminal else None,
            )
            logging.info(
                f"Game {game_id}: tile {tile_index} is {result.claim.tile_type.name}"
                f" (reward {result.claim.reward})"
            )

        await self.publisher(game_id)
        if result.terminal:
            logging.info(
                f"Game {game_id} finished: {result.state.outcome.value}, payout {result.state.payout}"
            )
            await self.lock_manager.cleanup(game_id)
            await self._settle(game_id)
        return result

    async def _settle(self, game_id: int) -> SettlementStatus:
        game = await self._read_game(game_id)
        try:
            if game.outcome == GameOutcome.refunded:
                status = await self.settlement.submit_refund(game_id)
            else:
                salt = self.coordinator.reveal(game)
                status = await self.settlement.submit_outcome(
                    game_id, salt, game.map_nonce, data_converter.claims_from_game(game)
                )
        except Exception as e:
            logging.error(f"Settlement of game {game_id} failed, will retry: {e}")
            await game_db.update_settlement_status(game_id, SettlementStatus.failed)
            return SettlementStatus.failed

        await game_db.update_settlement_status(game_id, status)
        await self.publisher(game_id)
        return status

    async def refund_stuck_games(self, now: Optional[datetime] = None) -> List[int]:
        """Refund games whose randomness never arrived within the timeout"""
        now = now or datetime.now()
        refunded = []
        for game_id in await game_db.read_stuck_game_ids(now - self.vrf_timeout):
            if await self._refund(game_id, now):
                logging.info(f"Game {game_id} refunded after randomness timeout")
                refunded.append(game_id)
        return refunded

    async def _refund(self, game_id: int, now: datetime) -> bool:
        """Refund a game still awaiting randomness and settle the refund"""
        game_lock = await self.lock_manager.get_lock(game_id)
        async with game_lock:
            game = await self._read_game(game_id)
            if game.phase != GamePhase.awaiting_randomness:
                return False
            state = refund(data_converter.state_from_game(game), game.bet_amount)
            await game_db.record_refund(game_id, state, now)
        await self.lock_manager.cleanup(game_id)
        await self._settle(game_id)
        return True

    async def retry_pending_settlements(self) -> int:
        """Resubmit completed games whose settlement has not gone through"""
        game_ids = await game_db.read_unsettled_game_ids()
        settled = 0
        for game_id in game_ids:
            status = await self._settle(game_id)
            if status != SettlementStatus.failed:
                settled += 1
        if game_ids:
            logging.info(f"Settlement retry: {settled}/{len(game_ids)} games settled")
        return settled

    async def get_public_game(self, game_id: int) -> PublicGameModel:
        game = await self._read_game(game_id)
        return data_converter.convert_gameschema_to_publicmodel(game)
