import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from walkie.domain.game_rules import GamePhase, GameState, TileClaim
from walkie.domain.map_generator import GameMap, GameParameters
from walkie.models.dc_models import SettlementStatus
from walkie.models.schema_models import GameDataSchema, SettlementSchema
from walkie.models.schemas import Game, Settlement, TileClaimRecord

# These helpers never commit. The caller owns the transaction
# (see walkie.services.game_db).


class CreateData:
    @staticmethod
    async def add_game_data(
        player_id: str,
        params: GameParameters,
        salt_commitment: str,
        operator_salt: str,
        committed_at: datetime,
        session: AsyncSession,
    ) -> int:
        """Insert a game awaiting randomness and return the allocated id

        Args:
            player_id (str): Owner of the game
            params (GameParameters): Grid width, trap count, reward range and bet
            salt_commitment (str): keccak256 of the operator salt, 0x hex
            operator_salt (str): The raw salt, hidden until the game completes
            committed_at (datetime): When the commitment was published
            session (AsyncSession): AsyncSession object to interact with database

        Returns:
            int: game_id
        """
        try:
            new_game = Game(
                player_id=player_id,
                grid_width=params.grid_width,
                trap_count=params.trap_count,
                min_reward_count=params.min_reward_count,
                max_reward_count=params.max_reward_count,
                bet_amount=params.bet_amount,
                salt_commitment=salt_commitment,
                operator_salt=operator_salt,
                committed_at=committed_at,
                phase=GamePhase.awaiting_randomness.value,
                revealed_tiles=[],
                collected_reward=0,
                payout=0,
                settlement_status=SettlementStatus.pending.value,
            )
            session.add(new_game)
            await session.flush()
            return new_game.game_id
        except Exception as e:
            logging.error(f"Failed to create game data: {e}")
            raise

    @staticmethod
    async def add_tile_claim(game_id: int, sequence: int, claim: TileClaim, session: AsyncSession):
        try:
            session.add(
                TileClaimRecord(
                    game_id=game_id,
                    sequence=sequence,
                    tile_index=claim.tile_index,
                    tile_type=int(claim.tile_type),
                    reward=claim.reward,
                )
            )
            await session.flush()
        except Exception as e:
            logging.error(f"Failed to create tile claim for game {game_id}: {e}")
            raise

    @staticmethod
    async def add_settlement(
        game_id: int,
        kind: str,
        accepted: bool,
        paid_amount: int,
        session: AsyncSession,
        reason: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        try:
            session.add(
                Settlement(
                    game_id=game_id,
                    kind=kind,
                    accepted=accepted,
                    reason=reason,
                    detail=detail,
                    paid_amount=paid_amount,
                )
            )
            await session.flush()
        except Exception as e:
            logging.error(f"Failed to create settlement for game {game_id}: {e}")
            raise


class ReadData:
    @staticmethod
    async def read_game_data(game_id: int, session: AsyncSession) -> Optional[GameDataSchema]:
        """Read a game with its claim log

        Args:
            game_id (int): To identify the game

        Returns:
            Optional[GameDataSchema]: None if the game does not exist
        """
        stmt = (
            select(Game)
            .where(Game.game_id == game_id)
            .options(selectinload(Game.claims))
        )
        result = await session.execute(stmt)
        game = result.scalars().first()
        if game is None:
            return None
        return GameDataSchema.model_validate(game)

    @staticmethod
    async def read_unfinished_game_id(player_id: str, session: AsyncSession) -> Optional[int]:
        stmt = select(Game.game_id).where(
            Game.player_id == player_id,
            Game.phase != GamePhase.completed.value,
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_game_id_by_request(request_id: str, session: AsyncSession) -> Optional[int]:
        stmt = select(Game.game_id).where(Game.vrf_request_id == request_id)
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_stuck_game_ids(requested_before: datetime, session: AsyncSession) -> List[int]:
        """Games still awaiting randomness whose request is older than ``requested_before``.

        A game whose request never went out is matched on its creation time.
        """
        stmt = select(Game.game_id).where(
            Game.phase == GamePhase.awaiting_randomness.value,
            or_(
                Game.randomness_requested_at < requested_before,
                and_(
                    Game.randomness_requested_at.is_(None),
                    Game.created_at < requested_before,
                ),
            ),
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def read_unsettled_game_ids(session: AsyncSession) -> List[int]:
        stmt = select(Game.game_id).where(
            Game.phase == GamePhase.completed.value,
            Game.settlement_status.in_(
                [SettlementStatus.pending.value, SettlementStatus.failed.value]
            ),
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def read_settlement(game_id: int, session: AsyncSession) -> Optional[SettlementSchema]:
        stmt = select(Settlement).where(Settlement.game_id == game_id)
        result = await session.execute(stmt)
        settlement = result.scalars().first()
        if settlement is None:
            return None
        return SettlementSchema.model_validate(settlement)


class UpdateData:
    @staticmethod
    async def _get_game(game_id: int, session: AsyncSession) -> Game:
        result = await session.execute(select(Game).where(Game.game_id == game_id))
        game = result.scalars().first()
        if game is None:
            raise LookupError(f"Game {game_id} not found")
        return game

    @staticmethod
    async def set_randomness_request(
        game_id: int, request_id: str, requested_at: datetime, session: AsyncSession
    ):
        game = await UpdateData._get_game(game_id, session)
        game.vrf_request_id = request_id
        game.randomness_requested_at = requested_at
        await session.flush()

    @staticmethod
    async def set_game_map(
        game_id: int, vrf_output: str, game_map: GameMap, activated_at: datetime, session: AsyncSession
    ):
        """Store the VRF output and the hidden map of a game

        Args:
            game_id (int): To identify the game
            vrf_output (str): 0x hex of the VRF value
            game_map (GameMap): Map derived from the final seed
            activated_at (datetime): When the game became active
        """
        game = await UpdateData._get_game(game_id, session)
        game.vrf_output = vrf_output
        game.start_tile = game_map.start_tile
        game.finish_tile = game_map.finish_tile
        game.map_nonce = game_map.map_nonce
        game.trap_tiles = sorted(game_map.trap_set)
        game.reward_tiles = {
            str(tile): str(amount) for tile, amount in sorted(game_map.reward_tiles.items())
        }
        game.activated_at = activated_at
        await session.flush()

    @staticmethod
    async def set_game_state(
        game_id: int,
        state: GameState,
        session: AsyncSession,
        completed_at: Optional[datetime] = None,
    ):
        game = await UpdateData._get_game(game_id, session)
        game.phase = state.phase.value
        game.token_position = state.token_position
        game.revealed_tiles = list(state.revealed_tiles)
        game.collected_reward = state.collected_reward
        game.outcome = state.outcome.value
        game.payout = state.payout
        if completed_at is not None:
            game.completed_at = completed_at
        await session.flush()

    @staticmethod
    async def set_settlement_status(game_id: int, status: SettlementStatus, session: AsyncSession):
        game = await UpdateData._get_game(game_id, session)
        game.settlement_status = status.value
        await session.flush()
