"""DB service layer for game-related use cases.

- The game service and settlement never touch DB sessions directly; they call this module.
- This layer owns session/transaction boundaries.
- CRUD helpers never commit; each function here is one transaction.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from walkie.crud import CreateData, ReadData, UpdateData
from walkie.db import Session
from walkie.domain.errors import GameInProgress
from walkie.domain.game_rules import GameState, TileClaim
from walkie.domain.map_generator import GameMap, GameParameters
from walkie.models.dc_models import SettlementStatus
from walkie.models.schema_models import GameDataSchema, SettlementSchema


async def read_game_data(game_id: int) -> Optional[GameDataSchema]:
    async with Session() as session:
        return await ReadData.read_game_data(game_id, session)


async def read_unfinished_game_id(player_id: str) -> Optional[int]:
    async with Session() as session:
        return await ReadData.read_unfinished_game_id(player_id, session)


async def read_game_id_by_request(request_id: str) -> Optional[int]:
    async with Session() as session:
        return await ReadData.read_game_id_by_request(request_id, session)


async def read_stuck_game_ids(requested_before: datetime) -> List[int]:
    async with Session() as session:
        return await ReadData.read_stuck_game_ids(requested_before, session)


async def read_unsettled_game_ids() -> List[int]:
    async with Session() as session:
        return await ReadData.read_unsettled_game_ids(session)


async def read_settlement(game_id: int) -> Optional[SettlementSchema]:
    async with Session() as session:
        return await ReadData.read_settlement(game_id, session)


async def create_game_data(
    player_id: str,
    params: GameParameters,
    salt_commitment: str,
    operator_salt: str,
    committed_at: datetime,
) -> int:
    """Insert the game row. A commitment can only ever back one game."""
    try:
        async with Session() as session:
            async with session.begin():
                return await CreateData.add_game_data(
                    player_id, params, salt_commitment, operator_salt, committed_at, session
                )
    except IntegrityError as e:
        raise GameInProgress(f"Commitment {salt_commitment} is already bound to a game") from e


async def record_randomness_request(game_id: int, request_id: str, requested_at: datetime) -> None:
    async with Session() as session:
        async with session.begin():
            await UpdateData.set_randomness_request(game_id, request_id, requested_at, session)


async def record_activation(
    game_id: int, vrf_output: str, game_map: GameMap, state: GameState, activated_at: datetime
) -> None:
    async with Session() as session:
        async with session.begin():
            await UpdateData.set_game_map(game_id, vrf_output, game_map, activated_at, session)
            await UpdateData.set_game_state(game_id, state, session)


async def record_move(
    game_id: int,
    sequence: int,
    claim: TileClaim,
    state: GameState,
    completed_at: Optional[datetime] = None,
) -> None:
    """Append the claim and store the new state in one transaction."""
    async with Session() as session:
        async with session.begin():
            await CreateData.add_tile_claim(game_id, sequence, claim, session)
            await UpdateData.set_game_state(game_id, state, session, completed_at)


async def record_refund(game_id: int, state: GameState, completed_at: datetime) -> None:
    async with Session() as session:
        async with session.begin():
            await UpdateData.set_game_state(game_id, state, session, completed_at)


async def update_settlement_status(game_id: int, status: SettlementStatus) -> None:
    async with Session() as session:
        async with session.begin():
            await UpdateData.set_settlement_status(game_id, status, session)


async def create_settlement(
    game_id: int,
    kind: str,
    accepted: bool,
    paid_amount: int,
    reason: Optional[str] = None,
    detail: Optional[str] = None,
) -> None:
    """Record a settlement. Raises IntegrityError if the game was already settled."""
    async with Session() as session:
        async with session.begin():
            await CreateData.add_settlement(
                game_id, kind, accepted, paid_amount, session, reason=reason, detail=detail
            )
