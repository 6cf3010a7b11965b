import logging
from abc import ABC, abstractmethod
from typing import Sequence

from sqlalchemy.exc import IntegrityError

from walkie.domain.errors import GameNotFound, ProtocolViolation
from walkie.domain.game_rules import GameOutcome, GamePhase, TileClaim
from walkie.domain.hashing import from_hex32
from walkie.domain.verifier import VerificationInput, verify_game
from walkie.converter import DataConverter
from walkie.models.dc_models import SettlementStatus
from walkie.models.schema_models import SettlementSchema
from walkie.services import game_db

data_converter = DataConverter()


class SettlementClient(ABC):
    """Releases funds for a finished game. Every call is idempotent per game_id."""

    @abstractmethod
    async def submit_outcome(
        self,
        game_id: int,
        revealed_salt: bytes,
        map_nonce: int,
        claim_log: Sequence[TileClaim],
    ) -> SettlementStatus:
        """Verify the revealed game and pay out if it is accepted."""

    @abstractmethod
    async def submit_refund(self, game_id: int) -> SettlementStatus:
        """Return the bet of a game whose randomness never arrived."""


def _status_of(settlement: SettlementSchema) -> SettlementStatus:
    return SettlementStatus.accepted if settlement.accepted else SettlementStatus.rejected


class LedgerSettlement(SettlementClient):
    """Settlement that runs the verifier itself against the public game record.

    Only the salt, nonce and claim log come from the submitter. Everything
    else (vrf output, commitment, start/finish, timestamps, claimed outcome)
    is read from the stored game, so a submitter cannot swap them.
    """

    def __init__(self, house_fee_bps: int):
        self.house_fee_bps = house_fee_bps

    async def submit_outcome(
        self,
        game_id: int,
        revealed_salt: bytes,
        map_nonce: int,
        claim_log: Sequence[TileClaim],
    ) -> SettlementStatus:
        existing = await game_db.read_settlement(game_id)
        if existing is not None:
            logging.info(f"Game {game_id} already settled, returning recorded result")
            return _status_of(existing)

        game = await game_db.read_game_data(game_id)
        if game is None:
            raise GameNotFound(f"Game {game_id} not found")
        if game.phase != GamePhase.completed or game.vrf_output is None:
            raise ProtocolViolation(f"Game {game_id} cannot be settled while {game.phase.value}")

        result = verify_game(
            VerificationInput(
                game_id=game_id,
                params=data_converter.params_from_game(game),
                vrf_output=from_hex32(game.vrf_output),
                revealed_salt=revealed_salt,
                salt_commitment=from_hex32(game.salt_commitment),
                start_tile=game.start_tile,
                finish_tile=game.finish_tile,
                map_nonce=map_nonce,
                claim_log=list(claim_log),
                house_fee_bps=self.house_fee_bps,
                committed_at=game.committed_at,
                randomness_requested_at=game.randomness_requested_at,
                claimed_outcome=game.outcome,
                claimed_payout=game.payout,
            )
        )
        paid_amount = result.payout if result.accepted else 0
        if not result.accepted:
            logging.error(
                f"Game {game_id} voided, no payout: {result.reason.value}: {result.detail}"
            )

        try:
            await game_db.create_settlement(
                game_id,
                "outcome",
                result.accepted,
                paid_amount,
                reason=None if result.reason is None else result.reason.value,
                detail=result.detail,
            )
        except IntegrityError:
            # A concurrent submission for the same game won
            existing = await game_db.read_settlement(game_id)
            logging.info(f"Game {game_id} settled concurrently, returning recorded result")
            return _status_of(existing)

        logging.info(f"Game {game_id} settled: accepted={result.accepted} paid={paid_amount}")
        return SettlementStatus.accepted if result.accepted else SettlementStatus.rejected

    async def submit_refund(self, game_id: int) -> SettlementStatus:
        existing = await game_db.read_settlement(game_id)
        if existing is not None:
            logging.info(f"Game {game_id} already settled, returning recorded result")
            return _status_of(existing)

        game = await game_db.read_game_data(game_id)
        if game is None:
            raise GameNotFound(f"Game {game_id} not found")
        if game.outcome != GameOutcome.refunded:
            raise ProtocolViolation(f"Game {game_id} is not refundable ({game.outcome.value})")

        try:
            await game_db.create_settlement(game_id, "refund", True, game.bet_amount)
        except IntegrityError:
            existing = await game_db.read_settlement(game_id)
            return _status_of(existing)

        logging.info(f"Game {game_id} refunded {game.bet_amount}")
        return SettlementStatus.accepted
