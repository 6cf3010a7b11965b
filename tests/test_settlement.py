import pytest

from walkie.commitment_manager import CommitRevealCoordinator
from walkie.converter import DataConverter
from walkie.domain.errors import GameNotFound, ProtocolViolation
from walkie.domain.game_rules import TileClaim, TileType
from walkie.domain.hashing import from_hex32
from walkie.game_lock_manager import GameLockManager
from walkie.models.dc_models import SettlementStatus
from walkie.services import game_db
from walkie.services.game_service import GameService
from walkie.settlement import LedgerSettlement, SettlementClient
from walkie.vrf_client import LocalVRFClient
from tests.helpers import find_vrf, has_trap_next_to_start, trap_next_to_start

PLAYER = "0x00000000000000000000000000000000000000cc"
BET = 10**18
FEE_BPS = 500

data_converter = DataConverter()


class HoldingSettlement(SettlementClient):
    """Records submissions without settling, so tests can settle by hand."""

    def __init__(self):
        self.submissions = []

    async def submit_outcome(self, game_id, revealed_salt, map_nonce, claim_log):
        self.submissions.append((game_id, revealed_salt, map_nonce, list(claim_log)))
        raise ConnectionError("held")

    async def submit_refund(self, game_id):
        raise ConnectionError("held")


@pytest.fixture
async def lost_game(db):
    """A game lost on its first move whose settlement has not gone through."""
    holding = HoldingSettlement()
    vrf_client = LocalVRFClient()
    service = GameService(
        coordinator=CommitRevealCoordinator(600),
        vrf_client=vrf_client,
        settlement=holding,
        lock_manager=GameLockManager(),
        house_fee_bps=FEE_BPS,
        min_bet=10**17,
        max_bet=10 * 10**18,
    )
    vrf_client.set_callback(service.on_randomness)

    await service.prepare_game(PLAYER)
    game = await service.place_bet(PLAYER, 5, BET)
    vrf_output, game_map = find_vrf(
        from_hex32(game.operator_salt),
        game.game_id,
        data_converter.params_from_game(game),
        has_trap_next_to_start(5),
    )
    await vrf_client.fulfill(game.vrf_request_id, vrf_output)
    await service.reveal_tile(game.game_id, PLAYER, trap_next_to_start(game_map, 5))
    return holding.submissions[0]


async def test_double_submission_pays_once(lost_game):
    game_id, salt, nonce, claims = lost_game
    ledger = LedgerSettlement(FEE_BPS)

    assert await ledger.submit_outcome(game_id, salt, nonce, claims) == SettlementStatus.accepted
    first = await game_db.read_settlement(game_id)

    assert await ledger.submit_outcome(game_id, salt, nonce, claims) == SettlementStatus.accepted
    second = await game_db.read_settlement(game_id)
    assert second.created_at == first.created_at
    assert second.paid_amount == first.paid_amount == 0


async def test_tampered_submission_is_voided_for_good(lost_game):
    game_id, salt, nonce, claims = lost_game
    ledger = LedgerSettlement(FEE_BPS)
    tampered_salt = bytes([salt[0] ^ 0x80]) + salt[1:]

    status = await ledger.submit_outcome(game_id, tampered_salt, nonce, claims)
    assert status == SettlementStatus.rejected
    settlement = await game_db.read_settlement(game_id)
    assert settlement.reason == "salt_mismatch"
    assert settlement.paid_amount == 0

    # the recorded rejection stands
    assert await ledger.submit_outcome(game_id, salt, nonce, claims) == SettlementStatus.rejected


async def test_claims_are_checked_against_stored_game(lost_game):
    game_id, salt, nonce, claims = lost_game
    ledger = LedgerSettlement(FEE_BPS)
    trap = claims[0].tile_index

    status = await ledger.submit_outcome(game_id, salt, nonce, [TileClaim(trap, TileType.safe)])
    assert status == SettlementStatus.rejected
    assert (await game_db.read_settlement(game_id)).reason == "trap_mismatch"


async def test_refund_requires_refunded_game(lost_game):
    game_id, _, _, _ = lost_game
    with pytest.raises(ProtocolViolation):
        await LedgerSettlement(FEE_BPS).submit_refund(game_id)


async def test_unknown_game(db):
    with pytest.raises(GameNotFound):
        await LedgerSettlement(FEE_BPS).submit_outcome(404, bytes(32), 0, [])
