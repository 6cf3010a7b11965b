from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class SettlementStatus(str, Enum):
    pending = "pending"  # completed, not yet submitted
    accepted = "accepted"
    rejected = "rejected"
    failed = "failed"  # submission raised, retried by the scheduler


class PrepareRequestModel(BaseModel):
    player_id: str


class PrepareResponseModel(BaseModel):
    player_id: str
    salt_commitment: str
    committed_at: datetime


class BetRequestModel(BaseModel):
    player_id: str
    grid_width: int
    bet_amount: int  # wei


class BetResponseModel(BaseModel):
    game_id: int
    salt_commitment: str
    vrf_request_id: str


class VRFCallbackModel(BaseModel):
    request_id: str
    vrf_output: str  # 0x-prefixed 32 bytes


class RevealRequestModel(BaseModel):
    player_id: str
    tile_index: int


class TileClaimModel(BaseModel):
    tile_index: int
    tile_type: int  # 0 safe, 1 trap, 2 reward
    reward: int = 0

    class Config:
        from_attributes = True


class RevealResponseModel(BaseModel):
    tile_index: int
    tile_type: int
    reward: int
    terminal: bool
    outcome: str
    payout: int


class RewardTileModel(BaseModel):
    tile_index: int
    amount: int
    collected: bool


class PublicGameModel(BaseModel):
    """What a player or spectator may see of a game.

    The seed, salt, trap and reward fields stay None until the game is completed.
    """

    game_id: int
    player_id: str
    grid_width: int
    bet_amount: int
    phase: str
    outcome: str
    salt_commitment: str
    start_tile: Optional[int] = None
    finish_tile: Optional[int] = None
    token_position: Optional[int] = None
    revealed_tiles: List[int] = []
    claims: List[TileClaimModel] = []
    collected_reward: int = 0
    payout: int = 0
    settlement_status: str

    vrf_output: Optional[str] = None
    operator_salt: Optional[str] = None
    final_seed: Optional[str] = None
    map_nonce: Optional[int] = None
    trap_tiles: Optional[List[int]] = None
    reward_tiles: Optional[List[RewardTileModel]] = None


class VerifyRequestModel(BaseModel):
    game_id: int
    grid_width: int
    bet_amount: int
    vrf_output: str
    revealed_salt: str
    salt_commitment: str
    start_tile: int
    finish_tile: int
    map_nonce: int
    claim_log: List[TileClaimModel]
    house_fee_bps: Optional[int] = None
    committed_at: Optional[datetime] = None
    randomness_requested_at: Optional[datetime] = None
    claimed_outcome: Optional[str] = None
    claimed_payout: Optional[int] = None


class VerifyResponseModel(BaseModel):
    accepted: bool
    reason: Optional[str] = None
    detail: str = ""
    outcome: str
    payout: int
    final_seed: Optional[str] = None
