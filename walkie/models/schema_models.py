from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from walkie.domain.game_rules import GameOutcome, GamePhase
from walkie.models.dc_models import SettlementStatus


class TileClaimSchema(BaseModel):
    game_id: int
    sequence: int
    tile_index: int
    tile_type: int
    reward: int

    class Config:
        from_attributes = True


class SettlementSchema(BaseModel):
    game_id: int
    kind: str
    accepted: bool
    reason: Optional[str] = None
    detail: Optional[str] = None
    paid_amount: int
    created_at: datetime

    class Config:
        from_attributes = True


class GameDataSchema(BaseModel):
    game_id: int
    player_id: str
    grid_width: int
    trap_count: int
    min_reward_count: int
    max_reward_count: int
    bet_amount: int

    salt_commitment: str
    operator_salt: Optional[str] = None
    vrf_request_id: Optional[str] = None
    vrf_output: Optional[str] = None

    start_tile: Optional[int] = None
    finish_tile: Optional[int] = None
    map_nonce: Optional[int] = None
    trap_tiles: Optional[List[int]] = None
    reward_tiles: Optional[Dict[str, str]] = None

    phase: GamePhase
    token_position: Optional[int] = None
    revealed_tiles: List[int] = []
    collected_reward: int = 0
    outcome: GameOutcome
    payout: int = 0
    settlement_status: SettlementStatus

    created_at: Optional[datetime] = None
    committed_at: Optional[datetime] = None
    randomness_requested_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    claims: List[TileClaimSchema] = []

    class Config:
        from_attributes = True
