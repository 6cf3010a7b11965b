from datetime import datetime

from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, relationship
from sqlalchemy.schema import Column
from sqlalchemy.types import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Integer,
    String,
    TypeDecorator,
    Uuid,
)
from uuid6 import uuid7

# SQLite only autoincrements an INTEGER PRIMARY KEY
GameId = BigInteger().with_variant(Integer, "sqlite")


class Wei(TypeDecorator):
    """Integer amount in the smallest currency unit, stored as decimal text.

    Bets reach 10 * 10**18 which does not fit a signed 64-bit column.
    """

    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class Base(DeclarativeBase):
    pass


class Game(Base):
    __tablename__ = "game"
    game_id = Column(GameId, primary_key=True, autoincrement=True)
    player_id = Column(String, index=True, nullable=False)
    grid_width = Column(Integer, nullable=False)
    trap_count = Column(Integer, nullable=False)
    min_reward_count = Column(Integer, nullable=False)
    max_reward_count = Column(Integer, nullable=False)
    bet_amount = Column(Wei, nullable=False)

    salt_commitment = Column(String(66), unique=True, nullable=False)
    operator_salt = Column(String(66))  # hidden until completed
    vrf_request_id = Column(String, unique=True)
    vrf_output = Column(String(66))  # hidden until completed

    start_tile = Column(Integer)
    finish_tile = Column(Integer)
    map_nonce = Column(Integer)
    trap_tiles = Column(JSON)  # hidden until completed
    reward_tiles = Column(JSON)  # {"tile": "amount"}, hidden until completed

    phase = Column(String, default="awaiting_randomness", nullable=False)
    token_position = Column(Integer)
    revealed_tiles = Column(JSON, default=list)
    collected_reward = Column(Wei, default=0)
    outcome = Column(String, default="unset", nullable=False)
    payout = Column(Wei, default=0)
    settlement_status = Column(String, default="pending", nullable=False)

    created_at = Column(DateTime, default=datetime.now)
    committed_at = Column(DateTime)
    randomness_requested_at = Column(DateTime)
    activated_at = Column(DateTime)
    completed_at = Column(DateTime)

    claims = relationship(
        "TileClaimRecord",
        primaryjoin="Game.game_id == foreign(TileClaimRecord.game_id)",
        back_populates="game",
        order_by="TileClaimRecord.sequence",
        cascade="all, delete",
    )
    settlement = relationship(
        "Settlement",
        primaryjoin="Game.game_id == foreign(Settlement.game_id)",
        back_populates="game",
        cascade="all, delete",
        uselist=False,
    )


class TileClaimRecord(Base):
    __tablename__ = "tile_claim"
    __table_args__ = (UniqueConstraint("game_id", "sequence"),)
    claim_id = Column(Uuid, primary_key=True, default=uuid7)
    game_id = Column(GameId, index=True, nullable=False)
    sequence = Column(Integer, nullable=False)
    tile_index = Column(Integer, nullable=False)
    tile_type = Column(Integer, nullable=False)
    reward = Column(Wei, default=0)
    created_at = Column(DateTime, default=datetime.now)

    game = relationship(
        "Game",
        primaryjoin="foreign(TileClaimRecord.game_id) == Game.game_id",
        back_populates="claims",
    )


class Settlement(Base):
    __tablename__ = "settlement"
    settlement_id = Column(Uuid, primary_key=True, default=uuid7)
    game_id = Column(GameId, unique=True, nullable=False)
    kind = Column(String, nullable=False)  # "outcome" or "refund"
    accepted = Column(Boolean, nullable=False)
    reason = Column(String)
    detail = Column(String)
    paid_amount = Column(Wei, default=0)
    created_at = Column(DateTime, default=datetime.now)

    game = relationship(
        "Game",
        primaryjoin="foreign(Settlement.game_id) == Game.game_id",
        back_populates="settlement",
    )
