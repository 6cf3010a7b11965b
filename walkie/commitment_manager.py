import logging
from asyncio import Lock
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from walkie.domain.errors import (
    CommitmentAlreadyPending,
    MissingCommitment,
    ProtocolViolation,
)
from walkie.domain.game_rules import GamePhase
from walkie.domain.hashing import commit_salt, from_hex32, generate_salt, to_hex32
from walkie.models.schema_models import GameDataSchema


@dataclass
class PendingCommitment:
    player_id: str
    salt: bytes
    commitment: bytes
    created_at: datetime
    game_id: Optional[int] = None

    @property
    def commitment_hex(self) -> str:
        return to_hex32(self.commitment)


class CommitRevealCoordinator:
    """Owns operator salts from commitment until they are bound to a game.

    Pending commitments are keyed by player, so a player can only have one
    bet in flight. Expired entries are removed by ``sweep_expired``, which the
    scheduler calls; nothing here runs on its own timer.
    """

    def __init__(self, ttl_seconds: int):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.pending: Dict[str, PendingCommitment] = {}  # player_id -> commitment
        self.requests: Dict[str, int] = {}  # vrf request_id -> game_id
        self.bound_games = set()
        self.lock = Lock()

    async def commit(self, player_id: str, now: Optional[datetime] = None) -> PendingCommitment:
        """Generate a salt for the player and publish only its hash.

        Args:
            player_id (str): Player identity (wallet address)
            now (Optional[datetime]): Commit time, defaults to datetime.now()

        Returns:
            PendingCommitment: The stored commitment
        """
        now = now or datetime.now()
        async with self.lock:
            existing = self.pending.get(player_id)
            if existing is not None and not self._expired(existing, now):
                raise CommitmentAlreadyPending(
                    f"Player {player_id} already has commitment {existing.commitment_hex}"
                )
            salt = generate_salt()
            pending = PendingCommitment(
                player_id=player_id,
                salt=salt,
                commitment=commit_salt(salt),
                created_at=now,
            )
            self.pending[player_id] = pending
        logging.info(f"Committed salt {pending.commitment_hex} for player {player_id}")
        return pending

    async def peek(self, player_id: str, now: Optional[datetime] = None) -> PendingCommitment:
        """Return the live pending commitment without consuming it."""
        now = now or datetime.now()
        async with self.lock:
            pending = self.pending.get(player_id)
            if pending is None or self._expired(pending, now):
                raise MissingCommitment(f"No pending commitment for player {player_id}")
            return pending

    async def consume(
        self, player_id: str, game_id: int, now: Optional[datetime] = None
    ) -> PendingCommitment:
        """Bind the player's pending commitment to a game and remove it from the pending set."""
        now = now or datetime.now()
        async with self.lock:
            pending = self.pending.pop(player_id, None)
            if pending is None or self._expired(pending, now):
                raise MissingCommitment(
                    f"Bet for game {game_id} placed without a live commitment from {player_id}"
                )
            pending.game_id = game_id
            self.bound_games.add(game_id)
        logging.info(f"Commitment {pending.commitment_hex} bound to game {game_id}")
        return pending

    async def register_randomness_request(self, game_id: int, request_id: str) -> None:
        async with self.lock:
            if game_id not in self.bound_games:
                raise ProtocolViolation(
                    f"Randomness requested for game {game_id} before its salt was committed"
                )
            self.requests[request_id] = game_id

    async def resolve_request(self, request_id: str) -> Optional[int]:
        async with self.lock:
            game_id = self.requests.pop(request_id, None)
            if game_id is not None:
                self.bound_games.discard(game_id)
            return game_id

    async def release(self, game_id: int) -> None:
        """Forget a bound game whose randomness request was never sent."""
        async with self.lock:
            self.bound_games.discard(game_id)

    def bound_salt(self, game: GameDataSchema) -> bytes:
        """Salt stored with a game, checked against its published commitment.

        For seed derivation only; it must not leave the operator before the
        game is completed.
        """
        if game.operator_salt is None:
            raise ProtocolViolation(f"Game {game.game_id} has no stored salt")
        salt = from_hex32(game.operator_salt)
        if to_hex32(commit_salt(salt)) != game.salt_commitment:
            raise ProtocolViolation(f"Stored salt of game {game.game_id} does not match its commitment")
        return salt

    def reveal(self, game: GameDataSchema) -> bytes:
        """Disclose the raw salt of a finished game.

        Raises:
            ProtocolViolation: The game is not Completed or the stored salt
                does not hash to the published commitment
        """
        if game.phase != GamePhase.completed:
            raise ProtocolViolation(
                f"Salt of game {game.game_id} requested while {game.phase.value}"
            )
        salt = self.bound_salt(game)
        logging.info(f"Revealed salt of game {game.game_id}")
        return salt

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Drop commitments that were never used for a bet."""
        now = now or datetime.now()
        async with self.lock:
            expired = [
                player_id
                for player_id, pending in self.pending.items()
                if self._expired(pending, now)
            ]
            for player_id in expired:
                del self.pending[player_id]
        if expired:
            logging.info(f"Swept {len(expired)} expired commitments")
        return len(expired)

    def _expired(self, pending: PendingCommitment, now: datetime) -> bool:
        return now - pending.created_at > self.ttl
