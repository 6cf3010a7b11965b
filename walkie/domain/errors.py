"""Error taxonomy shared by the domain, services and routers."""

from enum import Enum


class WalkieError(Exception):
    """Base class for every protocol error raised by walkie."""


class ProtocolViolation(WalkieError, RuntimeError):
    """Commit/reveal ordering was broken. Fatal to game creation."""


class CommitmentAlreadyPending(ProtocolViolation):
    pass


class MissingCommitment(ProtocolViolation):
    pass


class GameInProgress(ProtocolViolation):
    """The player already has a game awaiting randomness or active."""


class InvalidGameParameters(WalkieError, ValueError):
    pass


class GameNotFound(WalkieError, LookupError):
    pass


class NotGameOwner(WalkieError, PermissionError):
    pass


class RandomnessUnavailable(WalkieError, RuntimeError):
    """The randomness request could not be sent. The bet has been refunded."""


class MapGenerationExhausted(WalkieError, RuntimeError):
    """No connected trap layout within the nonce bound. Needs investigation."""


class MoveRejection(str, Enum):
    game_not_active = "game_not_active"
    out_of_range = "out_of_range"
    already_revealed = "already_revealed"
    not_adjacent = "not_adjacent"
    backward = "backward"


class IllegalMove(WalkieError, ValueError):
    """A move request was rejected. The game state is unchanged."""

    def __init__(self, reason: MoveRejection, detail: str):
        super().__init__(detail)
        self.reason = reason
        self.detail = detail


class RejectionReason(str, Enum):
    protocol_violation = "protocol_violation"
    salt_mismatch = "salt_mismatch"
    start_finish_mismatch = "start_finish_mismatch"
    invalid_nonce = "invalid_nonce"
    connectivity_violated = "connectivity_violated"
    illegal_move = "illegal_move"
    trap_mismatch = "trap_mismatch"
    reward_mismatch = "reward_mismatch"
    outcome_mismatch = "outcome_mismatch"


class VerificationFailure(WalkieError, RuntimeError):
    """The revealed inputs disagree with the claims made during play."""

    def __init__(self, reason: RejectionReason, detail: str):
        super().__init__(f"{reason.value}: {detail}")
        self.reason = reason
        self.detail = detail
