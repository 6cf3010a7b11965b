import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import StreamingResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError

from walkie.commitment_manager import CommitRevealCoordinator
from walkie.converter import DataConverter
from walkie.domain.errors import (
    GameNotFound,
    IllegalMove,
    InvalidGameParameters,
    NotGameOwner,
    ProtocolViolation,
    RandomnessUnavailable,
    WalkieError,
)
from walkie.domain.hashing import from_hex32
from walkie.domain.verifier import verify_game
from walkie.game_lock_manager import GameLockManager
from walkie.load_secrets import (
    commitment_ttl_seconds,
    house_fee_bps,
    max_bet,
    min_bet,
    redis_host,
    redis_port,
    vrf_fee,
    vrf_local_delay_seconds,
    vrf_timeout_seconds,
)
from walkie.models.dc_models import (
    BetRequestModel,
    BetResponseModel,
    PrepareRequestModel,
    PrepareResponseModel,
    PublicGameModel,
    RevealRequestModel,
    RevealResponseModel,
    VerifyRequestModel,
    VerifyResponseModel,
    VRFCallbackModel,
)
from walkie.redis_subscriber import RedisSubscriber, game_channel
from walkie.services.game_service import GameService
from walkie.settlement import LedgerSettlement
from walkie.vrf_client import LocalVRFClient

redis = Redis(host=redis_host, port=redis_port, decode_responses=True, health_check_interval=30)

game_router = APIRouter()
data_converter = DataConverter()


async def publish_game_event(game_id: int) -> None:
    """Notify SSE subscribers that the game changed"""
    try:
        await redis.publish(game_channel(game_id), str(game_id))
    except RedisError as e:
        # Subscribers re-read the game on the next event; play goes on
        logging.error(f"Failed to publish update for game {game_id}: {e}")


coordinator = CommitRevealCoordinator(commitment_ttl_seconds)
vrf_client = LocalVRFClient(delay_seconds=vrf_local_delay_seconds)
game_service = GameService(
    coordinator=coordinator,
    vrf_client=vrf_client,
    settlement=LedgerSettlement(house_fee_bps),
    lock_manager=GameLockManager(),
    house_fee_bps=house_fee_bps,
    min_bet=min_bet,
    max_bet=max_bet,
    vrf_fee=vrf_fee,
    vrf_timeout_seconds=vrf_timeout_seconds,
    publisher=publish_game_event,
)
vrf_client.set_callback(game_service.on_randomness)


def to_http_exception(e: WalkieError) -> HTTPException:
    if isinstance(e, IllegalMove):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"reason": e.reason.value, "detail": e.detail},
        )
    if isinstance(e, InvalidGameParameters):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, GameNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, NotGameOwner):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, ProtocolViolation):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, RandomnessUnavailable):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    logging.error(f"Unhandled game error: {e}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


class GameServer:
    @staticmethod
    @game_router.post("/games/prepare", response_model=PrepareResponseModel)
    async def prepare_game(request: PrepareRequestModel) -> PrepareResponseModel:
        """Publish the salt commitment for the player's next game

        Args:
            request (PrepareRequestModel): The player asking to play
        """
        try:
            pending = await game_service.prepare_game(request.player_id)
        except WalkieError as e:
            raise to_http_exception(e) from e
        return PrepareResponseModel(
            player_id=request.player_id,
            salt_commitment=pending.commitment_hex,
            committed_at=pending.created_at,
        )

    @staticmethod
    @game_router.post("/games/bet", response_model=BetResponseModel)
    async def place_bet(request: BetRequestModel) -> BetResponseModel:
        try:
            game = await game_service.place_bet(
                request.player_id, request.grid_width, request.bet_amount
            )
        except WalkieError as e:
            raise to_http_exception(e) from e
        return BetResponseModel(
            game_id=game.game_id,
            salt_commitment=game.salt_commitment,
            vrf_request_id=game.vrf_request_id,
        )

    @staticmethod
    @game_router.post("/vrf/callback", response_model=PublicGameModel)
    async def receive_randomness(callback: VRFCallbackModel) -> PublicGameModel:
        """Receive the VRF output for a pending request

        Args:
            callback (VRFCallbackModel): request_id and the 32-byte value as 0x hex
        """
        try:
            vrf_output = from_hex32(callback.vrf_output)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
        try:
            game = await game_service.on_randomness(callback.request_id, vrf_output)
        except WalkieError as e:
            raise to_http_exception(e) from e
        return data_converter.convert_gameschema_to_publicmodel(game)

    @staticmethod
    @game_router.post("/games/{game_id}/reveal", response_model=RevealResponseModel)
    async def reveal_tile(game_id: int, request: RevealRequestModel) -> RevealResponseModel:
        """Move the token to a tile and tell the player what was there

        Args:
            game_id (int): To identify the game
            request (RevealRequestModel): The player and the requested tile
        """
        try:
            result = await game_service.reveal_tile(game_id, request.player_id, request.tile_index)
        except WalkieError as e:
            raise to_http_exception(e) from e
        return RevealResponseModel(
            tile_index=result.claim.tile_index,
            tile_type=int(result.claim.tile_type),
            reward=result.claim.reward,
            terminal=result.terminal,
            outcome=result.state.outcome.value,
            payout=result.state.payout,
        )

    @staticmethod
    @game_router.get("/games/{game_id}", response_model=PublicGameModel)
    async def read_game(game_id: int) -> PublicGameModel:
        try:
            return await game_service.get_public_game(game_id)
        except WalkieError as e:
            raise to_http_exception(e) from e

    @staticmethod
    @game_router.get("/games/{game_id}/stream")
    async def stream_game(game_id: int):
        try:
            await game_service.get_public_game(game_id)
        except WalkieError as e:
            raise to_http_exception(e) from e
        redis_subscriber = RedisSubscriber(game_id)

        return StreamingResponse(
            redis_subscriber.event_generator(game_channel(game_id), redis),
            media_type="text/event-stream; charset=utf-8",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @staticmethod
    @game_router.post("/verify", response_model=VerifyResponseModel)
    async def verify(request: VerifyRequestModel) -> VerifyResponseModel:
        """Re-derive a finished game from caller-supplied data"""
        try:
            verification_input = data_converter.convert_verifymodel_to_input(request, house_fee_bps)
            result = verify_game(verification_input)
        except (ValueError, TypeError) as e:
            # malformed caller input, e.g. a game_id outside uint64
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
        return data_converter.convert_result_to_model(result)
