import json
import logging
from typing import AsyncGenerator

from redis.asyncio import Redis

from walkie.converter import DataConverter
from walkie.models.dc_models import PublicGameModel
from walkie.services import game_db

HEART_BEAT = 15

data_converter = DataConverter()


def game_channel(game_id: int) -> str:
    return f"game:{game_id}"


class RedisSubscriber:
    """Redis subscriber class to handle SSE events."""

    def __init__(self, game_id: int):
        self.game_id: int = game_id

    async def _read_public_game(self) -> PublicGameModel:
        game = await game_db.read_game_data(self.game_id)
        return data_converter.convert_gameschema_to_publicmodel(game)

    async def event_generator(self, channel: str, redis: Redis) -> AsyncGenerator[str, None]:
        """Event generator to handle SSE events.

        Sends the current view first, then one ``game_update`` per message on
        the channel. The stream ends after the completed view has been sent.

        Args:
            channel (str): To receive messages from Redis, the channel name is game:{game_id}.
            redis (Redis): Redis connection object.
        """
        pubsub = redis.pubsub()
        await pubsub.subscribe(channel)
        try:
            public_game = await self._read_public_game()
            yield f"event: game_update\ndata: {json.dumps(public_game.model_dump())}\n\n"
            while public_game.phase != "completed":
                msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=HEART_BEAT)
                if msg is None:
                    yield ": heartbeat\n\n"
                    continue
                if msg["type"] != "message":
                    continue
                public_game = await self._read_public_game()
                payload = json.dumps(public_game.model_dump())
                logging.debug(f"Payload: {payload}")
                yield f"event: game_update\ndata: {payload}\n\n"
        finally:
            logging.info(f"Unsubscribing from channel {channel}")
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
