import asyncio
import logging
import secrets
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Optional

from uuid6 import uuid7

RandomnessCallback = Callable[[str, bytes], Awaitable[object]]


class VRFClient(ABC):
    """Source of the unpredictable 32-byte value for each game."""

    @abstractmethod
    async def request_randomness(self, game_id: int, fee: int) -> str:
        """Ask for randomness and return the request id the callback will carry."""


class LocalVRFClient(VRFClient):
    """Development source that answers its own requests.

    With ``delay_seconds`` set, each request is fulfilled by a background task
    after the delay. Otherwise requests wait until ``fulfill`` is called.
    """

    def __init__(self, callback: Optional[RandomnessCallback] = None, delay_seconds: Optional[float] = None):
        self.callback = callback
        self.delay_seconds = delay_seconds
        self.pending: Dict[str, int] = {}  # request_id -> game_id
        self.tasks = set()

    def set_callback(self, callback: RandomnessCallback):
        self.callback = callback

    async def request_randomness(self, game_id: int, fee: int) -> str:
        request_id = str(uuid7())
        self.pending[request_id] = game_id
        logging.info(f"Randomness requested for game {game_id}: {request_id} (fee {fee})")
        if self.delay_seconds is not None:
            task = asyncio.create_task(self._fulfill_later(request_id))
            self.tasks.add(task)
            task.add_done_callback(self.tasks.discard)
        return request_id

    async def fulfill(self, request_id: str, vrf_output: Optional[bytes] = None) -> bytes:
        """Deliver randomness for a pending request through the callback"""
        if request_id not in self.pending:
            raise KeyError(f"Unknown randomness request {request_id}")
        if self.callback is None:
            raise RuntimeError("No randomness callback registered")
        del self.pending[request_id]
        value = vrf_output if vrf_output is not None else secrets.token_bytes(32)
        await self.callback(request_id, value)
        return value

    async def _fulfill_later(self, request_id: str):
        await asyncio.sleep(self.delay_seconds)
        try:
            await self.fulfill(request_id)
        except Exception as e:
            logging.error(f"Failed to deliver randomness for {request_id}: {e}")
