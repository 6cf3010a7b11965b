from asyncio import Lock
from typing import Dict


class GameLockManager:
    def __init__(self):
        self.locks: Dict[int, Lock] = {}  # one Lock per game_id
        self.lock = Lock()  # protects self.locks

    async def get_lock(self, game_id: int) -> Lock:
        """Get the Lock of the specified game_id

        Waiters on an asyncio.Lock are woken in FIFO order, so requests for
        one game are applied in the order they arrived.

        Args:
            game_id (int): ID to identify this game

        Returns:
            Lock: Lock of the specified game_id
        """
        async with self.lock:
            if game_id not in self.locks:
                self.locks[game_id] = Lock()
            return self.locks[game_id]

    async def cleanup(self, game_id: int):
        """Delete the Lock of a finished game

        Args:
            game_id (int): ID to identify this game
        """
        async with self.lock:
            game_lock = self.locks.get(game_id)
            if game_lock is not None and not game_lock.locked():
                del self.locks[game_id]
