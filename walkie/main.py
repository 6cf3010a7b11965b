import logging
from contextlib import asynccontextmanager

import uvicorn
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI

from walkie.db import create_tables
from walkie.load_secrets import log_level
from walkie.routers import game
from walkie.routers.game import coordinator, game_service

scheduler = AsyncIOScheduler()
logging.basicConfig(level=log_level)


@asynccontextmanager
async def lifespan(app):
    """Create tables and start the maintenance jobs.
    This function is called to start the server.
    """
    await create_tables()

    # Drop salt commitments that were never used for a bet
    scheduler.add_job(coordinator.sweep_expired, "interval", seconds=60)
    # Refund games whose randomness never arrived
    scheduler.add_job(game_service.refund_stuck_games, "interval", seconds=60)
    # Resubmit completed games whose settlement failed
    scheduler.add_job(game_service.retry_pending_settlements, "interval", minutes=5)
    scheduler.start()
    try:
        yield
    finally:
        scheduler.shutdown()
        logging.info("Stop Server")


app = FastAPI(lifespan=lifespan)
app.include_router(game.game_router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8080)
