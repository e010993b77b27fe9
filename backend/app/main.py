import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI

from backend.app.core.config import settings
from backend.app.core.logging import configure_logging
from backend.app.core.redis_client import close_redis, init_redis
from backend.app.db.session import SessionLocal
from backend.app.services.adjustments import (
    BaseAdjustmentStore,
    InMemoryAdjustmentStore,
    RedisAdjustmentStore,
    SqlAdjustmentStore,
)
import backend.app.routers.adjustments as adjustments
import backend.app.routers.conflicts as conflicts
import backend.app.routers.health as health
import backend.app.routers.timeline as timeline


logger = logging.getLogger(__name__)


async def build_store(backend: str) -> BaseAdjustmentStore:
    if backend == "redis":
        client = await init_redis()
        return RedisAdjustmentStore(
            client,
            key_prefix=settings.ADJUSTMENTS_KEY_PREFIX,
            channel=settings.ADJUSTMENTS_CHANNEL,
        )
    if backend == "sql":
        return SqlAdjustmentStore(SessionLocal)
    return InMemoryAdjustmentStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    store = await build_store(settings.ADJUSTMENT_BACKEND)
    app.state.adjustment_store = store
    logger.info("Adjustment store: %s", type(store).__name__)

    relay = None
    if isinstance(store, RedisAdjustmentStore):
        relay = asyncio.create_task(store.relay_changes())
    try:
        yield
    finally:
        if relay is not None:
            relay.cancel()
            with suppress(asyncio.CancelledError):
                await relay
        await close_redis()
        app.state.adjustment_store = None


app = FastAPI(
    title="Table Timeline API",
    lifespan=lifespan,
)

app.include_router(health.router, prefix=settings.API_PREFIX)
app.include_router(timeline.router, prefix=settings.API_PREFIX)
app.include_router(conflicts.router, prefix=settings.API_PREFIX)
app.include_router(adjustments.router, prefix=settings.API_PREFIX)
