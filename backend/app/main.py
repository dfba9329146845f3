import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import settings
from .routers import availability
from .services.availability import AvailabilityCacheInvalidator, build_cache, get_availability_config
from .services.availability.events import invalidation_consumer_loop

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One cache per process; the sweeper lives as long as the app
    cache = build_cache(settings, get_availability_config())
    app.state.availability_cache = cache
    cache.start_sweeper()
    logger.info(f"availability cache ready ({settings.availability_cache_backend})")

    consumer = None
    if settings.redis_url:
        consumer = asyncio.create_task(
            invalidation_consumer_loop(settings.redis_url, AvailabilityCacheInvalidator(cache))
        )

    try:
        yield
    finally:
        if consumer is not None:
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass
        await cache.stop_sweeper()


app = FastAPI(title="Availability API", lifespan=lifespan)
app.include_router(availability.router)


@app.get("/health")
def health():
    return {"cache": app.state.availability_cache.stats()["size"]}
