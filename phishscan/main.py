import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from phishscan.config import settings
from phishscan.database import init_db
from phishscan.api import routes
from phishscan.core.cache import ScanCache
from phishscan.services.aggregator import SignalAggregator
from phishscan.services.email_scorer import EmailScorer

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


async def _sweep_cache(cache: ScanCache, period: int):
    """Evict expired scan results every `period` seconds."""
    while True:
        await asyncio.sleep(period)
        cache.clear_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"🚀 Starting {settings.APP_NAME}...")
    if not (settings.IPQS_API_KEY or settings.STALKPHISH_API_KEY):
        logger.warning("⚠️ No reputation API keys configured, URL scores rely on heuristics only")
    if settings.FEEDBACK_ENABLED:
        init_db()
    sweeper = asyncio.create_task(_sweep_cache(app.state.aggregator.cache, settings.CACHE_CHECK_PERIOD))
    yield
    # Shutdown
    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass
    logger.info(f"👋 Shutting down {settings.APP_NAME}...")


def create_app(aggregator: Optional[SignalAggregator] = None,
               email_scorer: Optional[EmailScorer] = None) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    aggregator = aggregator or SignalAggregator()
    app.state.aggregator = aggregator
    app.state.email_scorer = email_scorer or EmailScorer(aggregator)

    app.include_router(routes.router, prefix=settings.API_PREFIX, tags=["Scan"])
    return app


app = create_app()


def run():
    import uvicorn
    uvicorn.run("phishscan.main:app", host=settings.HOST, port=settings.PORT, reload=False)


if __name__ == "__main__":
    run()
