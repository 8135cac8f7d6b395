"""FastAPI application entry point for Mizuhanome."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from mizuhanome.config import settings
from mizuhanome.models.database import init_db
from mizuhanome.api import ledgers
from mizuhanome.betting.poller import SettlementPoller
from mizuhanome.ledger.store import LedgerStore
from mizuhanome.provider.client import ProviderClient, ProviderError

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    logger.info("Starting Mizuhanome...")

    # Ensure data directory exists
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)

    await init_db()
    logger.info(f"Database initialized at {settings.db_path}")

    store = LedgerStore()
    app.state.ledger_store = store
    app.state.provider = None
    app.state.settlement_poller = None
    app.state.scheduler = None

    if settings.base_url:
        provider = ProviderClient()
        try:
            await provider.authenticate()
        except ProviderError as e:
            logger.error(f"Provider authentication failed: {e}")
        app.state.provider = provider
    else:
        logger.warning("MIZUHANOME_BASE_URL not set - running without a data provider")

    if not settings.disable_background and app.state.provider is not None:
        from mizuhanome.scheduler.manager import SchedulerManager

        scheduler = SchedulerManager()
        await scheduler.start()
        scheduler.setup_provider_jobs(app.state.provider)
        app.state.scheduler = scheduler

        poller = SettlementPoller(store, app.state.provider.fetch_result)
        poller.start()
        app.state.settlement_poller = poller
        logger.info(f"Settlement poller running every {poller.interval}s")
    else:
        logger.info("Background services disabled")

    yield

    logger.info("Shutting down Mizuhanome...")
    if app.state.settlement_poller:
        app.state.settlement_poller.stop()
    if app.state.scheduler:
        await app.state.scheduler.stop()
    if app.state.provider:
        try:
            await app.state.provider.destroy()
        except ProviderError as e:
            logger.warning(f"Provider session destroy failed: {e}")
        await app.state.provider.close()


app = FastAPI(
    title="Mizuhanome",
    description="Progressive staking ledger for automated race wagering",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(ledgers.router, prefix="/api", tags=["ledgers"])


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "mizuhanome.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
