"""FastAPI application factory."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trade_spine import __version__
from trade_spine.config import Settings, get_settings
from trade_spine.db import create_gateway
from trade_spine.domains.trades.repository import TradeGateway
from trade_spine.logging import configure_logging, get_logger

logger = get_logger(__name__)


def create_app(gateway: TradeGateway | None = None, settings: Settings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        gateway: Store to query. When omitted, one is built from
            ``settings.database_url`` on startup and closed on shutdown.
        settings: Defaults to the process settings.
    """
    settings = settings or get_settings()
    owns_gateway = gateway is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("api_starting", database_url=settings.database_url)
        if app.state.gateway is None:
            app.state.gateway = create_gateway(settings.database_url, init_schema=True)

        yield

        # Shutdown
        logger.info("api_stopping")
        if owns_gateway and app.state.gateway is not None:
            app.state.gateway.close()
            app.state.gateway = None

    configure_logging(level=settings.log_level, format=settings.log_format)

    app = FastAPI(
        title="Trade Spine",
        description="Aggregated statistics over ingested B3 trades",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.gateway = gateway
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from trade_spine.api.routes import health, trades

    app.include_router(health.router, tags=["Health"])
    app.include_router(trades.router, prefix="/api/v1/trades", tags=["Trades"])

    return app


def get_app() -> FastAPI:
    """Factory for ``uvicorn --factory trade_spine.api.main:get_app``."""
    return create_app()
