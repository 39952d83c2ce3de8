"""Litestar application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from advanced_alchemy.extensions.litestar import (
    AsyncSessionConfig,
    SQLAlchemyAsyncConfig,
    SQLAlchemyPlugin,
)
from litestar import Litestar
from litestar.di import Provide
from litestar.openapi import OpenAPIConfig
from sqlalchemy.ext.asyncio import AsyncEngine

from sleep_advice_server import __version__
from sleep_advice_server.api import api_routers
from sleep_advice_server.core.config import settings
from sleep_advice_server.core.database import close_database, create_engine, init_database
from sleep_advice_server.core.responses import exception_handlers
from sleep_advice_server.services.advice import AdviceService
from sleep_advice_server.services.generation import GeminiGenerationProvider, GenerationProvider


def configure_logging() -> None:
    """Configure structured logging."""
    logging.basicConfig(format="%(message)s", level=settings.log_level)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()

logger = structlog.get_logger()


def create_app(
    engine: AsyncEngine | None = None,
    generation_provider: GenerationProvider | None = None,
) -> Litestar:
    """Create Litestar application.

    Args:
        engine: Database engine to use; one is created from settings (and
            disposed on shutdown) when omitted
        generation_provider: Text generation backend; defaults to Gemini

    Returns:
        Configured Litestar app instance

    Raises:
        ConfigurationError: If no provider is given and no API key is configured
    """
    owns_engine = engine is None
    db_engine = engine or create_engine()
    provider = generation_provider or GeminiGenerationProvider.from_settings(settings)
    advice_service = AdviceService(provider, settings)

    def provide_advice_service() -> AdviceService:
        return advice_service

    @asynccontextmanager
    async def lifespan(app: Litestar) -> AsyncIterator[None]:
        """Create tables on startup and release the connection pool on shutdown."""
        logger.info(
            "Starting sleep-advice-server",
            version=__version__,
            provider=type(provider).__name__,
            advice_timeout=settings.advice_timeout_seconds,
        )

        await init_database(db_engine)

        yield

        if owns_engine:
            await close_database(db_engine)
        logger.info("Shutdown complete")

    return Litestar(
        route_handlers=api_routers,
        lifespan=[lifespan],
        dependencies={
            "advice_service": Provide(provide_advice_service, sync_to_thread=False),
        },
        openapi_config=OpenAPIConfig(
            title="sleep-advice-server API",
            version=__version__,
            description="Sleep tracking with streamed AI sleep advice",
        ),
        plugins=[
            SQLAlchemyPlugin(
                config=SQLAlchemyAsyncConfig(
                    engine_instance=db_engine,
                    session_dependency_key="session",
                    session_config=AsyncSessionConfig(expire_on_commit=False),
                ),
            ),
        ],
        exception_handlers=exception_handlers,
        debug=settings.log_level == "DEBUG",
    )
