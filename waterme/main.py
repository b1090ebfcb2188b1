"""
Main FastAPI application for WaterMe.

This module creates and configures the FastAPI application: the lifespan
wires the store, engine, messenger and use cases and runs the evaluation
scheduler; the routes expose the Telegram webhook, health checks and manual
evaluation.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
import structlog

from waterme.application.api.routes import health, system, telegram
from waterme.application.commands import CommandRouter
from waterme.application.models import APIConfig, ErrorResponse
from waterme.core.use_cases import EvaluateAndNotifyUseCase
from waterme.infrastructure.config import AppConfig
from waterme.infrastructure.database.config import DatabaseManager
from waterme.infrastructure.di import (
    DatabaseServiceProvider,
    DIContainer,
    EngineServiceProvider,
    MessagingServiceProvider,
    UseCaseServiceProvider,
    build_container,
)
from waterme.infrastructure.logging.config import configure_logging
from waterme.infrastructure.scheduling.scheduler import IntervalScheduler
from waterme.shared.exceptions import WaterMeError, get_http_status_code, should_log_error

logger = structlog.get_logger(__name__)


async def build_services(config: AppConfig, db_manager: DatabaseManager) -> DIContainer:
    """Register every collaborator and use case, plus the command router."""
    container = await build_container([
        DatabaseServiceProvider(db_manager),
        EngineServiceProvider(config.engine_path),
        MessagingServiceProvider(config.telegram_bot_token),
        UseCaseServiceProvider(),
    ])
    container.register_singleton(CommandRouter, CommandRouter)
    return container


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown."""
    config: AppConfig = app.state.config
    configure_logging(config.log_level, config.log_format, config.environment)

    logger.info("Starting WaterMe application...", environment=config.environment)

    db_manager = DatabaseManager(config.database)
    container: Optional[DIContainer] = None
    scheduler: Optional[IntervalScheduler] = None

    try:
        await db_manager.initialize()
        await db_manager.create_tables()

        container = await build_services(config, db_manager)
        app.state.container = container

        if config.scheduler_enabled:
            notifier = await container.resolve(EvaluateAndNotifyUseCase)
            scheduler = IntervalScheduler(config.notify_interval_minutes, notifier.execute)
            scheduler.start()
            app.state.scheduler = scheduler

        logger.info("WaterMe application started successfully")

    except Exception as e:
        logger.error("Failed to start application", error=str(e))
        if container is not None:
            await container.cleanup()
        await db_manager.close()
        raise

    yield

    logger.info("Shutting down WaterMe application...")

    try:
        if scheduler is not None:
            await scheduler.stop()
        # Closes the messenger and the database manager
        await container.cleanup()
        logger.info("WaterMe application shut down successfully")
    except Exception as e:
        logger.error("Error during shutdown", error=str(e))


def create_application(config: Optional[AppConfig] = None, app_lifespan=lifespan) -> FastAPI:
    """Create and configure the FastAPI application."""
    api_config = APIConfig()

    app = FastAPI(
        title=api_config.title,
        version=api_config.version,
        description=api_config.description,
        docs_url=api_config.docs_url,
        redoc_url=api_config.redoc_url,
        openapi_url=api_config.openapi_url,
        lifespan=app_lifespan
    )
    app.state.config = config or AppConfig.from_env()

    setup_middleware(app)
    setup_exception_handlers(app)
    setup_routes(app)
    setup_prometheus_metrics(app)

    return app


def setup_middleware(app: FastAPI) -> None:
    """Configure application middleware."""

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests with correlation IDs."""
        correlation_id = request.headers.get("X-Correlation-ID") or uuid4().hex

        with structlog.contextvars.bound_contextvars(
            correlation_id=correlation_id,
            method=request.method,
            path=request.url.path,
        ):
            loop = asyncio.get_running_loop()
            start_time = loop.time()

            try:
                response = await call_next(request)
            except Exception as e:
                logger.error(
                    "Request failed",
                    error=str(e),
                    duration_ms=round((loop.time() - start_time) * 1000, 2)
                )
                raise

            response.headers["X-Correlation-ID"] = correlation_id
            logger.info(
                "Request completed",
                status_code=response.status_code,
                duration_ms=round((loop.time() - start_time) * 1000, 2)
            )
            return response


def setup_exception_handlers(app: FastAPI) -> None:
    """Setup global exception handlers."""

    @app.exception_handler(WaterMeError)
    async def waterme_exception_handler(request: Request, exc: WaterMeError):
        """Handle WaterMe custom exceptions."""
        status_code = get_http_status_code(exc)

        if should_log_error(exc):
            logger.error(
                "WaterMe error occurred",
                error_type=type(exc).__name__,
                error_message=exc.message,
                error_code=exc.error_code,
                status_code=status_code
            )

        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=exc.message,
                detail=str(exc.details) if exc.details else None,
                code=exc.error_code
            ).model_dump()
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=ErrorResponse(error="Invalid request", detail=str(exc.errors())).model_dump()
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(
            "Unexpected error occurred",
            error_type=type(exc).__name__,
            error_message=str(exc),
            request_method=request.method,
            request_path=request.url.path
        )

        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal server error",
                detail="An unexpected error occurred"
            ).model_dump()
        )


def setup_routes(app: FastAPI) -> None:
    """Setup application routes."""
    app.include_router(telegram.router, prefix="/telegram", tags=["Telegram"])
    app.include_router(health.router, prefix="/api/v1/health", tags=["Health"])
    app.include_router(system.router, prefix="/api/v1/system", tags=["System"])

    @app.get("/", response_model=Dict[str, Any])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "WaterMe Bot",
            "version": "1.0.0",
            "endpoints": {
                "webhook": "/telegram/webhook",
                "health": "/api/v1/health",
                "evaluate": "/api/v1/system/evaluate",
                "metrics": "/metrics"
            }
        }


def setup_prometheus_metrics(app: FastAPI) -> None:
    """Setup Prometheus metrics collection."""
    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics"],
        env_var_name="ENABLE_METRICS",
        inprogress_name="waterme_requests_inprogress",
        inprogress_labels=True,
    )
    instrumentator.instrument(app).expose(app, endpoint="/metrics")


# Create the application instance
app = create_application()


def run() -> None:
    """Console entry point: serve the application with uvicorn."""
    import uvicorn

    config: AppConfig = app.state.config
    uvicorn.run(
        "waterme.main:app",
        host=config.api_host,
        port=config.api_port,
        log_config=None,
        access_log=False,
    )


if __name__ == "__main__":
    run()
