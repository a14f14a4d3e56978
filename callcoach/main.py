"""Application entry point and FastAPI app factory."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import sys
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config.dependencies import AppServices, build_services, close_services
from .config.settings import Settings, settings
from .controllers import analysis, calls, coaching, events
from .errors import PreconditionError
from .middleware import StructuredLoggingMiddleware, TelemetryMiddleware
from .pipelines.calls import CallCoachingPipeline

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _rotating_handler(path_value: str, max_bytes: int, fmt: str) -> RotatingFileHandler:
    log_path = Path(path_value)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def configure_logging(config: Settings = settings) -> None:
    """Stream logs to stdout and file; stage lifecycle also goes to its own file."""

    logging.getLogger().handlers.clear()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(logging.Formatter(_LOG_FORMAT))

    root_logger = logging.getLogger()
    root_logger.addHandler(stdout_handler)
    root_logger.addHandler(_rotating_handler(config.log_file, 1_000_000, _LOG_FORMAT))
    root_logger.setLevel(logging.DEBUG if config.debug else logging.INFO)

    middleware_logger = logging.getLogger("callcoach.middleware.structured")
    middleware_logger.handlers.clear()
    middleware_stdout = logging.StreamHandler(sys.stdout)
    middleware_stdout.setFormatter(logging.Formatter("%(message)s"))
    middleware_logger.addHandler(middleware_stdout)
    middleware_logger.setLevel(logging.INFO)
    middleware_logger.propagate = False

    pipeline_logger = logging.getLogger("callcoach.pipeline")
    pipeline_logger.handlers.clear()
    pipeline_logger.addHandler(
        _rotating_handler(
            config.pipeline_log_file,
            500_000,
            "%(asctime)s | %(levelname)s | %(message)s",
        )
    )
    pipeline_logger.setLevel(logging.INFO)

    noisy_loggers = [
        "botocore",
        "boto3",
        "urllib3",
        "httpx",
        "httpcore",
        "pika",
        "sqlalchemy.engine",
    ]
    for name in noisy_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def create_app(
    config: Settings = settings,
    services: Optional[AppServices] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``services`` replaces the ones normally built from ``config`` at startup.
    """

    configure_logging(config)

    app = FastAPI(
        title=config.app_name,
        version=config.app_version,
        debug=config.debug,
        description="Call recording analysis and agent coaching API",
    )

    app.add_middleware(TelemetryMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=config.cors_allow_credentials,
        allow_methods=config.cors_allow_methods,
        allow_headers=config.cors_allow_headers,
    )

    app.include_router(calls.router)
    app.include_router(analysis.router)
    app.include_router(coaching.router)
    app.include_router(events.router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, object]:
        """Root endpoint."""

        return {
            "message": f"Welcome to {config.app_name}",
            "version": config.app_version,
            "status": "operational",
            "pipeline": [stage.name for stage in CallCoachingPipeline.describe()],
        }

    @app.get("/health", include_in_schema=False)
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""

        current: Optional[AppServices] = getattr(app.state, "services", None)
        return {
            "status": "healthy",
            "service": config.app_name,
            "version": config.app_version,
            "provider": current.gateway.name if current else "unavailable",
        }

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        """Expose application metrics for Prometheus scraping."""

        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.exception_handler(PreconditionError)
    async def precondition_exception_handler(request: Request, exc: PreconditionError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": str(exc)},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.on_event("startup")
    async def startup_event() -> None:
        app.state.services = services or await build_services(config)
        logger.info("Using %s provider", app.state.services.gateway.name)

        recovered = await app.state.services.runner.recover_interrupted()
        if recovered:
            logger.warning("Recovered %s calls interrupted by the previous shutdown", recovered)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        current: Optional[AppServices] = getattr(app.state, "services", None)
        if current is not None:
            await close_services(current)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "callcoach.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
