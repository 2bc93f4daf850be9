"""FastAPI application entrypoint."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from loguru import logger

from marketdata.api.v1 import api_router
from marketdata.core.config import get_settings
from marketdata.core.database import dispose_engine, init_models
from marketdata.core.health import build_health_payload
from marketdata.core.logging import RequestLoggingMiddleware, configure_logging
from marketdata.core.metrics import CONTENT_TYPE_LATEST, render_metrics
from marketdata.errors import AllTimeframesFailed, MarketDataError, NoDataAvailable, UnknownTaskError
from marketdata.services.container import build_container, configure_container
from marketdata.tasks.scheduler import shutdown_scheduler, start_scheduler

_ERROR_STATUS: dict[type[MarketDataError], int] = {
    NoDataAvailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    AllTimeframesFailed: status.HTTP_503_SERVICE_UNAVAILABLE,
    UnknownTaskError: status.HTTP_400_BAD_REQUEST,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    await init_models()
    container = getattr(app.state, "container", None) or build_container(settings)
    app.state.container = container
    configure_container(container)
    start_scheduler()
    logger.info("application_started", env=settings.env, version=settings.git_sha or "unknown")
    try:
        yield
    finally:
        await shutdown_scheduler()
        await container.aclose()
        configure_container(None)
        await dispose_engine()
        logger.info("application_stopped")


async def market_data_error_handler(request: Request, exc: MarketDataError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in _ERROR_STATUS.items() if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    error: dict[str, object] = {"code": exc.code, "message": str(exc)}
    to_dict = getattr(exc, "to_dict", None)
    if callable(to_dict):
        error["details"] = to_dict()
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        request.state.error_detail = exc.code
    logger.bind(code=exc.code, status_code=status_code).warning("market_data_error")
    return JSONResponse(status_code=status_code, content={"error": error})


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        content = detail
    else:
        content = {"error": {"code": "http_error", "message": str(detail)}}
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        request.state.error_detail = content["error"].get("code", "http_error")
    headers = exc.headers if exc.headers else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.bind(path=request.url.path, errors=exc.errors()).info("request_validation_failed")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "code": "validation_error",
                "message": "Request validation failed.",
                "details": jsonable_errors(exc),
            }
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, object]]:
    return [
        {"loc": list(error.get("loc", ())), "msg": str(error.get("msg", "")), "type": str(error.get("type", ""))}
        for error in exc.errors()
    ]


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request.state.error_detail = exc.__class__.__name__
    logger.exception("Unhandled application error")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"code": "server_error", "message": "Internal server error."}},
    )


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Market Data Service", version="1.0.0", lifespan=lifespan)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_exception_handler(MarketDataError, market_data_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.include_router(api_router)

    @app.get("/health", tags=["health"], response_model=dict)
    async def health(request: Request) -> dict[str, object]:
        """Return infrastructure-focused health telemetry."""

        container = getattr(request.app.state, "container", None)
        cache_size = len(container.cache) if container is not None else None
        return await build_health_payload(settings.git_sha, cache_size=cache_size)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        """Expose Prometheus-formatted metrics."""

        return Response(content=render_metrics(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()
