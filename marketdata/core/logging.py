"""Loguru configuration and the request logging middleware."""
from __future__ import annotations

import os
import sys
import time
import uuid
from collections.abc import MutableMapping
from typing import Any

from loguru import logger
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from marketdata.core.metrics import observe_request

REQUEST_ID_HEADER = b"x-request-id"


def configure_logging(level: str = "INFO", *, serialize: bool = True) -> None:
    """Send every record to stdout as one JSON line.

    ``LOGURU_LEVEL`` overrides ``level`` so tests and local runs can quieten
    the service without touching settings.
    """

    logger.remove()
    logger.add(
        sys.stdout,
        level=os.environ.get("LOGURU_LEVEL", level).upper(),
        serialize=serialize,
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )


def _header(scope: Scope, name: bytes) -> str | None:
    for key, value in scope.get("headers") or ():
        if key.lower() == name:
            return value.decode("latin-1")
    return None


def _route_template(scope: Scope) -> str:
    route = scope.get("route")
    return str(getattr(route, "path", None) or scope.get("path", ""))


class RequestLoggingMiddleware:
    """Log one ``request_completed`` line per HTTP request and feed request metrics.

    The caller's ``X-Request-ID`` is reused when present and echoed back on
    the response. Metrics are labelled by route template so that per-symbol
    paths such as ``/api/v1/market/BTCUSDT/candles`` share one series.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state: MutableMapping[str, Any] = scope.setdefault("state", {})
        request_id = _header(scope, REQUEST_ID_HEADER) or uuid.uuid4().hex
        state["request_id"] = request_id
        method = scope.get("method", "GET")
        log = logger.bind(request_id=request_id, method=method, path=scope.get("path", ""))
        started = time.perf_counter()
        completed = False

        async def send_with_logging(message: Message) -> None:
            nonlocal completed
            if message["type"] == "http.response.start" and not completed:
                completed = True
                status_code = int(message.get("status", 500))
                elapsed = time.perf_counter() - started
                observe_request(_route_template(scope), method, status_code, elapsed)
                message["headers"] = [*message.get("headers", []), (REQUEST_ID_HEADER, request_id.encode("latin-1"))]
                context: dict[str, Any] = {"status_code": status_code, "latency_ms": round(elapsed * 1000, 2)}
                if status_code >= 500 and state.get("error_detail"):
                    context["error"] = state["error_detail"]
                log.bind(**context).info("request_completed")
            await send(message)

        try:
            await self.app(scope, receive, send_with_logging)
        except Exception as exc:
            state["error_detail"] = exc.__class__.__name__
            log.bind(latency_ms=round((time.perf_counter() - started) * 1000, 2)).exception("request_failed")
            raise


__all__ = ["REQUEST_ID_HEADER", "RequestLoggingMiddleware", "configure_logging"]
