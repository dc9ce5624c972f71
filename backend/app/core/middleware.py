"""Middlewares de la API de contactos."""

from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.core.logging import get_logger, resolve_log_level

logger = get_logger("app.request")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Registra inicio y fin de cada request con un `x-request-id`."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        level: str | int | None = None,
        skip_prefixes: tuple[str, ...] = (),
    ) -> None:
        super().__init__(app)
        self._level = resolve_log_level(level, default=logging.INFO)
        self._skip_prefixes = skip_prefixes

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if self._skip_prefixes and path.startswith(self._skip_prefixes):
            return await call_next(request)

        request_id = uuid4().hex
        start = time.perf_counter()
        client_ip = request.headers.get("x-forwarded-for")
        if client_ip:
            client_ip = client_ip.split(",")[0].strip()
        elif request.client:
            client_ip = request.client.host

        logger.log(
            self._level,
            "request.started",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": path,
                "client_ip": client_ip,
                "campaign": request.headers.get("campaign"),
            },
        )

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request.failed",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": path,
                    "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                },
            )
            raise

        response.headers["x-request-id"] = request_id
        logger.log(
            logging.WARNING if response.status_code >= 500 else self._level,
            "request.completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return response
