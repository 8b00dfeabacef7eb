"""
Request logging middleware with correlation IDs.
"""

import logging
import time
import uuid
from typing import Any, Dict

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ...config.logging_config import add_correlation_id, get_logger

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per request and echoes a correlation ID on the response.

    Health and metrics endpoints polled by orchestrators are not logged unless they fail.
    """

    QUIET_PATHS = frozenset({"/health", "/health/ready", "/ping", "/metrics"})

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        request.state.correlation_id = correlation_id
        request_logger = add_correlation_id(logger, correlation_id)
        context = self._request_context(request)
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            request_logger.error(
                f"{request.method} {request.url.path} raised {type(e).__name__}: {e}",
                exc_info=True,
                extra={**context, "duration": round(time.perf_counter() - started, 3)}
            )
            raise

        duration = time.perf_counter() - started
        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        elif request.url.path in self.QUIET_PATHS:
            level = None
        else:
            level = logging.INFO

        if level is not None:
            request_logger.log(
                level,
                f"{request.method} {request.url.path} -> {response.status_code} ({duration:.3f}s)",
                extra={**context, "status_code": response.status_code, "duration": round(duration, 3)}
            )

        response.headers[CORRELATION_HEADER] = correlation_id
        response.headers["X-Processing-Time"] = f"{duration:.3f}"
        return response

    @staticmethod
    def _request_context(request: Request) -> Dict[str, Any]:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()
        else:
            client_ip = request.client.host if request.client else "unknown"
        return {
            "method": request.method,
            "path": request.url.path,
            "query": str(request.url.query) or None,
            "client_ip": client_ip,
            "user_agent": request.headers.get("user-agent", "unknown"),
        }
