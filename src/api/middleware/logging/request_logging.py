import time
import traceback
from typing import Optional
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from src.core.logger.logger import get_logger

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One structured log line per request, correlated by X-Request-ID"""

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.perf_counter()

        # Get or generate correlation ID
        correlation_id = request.headers.get("X-Request-ID") or str(uuid4())

        log_context = {
            "request_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "query": request.url.query or None,
            "client_ip": request.client.host if request.client else "unknown",
        }

        response: Optional[Response] = None
        try:
            response = await call_next(request)
        except Exception as e:
            log_context.update({
                "error": str(e),
                "error_type": e.__class__.__name__,
                "stack_trace": traceback.format_exc(),
                "duration_ms": round((time.perf_counter() - start_time) * 1000, 2)
            })
            logger.error("Request failed", extra=log_context)
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        log_context.update({
            "status_code": response.status_code,
            "duration_ms": duration_ms
        })

        response.headers["X-Request-ID"] = correlation_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"

        if response.status_code >= 500:
            logger.error("Request completed", extra=log_context)
        elif response.status_code >= 400:
            logger.warning("Request completed", extra=log_context)
        else:
            logger.info("Request completed", extra=log_context)

        return response
