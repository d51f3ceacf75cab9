from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from src.core.exceptions.handler import ErrorResponseBuilder, ServiceErrorCode
from src.infra.config.settings import get_settings
from src.core.logger.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

# Never rate limited
EXEMPT_PATHS = ("/", "/redoc", "/openapi.json", "/api/v1/health")


class EndpointRateLimiter:
    """Sliding one-minute window per (endpoint group, client IP)."""

    def __init__(
        self,
        endpoint_limits: Optional[Dict[str, int]] = None,
        default_limit: Optional[int] = None
    ):
        # endpoint group -> IP -> timestamps
        self.endpoint_requests: Dict[str, Dict[str, List[datetime]]] = {}
        self.endpoint_limits = dict(settings.RATE_LIMIT_ENDPOINTS if endpoint_limits is None else endpoint_limits)
        self.default_limit = settings.RATE_LIMIT_DEFAULT if default_limit is None else default_limit

    def resolve_endpoint(self, path: str) -> Tuple[str, int]:
        """Longest configured prefix wins; everything else shares the default bucket"""
        matches = [prefix for prefix in self.endpoint_limits if path == prefix or path.startswith(prefix + "/")]
        if not matches:
            return "default", self.default_limit
        prefix = max(matches, key=len)
        return prefix, self.endpoint_limits[prefix]

    def is_rate_limited(self, ip: str, endpoint: str, limit: int) -> Tuple[bool, int, datetime]:
        """
        Check if IP is rate limited for an endpoint group.
        Returns: (is_limited, current_count, reset_time)
        """
        now = datetime.utcnow()
        requests = self.endpoint_requests.setdefault(endpoint, {})

        # Drop requests older than the window
        if ip in requests:
            requests[ip] = [ts for ts in requests[ip] if now - ts < timedelta(minutes=1)]
            if not requests[ip]:
                del requests[ip]

        timestamps = requests.get(ip, [])
        current_count = len(timestamps)
        reset_time = (timestamps[0] if timestamps else now) + timedelta(minutes=1)

        return current_count >= limit, current_count, reset_time

    def add_request(self, ip: str, endpoint: str):
        self.endpoint_requests.setdefault(endpoint, {}).setdefault(ip, []).append(datetime.utcnow())

    def reset(self):
        self.endpoint_requests.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Gateway rate limiting with X-RateLimit-* headers and 429 + Retry-After."""

    def __init__(self, app, limiter: Optional[EndpointRateLimiter] = None):
        super().__init__(app)
        self.rate_limiter = limiter or EndpointRateLimiter()

    def _get_client_ip(self, request: Request) -> str:
        """Get client IP, handling proxies."""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            # Take the first IP in the chain
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

        return request.client.host if request.client else "unknown"

    def _create_rate_limit_response(self, request: Request, current_count: int, limit: int,
                                    reset_time: datetime) -> Response:
        retry_after = max(1, int((reset_time - datetime.utcnow()).total_seconds() + 0.999))
        content = ErrorResponseBuilder.build_error_response(
            error_code=ServiceErrorCode.RATE_LIMIT_EXCEEDED,
            message=f"Rate limit exceeded. Maximum {limit} requests per minute.",
            status_code=429,
            details={"limit": limit, "current": current_count, "retry_after": retry_after},
            request_id=request.headers.get("X-Request-ID")
        )
        response = JSONResponse(status_code=429, content=content)
        response.headers["Retry-After"] = str(retry_after)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = "0"
        response.headers["X-RateLimit-Reset"] = str(int(reset_time.timestamp()))
        return response

    async def dispatch(self, request: Request, call_next) -> Response:
        # Skip CORS preflight requests and docs/health
        if request.method == "OPTIONS" or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        ip = self._get_client_ip(request)
        endpoint, limit = self.rate_limiter.resolve_endpoint(request.url.path)

        is_limited, current_count, reset_time = self.rate_limiter.is_rate_limited(ip, endpoint, limit)
        if is_limited:
            logger.warning(
                "Rate limit exceeded",
                extra={"client_ip": ip, "endpoint": endpoint, "count": current_count, "limit": limit}
            )
            return self._create_rate_limit_response(request, current_count, limit, reset_time)

        self.rate_limiter.add_request(ip, endpoint)
        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, limit - current_count - 1))
        response.headers["X-RateLimit-Reset"] = str(int(reset_time.timestamp()))
        return response
