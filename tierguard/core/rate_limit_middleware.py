from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from fastapi import Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from tierguard.core.config import settings
from tierguard.core.exceptions import AuthResolutionError
from tierguard.core.firebase import verify_firebase_token
from tierguard.core.redis_cache import RedisCache, get_cache

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Fixed-window rate limiting on the billing endpoints, per user when the
    bearer token verifies and per client IP otherwise. Requests pass through
    when Redis is unavailable.
    """

    def __init__(self, app: ASGIApp, cache: Optional[RedisCache] = None,
                 per_minute: Optional[int] = None, enabled: Optional[bool] = None):
        super().__init__(app)
        self.cache = cache or get_cache()
        self.per_minute = per_minute if per_minute is not None else settings.billing_requests_per_minute
        self.enabled = enabled if enabled is not None else settings.rate_limit_enabled
        self.prefix = f"{settings.api_v1_str}/billing"

    async def dispatch(self, request: Request, call_next):
        if not self.enabled or not request.url.path.startswith(self.prefix):
            return await call_next(request)

        subject = await self._get_subject(request)
        current_minute = datetime.now(timezone.utc).replace(second=0, microsecond=0)
        key = f"rate_limit:billing:{subject}:minute:{current_minute.isoformat()}"

        count = await run_in_threadpool(self.cache.incr, key)
        if count is None:
            # Redis unavailable
            return await call_next(request)
        if count == 1:
            await run_in_threadpool(self.cache.expire, key, 60)

        if count > self.per_minute:
            logger.warning(f"Rate limit exceeded (per minute) - {subject}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "detail": "Rate limit exceeded. Please try again later.",
                    "retry_after": 60
                },
                headers={
                    "Retry-After": "60",
                    "X-RateLimit-Limit": str(self.per_minute),
                    "X-RateLimit-Remaining": "0",
                }
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.per_minute)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.per_minute - count))
        response.headers["X-RateLimit-Reset"] = str(int((current_minute + timedelta(minutes=1)).timestamp()))
        return response

    async def _get_subject(self, request: Request) -> str:
        auth_header = request.headers.get('Authorization')
        if auth_header and auth_header.startswith('Bearer '):
            token = auth_header.split(' ', 1)[1]
            try:
                decoded_token = await run_in_threadpool(verify_firebase_token, token)
            except AuthResolutionError as e:
                # The auth dependency reports the error; limit by IP meanwhile
                logger.debug(f"Rate limit middleware: Could not verify token: {e.code}")
                decoded_token = None
            if decoded_token and decoded_token.get('uid'):
                return f"user:{decoded_token['uid']}"
        return f"ip:{self._get_client_ip(request)}"

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP address from request"""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"
