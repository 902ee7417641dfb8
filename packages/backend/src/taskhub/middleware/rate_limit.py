"""Rate limiting middleware — Redis-based fixed window per minute.

Learn: Each client IP gets a counter key like
"taskhub:rl:{ip}:{bucket}:{minute}". Webhook receivers get their own,
larger bucket: providers burst on redelivery, and one noisy sender must
not eat the API budget of browser clients behind the same NAT.

Gracefully skips rate limiting if Redis is unavailable (e.g., in tests).
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from taskhub.redis_client import get_redis

logger = structlog.get_logger()

WEBHOOK_PATH_PREFIX = "/api/v1/webhooks/"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per IP per minute."""

    def __init__(self, app, default_rpm: int = 100, webhook_rpm: int = 300):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.webhook_rpm = webhook_rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            redis = get_redis()
        except RuntimeError:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        is_webhook = request.url.path.startswith(WEBHOOK_PATH_PREFIX)
        rpm = self.webhook_rpm if is_webhook else self.default_rpm
        bucket = "webhook" if is_webhook else "api"

        window = int(time.time() // 60)
        key = f"taskhub:rl:{client_ip}:{bucket}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, 120)  # 2-min TTL for safety
        except Exception as e:
            # Redis error, don't block the request
            logger.warning("ratelimit.redis_error", error=str(e))
            return await call_next(request)

        if count > rpm:
            logger.info("ratelimit.exceeded", ip=client_ip, bucket=bucket)
            return JSONResponse(
                status_code=429,
                content={"success": False, "message": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rpm - count))
        return response
