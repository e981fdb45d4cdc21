"""
Rate Limiting Middleware

Per-organization token bucket in Redis.

Each organization gets its own bucket of RATE_LIMIT_BURST tokens that
refills at RATE_LIMIT_PER_MINUTE; both can be overridden per organization
through its settings. If Redis is unavailable the limiter
lets requests through rather than taking the API down.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from typing import Optional, Tuple
import redis
import time
import logging
from ethicsdesk.config import get_settings
from ethicsdesk.utils.logging import log_security_event

logger = logging.getLogger(__name__)
settings = get_settings()

# KEYS[1] bucket hash; ARGV: now, refill per second, burst, ttl.
# Returns {allowed, retry_after}. Read, refill and spend are one atomic step.
TOKEN_BUCKET_SCRIPT = """
local bucket = redis.call("HMGET", KEYS[1], "tokens", "updated_at")
local now = tonumber(ARGV[1])
local rate = tonumber(ARGV[2])
local burst = tonumber(ARGV[3])
local tokens = burst
if bucket[1] then
    local elapsed = math.max(0, now - (tonumber(bucket[2]) or now))
    tokens = math.min(burst, tonumber(bucket[1]) + elapsed * rate)
end
if tokens < 1 then
    return {0, math.floor((1 - tokens) / rate) + 1}
end
redis.call("HSET", KEYS[1], "tokens", tostring(tokens - 1), "updated_at", ARGV[1])
redis.call("EXPIRE", KEYS[1], ARGV[4])
return {1, 0}
"""


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Token bucket rate limiter per organization."""

    def __init__(self, app, redis_client=None):
        super().__init__(app)
        self.enabled = settings.RATE_LIMIT_ENABLED
        self.redis_client = redis_client
        self.redis_available = False
        self._token_bucket = None

        if self.enabled:
            self._connect()

        self.excluded_paths = [
            "/docs",
            "/redoc",
            "/openapi.json",
            "/health",
        ]

    def _connect(self):
        try:
            if self.redis_client is None:
                self.redis_client = redis.from_url(
                    settings.REDIS_URL,
                    decode_responses=True,
                    socket_connect_timeout=5
                )
            self.redis_client.ping()
            self.redis_available = True
            logger.info("Redis connection established for rate limiting")
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.error(f"Redis connection failed, rate limiting disabled: {e}")
            self.redis_available = False

    async def dispatch(self, request: Request, call_next):
        if not self.enabled or not self.redis_available:
            return await call_next(request)

        if any(request.url.path.startswith(path) for path in self.excluded_paths):
            return await call_next(request)

        organization = getattr(request.state, "organization", None)
        if not organization:
            return await call_next(request)

        allowed, retry_after = self._check_rate_limit(organization.id, *self._limits_for(organization))

        if not allowed:
            log_security_event(
                "rate_limit_exceeded",
                {"organization_id": organization.id, "retry_after": retry_after},
                logger
            )
            return JSONResponse(
                status_code=429,
                content={
                    "detail": "Rate limit exceeded. Please try again later.",
                    "retry_after": retry_after
                },
                headers={"Retry-After": str(retry_after)}
            )

        return await call_next(request)

    @staticmethod
    def _limits_for(organization) -> Tuple[int, int]:
        """(per_minute, burst), overridable in the organization's settings."""
        overrides = organization.settings or {}
        return (
            int(overrides.get("rate_limit_per_minute") or settings.RATE_LIMIT_PER_MINUTE),
            int(overrides.get("rate_limit_burst") or settings.RATE_LIMIT_BURST),
        )

    def _check_rate_limit(
        self,
        organization_id: str,
        per_minute: Optional[int] = None,
        burst: Optional[int] = None,
    ) -> Tuple[bool, int]:
        """
        Consume one token from the organization's bucket.

        The bucket is one hash, ``rate_limit:<organization_id>`` with
        ``tokens`` and ``updated_at``. An idle bucket expires once it would
        have refilled anyway. The whole update runs as TOKEN_BUCKET_SCRIPT.

        Returns (allowed, retry_after_seconds).
        """
        per_minute = per_minute or settings.RATE_LIMIT_PER_MINUTE
        burst = burst or settings.RATE_LIMIT_BURST
        refill_per_second = per_minute / 60.0
        key = f"rate_limit:{organization_id}"

        try:
            if self._token_bucket is None:
                self._token_bucket = self.redis_client.register_script(TOKEN_BUCKET_SCRIPT)

            allowed, retry_after = self._token_bucket(
                keys=[key],
                args=[time.time(), refill_per_second, burst, int(burst / refill_per_second) + 1]
            )
            return bool(int(allowed)), int(retry_after)

        except redis.RedisError as e:
            logger.error(f"Redis error in rate limiting: {e}")
            return True, 0
