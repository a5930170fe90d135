"""
Per-user rate limit on order creation, stored in Redis.
Disabled when redis_url is not set; fails open when Redis is down.
"""
import logging

import redis

from app.core.config import Settings

logger = logging.getLogger("auth")


class PurchaseRateLimiter:
    def __init__(self, settings: Settings, client: redis.Redis | None = None) -> None:
        self.limit = settings.purchase_rate_limit
        self.window_seconds = settings.purchase_rate_window_seconds
        self._client = client
        if self._client is None and settings.redis_url:
            self._client = redis.Redis.from_url(settings.redis_url, decode_responses=True)

    @property
    def enabled(self) -> bool:
        return self._client is not None and self.limit > 0

    def check(self, user_id: int) -> bool:
        """
        Check if an order creation is allowed. Returns True if allowed, False if rate limited.
        Increments counter on each call.
        """
        if not self.enabled:
            return True
        try:
            key = f"purchase_attempts:{user_id}"
            current = self._client.incr(key)
            if current == 1:
                self._client.expire(key, self.window_seconds)
            if current > self.limit:
                logger.warning("purchase_rate_limited", extra={"user_id": user_id, "reason": f"attempts={current}"})
                return False
            return True
        except redis.RedisError as e:
            logger.warning("purchase_rate_limit_redis_error", extra={"error": str(e)})
            return True  # Fail open - never block a purchase because Redis is down
