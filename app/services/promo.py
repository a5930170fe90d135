"""
Seasonal promo: extra tokens on every card payment inside a configured window.
"""
import math
from datetime import datetime, timezone

from app.core.config import Settings


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class PromoRules:
    def __init__(self, settings: Settings) -> None:
        self.start = _aware(settings.promo_start) if settings.promo_start else None
        self.end = _aware(settings.promo_end) if settings.promo_end else None
        self.multiplier = settings.promo_bonus_multiplier

    def is_active(self, now: datetime | None = None) -> bool:
        if self.start is None or self.end is None:
            return False
        now = _aware(now) if now else datetime.now(timezone.utc)
        return self.start <= now <= self.end

    def bonus_tokens(self, base_tokens: int, now: datetime | None = None) -> int:
        """Extra tokens on top of base_tokens (0 outside the promo window)."""
        if not self.is_active(now):
            return 0
        return math.floor(base_tokens * self.multiplier) - base_tokens
