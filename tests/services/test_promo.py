"""Tests for PromoRules."""
from datetime import datetime, timedelta, timezone

from app.services.promo import PromoRules


def _rules(settings, start, end, multiplier=1.5):
    settings.promo_start = start
    settings.promo_end = end
    settings.promo_bonus_multiplier = multiplier
    return PromoRules(settings)


class TestPromoRules:
    def test_unconfigured(self, settings):
        rules = PromoRules(settings)
        assert rules.is_active() is False
        assert rules.bonus_tokens(100) == 0

    def test_inside_window(self, settings):
        start = datetime(2026, 3, 1, tzinfo=timezone.utc)
        rules = _rules(settings, start, start + timedelta(days=7))

        now = start + timedelta(days=1)
        assert rules.is_active(now) is True
        assert rules.bonus_tokens(120, now) == 60

    def test_bonus_is_floored(self, settings):
        start = datetime(2026, 3, 1, tzinfo=timezone.utc)
        rules = _rules(settings, start, start + timedelta(days=7))

        assert rules.bonus_tokens(51, start) == 25

    def test_outside_window(self, settings):
        start = datetime(2026, 3, 1, tzinfo=timezone.utc)
        rules = _rules(settings, start, start + timedelta(days=7))

        assert rules.bonus_tokens(100, start - timedelta(seconds=1)) == 0
        assert rules.bonus_tokens(100, start + timedelta(days=8)) == 0

    def test_naive_datetimes_are_utc(self, settings):
        rules = _rules(settings, datetime(2026, 3, 1), datetime(2026, 3, 2))
        assert rules.is_active(datetime(2026, 3, 1, 12, tzinfo=timezone.utc)) is True
