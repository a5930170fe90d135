"""Tests for PartnerBonusService."""
import pytest

from app.services.partners.service import PartnerBonusService


@pytest.fixture
def partners(store, settings):
    return PartnerBonusService(store, settings)


def _partner(store, user_id=1):
    return store.select("users", {"user_id": f"eq.{user_id}"}).first


class TestPartnerBonus:
    def test_no_ref(self, partners, add_user, store):
        add_user(user_id=42)
        assert partners.process_partner_bonus(42, 10000, "rub") == 0
        assert store.select("partner_transactions", {}).rows == []

    def test_rub_payment(self, partners, add_user, store):
        add_user(user_id=1, username="ivan", partner_percent=20.0, partner_balance_rubles=10.0)
        add_user(user_id=42, ref="ivan")

        assert partners.process_partner_bonus(42, 23000, "rub") == 4600

        tx = store.select("partner_transactions", {}).first
        assert (tx["partner_id"], tx["source_user_id"], tx["currency"]) == (1, 42, "RUB")
        assert _partner(store)["partner_balance_rubles"] == pytest.approx(56.0)

    def test_zero_percent_is_not_a_partner(self, partners, add_user, store):
        add_user(user_id=1, username="ivan", partner_percent=0.0)
        add_user(user_id=42, ref="ivan")

        assert partners.process_partner_bonus(42, 23000, "rub") == 0
        assert store.select("partner_transactions", {}).rows == []

    def test_unknown_partner(self, partners, add_user):
        add_user(user_id=42, ref="ghost")
        assert partners.process_partner_bonus(42, 23000, "rub") == 0

    def test_usd_is_recorded_but_not_converted(self, partners, add_user, store):
        add_user(user_id=1, username="ivan", partner_percent=10.0, partner_balance_rubles=0.0)
        add_user(user_id=42, ref="ivan")

        assert partners.process_partner_bonus(42, 1000, "usd") == 100

        assert store.select("partner_transactions", {}).first["currency"] == "USD"
        assert _partner(store)["partner_balance_rubles"] == 0.0
