"""
Shared fixtures: real services over a SQLite-backed SqlRowStore, with
Tribute and Telegram replaced by mocks and detached work run inline.
"""
import hashlib
import hmac
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from app.core.config import Settings
from app.db.session import build_engine
from app.db.sql_store import SqlRowStore
from app.services.balance.service import BalanceService
from app.services.balance_audit.service import BalanceAuditService
from app.services.notifications.service import PaymentNotifier
from app.services.partners.service import PartnerBonusService
from app.services.promo import PromoRules
from app.services.tribute.orders import OrderService
from app.services.tribute.outcomes import PaymentOutcomeHandler
from app.services.tribute.webhook import WebhookProcessor
from app.utils.detached import DetachedRunner

WEBHOOK_SECRET = "test-tribute-key"
OWNER_CHAT_ID = "999000"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        tribute_api_key=WEBHOOK_SECRET,
        telegram_bot_token="123:bot-token",
        owner_telegram_id=OWNER_CHAT_ID,
        row_store_backend="sql",
        tribute_silent_sources="aiverse_hub_bot",
        redis_url=None,
        promo_start=None,
        promo_end=None,
    )


@pytest.fixture
def store(tmp_path):
    row_store = SqlRowStore(build_engine(f"sqlite:///{tmp_path / 'rows.db'}"))
    row_store.create_all()
    return row_store


@pytest.fixture
def runner():
    return DetachedRunner(inline=True)


@pytest.fixture
def telegram():
    client = MagicMock()
    client.enabled = True
    return client


@pytest.fixture
def tribute():
    return MagicMock()


@pytest.fixture
def services(settings, store, runner, telegram, tribute):
    balances = BalanceService(store, max_attempts=settings.balance_cas_max_attempts)
    audit = BalanceAuditService(store, balances, runner)
    outcomes = PaymentOutcomeHandler(
        store=store,
        balances=balances,
        audit=audit,
        notifier=PaymentNotifier(settings, telegram, runner),
        partners=PartnerBonusService(store, settings),
        promo=PromoRules(settings),
        runner=runner,
    )
    return SimpleNamespace(
        balances=balances,
        audit=audit,
        outcomes=outcomes,
        webhook=WebhookProcessor(settings, store, outcomes),
        orders=OrderService(settings, store, tribute, outcomes),
    )


@pytest.fixture
def add_user(store):
    def _add(user_id=42, balance=50, **extra):
        row = {"user_id": user_id, "balance": balance, "telegram_id": user_id * 10, **extra}
        assert store.insert("users", row).ok
        return row

    return _add


@pytest.fixture
def add_order(store):
    def _add(order_uuid="abc-123", user_id=42, tokens=100, status="pending", **extra):
        row = {
            "uuid": order_uuid,
            "user_id": user_id,
            "amount": 500,
            "currency": "eur",
            "tokens": tokens,
            "status": status,
            "payment_url": f"https://pay.example/{order_uuid}",
            **extra,
        }
        assert store.insert("tribute_orders", row).ok
        return row

    return _add


@pytest.fixture
def balance_of(store):
    def _get(user_id=42):
        return store.select("users", {"user_id": f"eq.{user_id}"}, columns="balance").first["balance"]

    return _get


@pytest.fixture
def order_row(store):
    def _get(order_uuid="abc-123"):
        return store.select("tribute_orders", {"uuid": f"eq.{order_uuid}"}).first

    return _get


@pytest.fixture
def audit_rows(store):
    def _get(user_id=42):
        return store.select("balance_audit_log", {"user_id": f"eq.{user_id}"}).rows

    return _get


def _sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def _envelope(name, **payload) -> bytes:
    return json.dumps({
        "name": name,
        "created_at": "2026-01-10T10:00:00Z",
        "sent_at": "2026-01-10T10:00:01Z",
        "payload": payload,
    }).encode()


@pytest.fixture
def sign():
    return _sign


@pytest.fixture
def envelope():
    return _envelope
