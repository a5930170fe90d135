"""
FastAPI dependencies: process-wide service graph and request auth.

Services are built once per process from `settings`; tests replace them
through app.dependency_overrides.
"""
import hmac
from functools import lru_cache

from fastapi import Depends, Header, Request

from app.core.config import Settings, settings
from app.db.postgrest import PostgrestRowStore
from app.db.row_store import RowStore
from app.db.session import build_engine
from app.db.sql_store import SqlRowStore
from app.services.auth.purchase_rate_limit import PurchaseRateLimiter
from app.services.auth.telegram_init_data import validate_init_data
from app.services.balance.service import BalanceService
from app.services.balance_audit.service import BalanceAuditService
from app.services.notifications.service import PaymentNotifier
from app.services.partners.service import PartnerBonusService
from app.services.promo import PromoRules
from app.services.telegram.client import TelegramClient
from app.services.tribute.client import TributeClient
from app.services.tribute.orders import OrderService
from app.services.tribute.outcomes import PaymentOutcomeHandler
from app.services.tribute.webhook import WebhookProcessor
from app.utils.detached import DetachedRunner


class ApiError(Exception):
    """Rendered as {"success": false, "error": message}."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def get_settings() -> Settings:
    return settings


@lru_cache
def get_row_store() -> RowStore:
    if settings.row_store_backend == "sql":
        store = SqlRowStore(build_engine(settings.database_url))
        store.create_all()
        return store
    return PostgrestRowStore(
        settings.supabase_url,
        settings.supabase_service_role_key,
        timeout=settings.http_client_timeout,
    )


@lru_cache
def get_runner() -> DetachedRunner:
    return DetachedRunner(max_workers=settings.detached_max_workers)


@lru_cache
def get_tribute_client() -> TributeClient:
    return TributeClient(settings)


@lru_cache
def get_telegram_client() -> TelegramClient:
    return TelegramClient(settings)


@lru_cache
def get_balance_service() -> BalanceService:
    return BalanceService(get_row_store(), max_attempts=settings.balance_cas_max_attempts)


@lru_cache
def get_balance_audit_service() -> BalanceAuditService:
    return BalanceAuditService(get_row_store(), get_balance_service(), get_runner())


@lru_cache
def get_outcome_handler() -> PaymentOutcomeHandler:
    return PaymentOutcomeHandler(
        store=get_row_store(),
        balances=get_balance_service(),
        audit=get_balance_audit_service(),
        notifier=PaymentNotifier(settings, get_telegram_client(), get_runner()),
        partners=PartnerBonusService(get_row_store(), settings),
        promo=PromoRules(settings),
        runner=get_runner(),
    )


@lru_cache
def get_webhook_processor() -> WebhookProcessor:
    return WebhookProcessor(settings, get_row_store(), get_outcome_handler())


@lru_cache
def get_order_service() -> OrderService:
    return OrderService(settings, get_row_store(), get_tribute_client(), get_outcome_handler())


@lru_cache
def get_rate_limiter() -> PurchaseRateLimiter:
    return PurchaseRateLimiter(settings)


def _init_data_from_request(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    scheme, _, value = auth.partition(" ")
    if scheme.lower() == "tma" and value:
        return value.strip()
    return request.headers.get("X-Telegram-Init-Data")


def get_current_user_id(request: Request, config: Settings = Depends(get_settings)) -> int:
    """Acting user id from Telegram Mini App initData; 401 otherwise."""
    user = validate_init_data(
        _init_data_from_request(request) or "",
        config.telegram_bot_token,
        max_age_seconds=config.telegram_init_data_max_age_seconds,
    )
    if user is None:
        raise ApiError(401, "Unauthorized")
    return user.id


def require_admin_key(
    x_admin_key: str | None = Header(default=None),
    config: Settings = Depends(get_settings),
) -> None:
    if not config.admin_api_key:
        raise ApiError(503, "Internal API is not configured")
    if not x_admin_key or not hmac.compare_digest(x_admin_key.encode(), config.admin_api_key.encode()):
        raise ApiError(403, "Forbidden")


def shutdown_services() -> None:
    """Flush detached work and close HTTP clients (only those already built)."""
    if get_runner.cache_info().currsize:
        get_runner().shutdown(wait=True)
    if get_tribute_client.cache_info().currsize:
        get_tribute_client().close()
    if get_telegram_client.cache_info().currsize:
        get_telegram_client().close()
    if get_row_store.cache_info().currsize:
        store = get_row_store()
        if isinstance(store, PostgrestRowStore):
            store.close()
