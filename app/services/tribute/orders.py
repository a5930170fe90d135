"""
Order creation and client status polling for Tribute web payments.

The shadow row in tribute_orders is written after Tribute has minted the
order; a failed write is logged and the payment URL is still returned,
since the webhook (not the shadow row) is the source of truth.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from app.core.config import Settings
from app.db.row_store import Row, RowStore, eq
from app.services.tribute import packages
from app.services.tribute.client import CreateOrderParams, TributeAPIError, TributeClient
from app.services.tribute.outcomes import ORDERS_TABLE, PaymentOutcomeHandler

logger = logging.getLogger(__name__)


class OrderValidationError(Exception):
    pass


@dataclass
class CreatedOrder:
    order_uuid: str
    payment_url: str
    tokens: int
    amount: int


@dataclass
class OrderStatus:
    status: str
    tokens: int | None = None
    paid_at: str | None = None

    def to_dict(self) -> dict:
        data: dict = {"success": True, "status": self.status}
        if self.tokens is not None:
            data["tokens"] = self.tokens
        if self.paid_at is not None:
            data["paidAt"] = self.paid_at
        return data


def _iso(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class OrderService:
    def __init__(
        self,
        settings: Settings,
        store: RowStore,
        tribute: TributeClient,
        outcomes: PaymentOutcomeHandler,
    ) -> None:
        self.store = store
        self.tribute = tribute
        self.outcomes = outcomes
        self.app_url = settings.app_url
        self.currencies = settings.order_currencies_set
        self.silent_sources = settings.silent_sources_set

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def _resolve_purchase(
        self, currency: str, package_id: str | None, custom_tokens: int | None
    ) -> tuple[int, int]:
        """-> (amount in minor units, tokens)"""
        if custom_tokens is not None:
            if not packages.CUSTOM_TOKENS_MIN <= custom_tokens <= packages.CUSTOM_TOKENS_MAX:
                raise OrderValidationError(
                    f"customTokens must be an integer between {packages.CUSTOM_TOKENS_MIN} "
                    f"and {packages.CUSTOM_TOKENS_MAX}"
                )
            return packages.custom_price(custom_tokens, currency), custom_tokens
        if not package_id:
            raise OrderValidationError("Missing packageId or customTokens")
        pkg = packages.find_package(package_id, currency)
        if pkg is None:
            raise OrderValidationError("Package not found")
        return pkg.amount, pkg.tokens

    def _customer_id(self, user_id: int) -> str:
        result = self.store.select("users", {"user_id": eq(user_id)}, columns="tribute_customer_id", limit=1)
        if result.ok and result.first and result.first.get("tribute_customer_id"):
            return str(result.first["tribute_customer_id"])
        return str(user_id)

    def create_order(
        self,
        user_id: int,
        currency: str,
        package_id: str | None = None,
        custom_tokens: int | None = None,
        email: str | None = None,
        source: str | None = None,
        success_url: str | None = None,
        fail_url: str | None = None,
    ) -> CreatedOrder:
        """Mint a Tribute order and persist the pending shadow row. Raises TributeAPIError."""
        currency = (currency or "").lower()
        if currency not in self.currencies:
            allowed = " or ".join(f'"{c}"' for c in sorted(self.currencies))
            raise OrderValidationError(f"Invalid currency. Must be {allowed}")

        amount, tokens = self._resolve_purchase(currency, package_id, custom_tokens)
        tribute_order = self.tribute.create_order(
            CreateOrderParams(
                amount=amount,
                currency=currency,
                title=packages.package_title(tokens),
                description=packages.package_description(tokens),
                success_url=success_url or f"{self.app_url}/payment/success",
                fail_url=fail_url or f"{self.app_url}/payment/fail",
                customer_id=self._customer_id(user_id),
                email=email,
            )
        )

        shadow = {
            "uuid": tribute_order.uuid,
            "user_id": user_id,
            "amount": amount,
            "currency": currency,
            "tokens": tokens,
            "status": "pending",
            "payment_url": tribute_order.payment_url,
            "email": email,
        }
        if source:
            shadow["source"] = source
        saved = self.store.insert(ORDERS_TABLE, shadow)
        if not saved.ok:
            logger.error(
                "order_shadow_write_failed",
                extra={"order_uuid": tribute_order.uuid, "user_id": user_id, "error": saved.error},
            )

        logger.info(
            "order_created",
            extra={"order_uuid": tribute_order.uuid, "user_id": user_id, "tokens": tokens, "source": source},
        )
        return CreatedOrder(
            order_uuid=tribute_order.uuid,
            payment_url=tribute_order.payment_url,
            tokens=tokens,
            amount=amount,
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def _load(self, order_uuid: str) -> Row | None:
        result = self.store.select(ORDERS_TABLE, {"uuid": eq(order_uuid)}, limit=1)
        if not result.ok:
            logger.warning("order_shadow_read_failed", extra={"order_uuid": order_uuid, "error": result.error})
            return None
        return result.first

    def check_order_status(self, order_uuid: str) -> OrderStatus:
        """
        Answer a client poll. A pending shadow row is checked against Tribute
        and settled through the same outcome handlers the webhook uses.
        Raises TributeAPIError only when there is no shadow row to fall back on.
        """
        order = self._load(order_uuid)
        if order is None:
            status = self.tribute.get_order_status(order_uuid)
            return OrderStatus(status=status)

        if order.get("status") == "pending":
            try:
                live_status = self.tribute.get_order_status(order_uuid)
            except TributeAPIError as e:
                logger.warning("order_status_check_failed", extra={"order_uuid": order_uuid, "error": e.message})
                live_status = None

            if live_status == "paid":
                logger.info("order_reconciling", extra={"order_uuid": order_uuid, "status": live_status})
                skip = order.get("source") in self.silent_sources
                self.outcomes.process_success(order, skip_notifications=skip, reconciled=True)
                return self._settled(order_uuid, order, "paid")
            if live_status == "failed":
                self.outcomes.process_failure(order)
                return self._settled(order_uuid, order, "failed")

        return OrderStatus(status=order["status"], tokens=order.get("tokens"), paid_at=_iso(order.get("paid_at")))

    def _settled(self, order_uuid: str, order: Row, expected: str) -> OrderStatus:
        fresh = self._load(order_uuid) or order
        status = fresh.get("status") if fresh is not order else expected
        paid_at = _iso(fresh.get("paid_at"))
        if status == "paid" and paid_at is None:
            paid_at = datetime.now(timezone.utc).isoformat()
        return OrderStatus(status=status, tokens=fresh.get("tokens"), paid_at=paid_at)
