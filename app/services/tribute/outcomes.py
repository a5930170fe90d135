"""
Outcome handlers for Tribute orders: success, failure, refund.

Each handler first claims the order with a single conditional status
update (`status=eq.<expected>`). Only the caller whose update returns the
row goes on to touch the balance; an empty result means another delivery
or the status poll already handled this order. If the balance write then
fails, the claim is released and the error propagates so the sender
retries the whole event.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from app.db.row_store import RowStore, RowStoreError, eq
from app.services.balance.service import BalanceService, BalanceWriteError
from app.services.balance_audit.service import BalanceAuditService, BalanceChangeReason
from app.services.notifications.service import PaymentNotifier
from app.services.partners.service import PartnerBonusService
from app.services.promo import PromoRules
from app.utils.detached import DetachedRunner

logger = logging.getLogger(__name__)

ORDERS_TABLE = "tribute_orders"


class OutcomeStatus(str, Enum):
    APPLIED = "applied"
    ALREADY_PROCESSED = "already_processed"
    USER_NOT_FOUND = "user_not_found"


@dataclass
class OutcomeResult:
    status: OutcomeStatus
    tokens: int = 0
    old_balance: int | None = None
    new_balance: int | None = None

    @property
    def already_processed(self) -> bool:
        return self.status == OutcomeStatus.ALREADY_PROCESSED


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PaymentOutcomeHandler:
    def __init__(
        self,
        store: RowStore,
        balances: BalanceService,
        audit: BalanceAuditService,
        notifier: PaymentNotifier,
        partners: PartnerBonusService,
        promo: PromoRules,
        runner: DetachedRunner,
    ) -> None:
        self.store = store
        self.balances = balances
        self.audit = audit
        self.notifier = notifier
        self.partners = partners
        self.promo = promo
        self.runner = runner

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def _claim(self, order_uuid: str, expected: str, values: dict[str, Any]) -> bool:
        result = self.store.patch(ORDERS_TABLE, {"uuid": eq(order_uuid), "status": eq(expected)}, values)
        if not result.ok:
            raise RowStoreError(ORDERS_TABLE, "patch", result.error)
        return bool(result.rows)

    def _release(self, order_uuid: str, claimed: str, values: dict[str, Any]) -> None:
        result = self.store.patch(ORDERS_TABLE, {"uuid": eq(order_uuid), "status": eq(claimed)}, values)
        if not result.ok or not result.rows:
            logger.error(
                "order_claim_release_failed",
                extra={"order_uuid": order_uuid, "status": claimed, "error": result.error},
            )
        else:
            logger.warning("order_claim_released", extra={"order_uuid": order_uuid, "status": claimed})

    # ------------------------------------------------------------------
    # Success
    # ------------------------------------------------------------------

    def process_success(
        self,
        order: dict,
        email: str | None = None,
        skip_notifications: bool = False,
        reconciled: bool = False,
    ) -> OutcomeResult:
        """
        Credit order.tokens (plus promo bonus) to the buyer and mark the
        order paid. reconciled=True when the status poll saw the payment
        before the webhook did.
        """
        order_uuid = order["uuid"]
        user_id = order["user_id"]

        if not self._claim(order_uuid, "pending", {"status": "paid", "paid_at": _now()}):
            logger.info("payment_already_processed", extra={"order_uuid": order_uuid})
            return OutcomeResult(OutcomeStatus.ALREADY_PROCESSED)

        base_tokens = int(order.get("tokens") or 0)
        bonus_tokens = self.promo.bonus_tokens(base_tokens)
        tokens_to_add = base_tokens + bonus_tokens

        try:
            user = self.balances.get_user(user_id)
            if user is None:
                logger.error(
                    "payment_user_not_found",
                    extra={"order_uuid": order_uuid, "user_id": user_id, "tokens": tokens_to_add},
                )
                return OutcomeResult(OutcomeStatus.USER_NOT_FOUND)
            change = self.balances.apply_delta(user, tokens_to_add)
        except (RowStoreError, BalanceWriteError):
            self._release(order_uuid, "paid", {"status": "pending", "paid_at": None})
            raise

        self.audit.log_balance_change_detached(
            user_id,
            change.old_balance,
            change.new_balance,
            BalanceChangeReason.PAYMENT,
            reference_id=order_uuid,
            metadata={
                "source": "tribute_web_reconcile" if reconciled else "tribute_web",
                "base_tokens": base_tokens,
                "bonus_tokens": bonus_tokens,
                "promo_active": bonus_tokens > 0,
                "currency": order.get("currency"),
                "amount": order.get("amount"),
            },
        )
        self.runner.spawn(
            self.partners.process_partner_bonus,
            user_id,
            int(order.get("amount") or 0),
            order.get("currency") or "",
        )
        logger.info(
            "payment_completed",
            extra={
                "order_uuid": order_uuid,
                "user_id": user_id,
                "tokens": tokens_to_add,
                "old_balance": change.old_balance,
                "new_balance": change.new_balance,
            },
        )

        try:
            self.notifier.payment_succeeded(
                order,
                user,
                tokens_to_add,
                bonus_tokens=bonus_tokens,
                email=email,
                notify_buyer=not skip_notifications,
                reconciled=reconciled,
            )
        except Exception:
            logger.exception("payment_notification_failed", extra={"order_uuid": order_uuid})

        return OutcomeResult(
            OutcomeStatus.APPLIED,
            tokens=tokens_to_add,
            old_balance=change.old_balance,
            new_balance=change.new_balance,
        )

    # ------------------------------------------------------------------
    # Failure
    # ------------------------------------------------------------------

    def process_failure(self, order: dict) -> OutcomeResult:
        order_uuid = order["uuid"]
        if not self._claim(order_uuid, "pending", {"status": "failed"}):
            logger.info("payment_failure_ignored", extra={"order_uuid": order_uuid, "status": order.get("status")})
            return OutcomeResult(OutcomeStatus.ALREADY_PROCESSED)
        logger.info("payment_failed", extra={"order_uuid": order_uuid, "user_id": order.get("user_id")})
        return OutcomeResult(OutcomeStatus.APPLIED)

    # ------------------------------------------------------------------
    # Refund
    # ------------------------------------------------------------------

    def process_refund(self, order: dict, skip_notifications: bool = False) -> OutcomeResult:
        """
        Revoke order.tokens (balance clamped at 0) and mark the order
        refunded. A refund of a still-pending order only flips the status.
        """
        order_uuid = order["uuid"]
        user_id = order["user_id"]
        refunded_at = _now()

        if not self._claim(order_uuid, "paid", {"status": "refunded", "refunded_at": refunded_at}):
            if not self._claim(order_uuid, "pending", {"status": "refunded", "refunded_at": refunded_at}):
                logger.info("refund_already_processed", extra={"order_uuid": order_uuid})
                return OutcomeResult(OutcomeStatus.ALREADY_PROCESSED)
            # never credited, nothing to revoke
            logger.warning("refund_before_payment", extra={"order_uuid": order_uuid, "user_id": user_id})
            try:
                self.notifier.payment_refunded(order, None, 0, notify_buyer=False)
            except Exception:
                logger.exception("refund_notification_failed", extra={"order_uuid": order_uuid})
            return OutcomeResult(OutcomeStatus.APPLIED)

        tokens = int(order.get("tokens") or 0)
        try:
            user = self.balances.get_user(user_id)
            if user is None:
                logger.error(
                    "refund_user_not_found",
                    extra={"order_uuid": order_uuid, "user_id": user_id, "tokens": tokens},
                )
                return OutcomeResult(OutcomeStatus.USER_NOT_FOUND)
            change = self.balances.apply_delta(user, -tokens, floor_at_zero=True)
        except (RowStoreError, BalanceWriteError):
            self._release(order_uuid, "refunded", {"status": "paid", "refunded_at": None})
            raise

        tokens_revoked = change.old_balance - change.new_balance
        self.audit.log_balance_change_detached(
            user_id,
            change.old_balance,
            change.new_balance,
            BalanceChangeReason.REFUND,
            reference_id=order_uuid,
            metadata={
                "source": "tribute_refund",
                "tokens_revoked": tokens_revoked,
                "order_tokens": tokens,
                "currency": order.get("currency"),
                "amount": order.get("amount"),
            },
        )
        logger.info(
            "refund_completed",
            extra={
                "order_uuid": order_uuid,
                "user_id": user_id,
                "tokens": tokens_revoked,
                "old_balance": change.old_balance,
                "new_balance": change.new_balance,
            },
        )

        try:
            self.notifier.payment_refunded(order, user, tokens_revoked, notify_buyer=not skip_notifications)
        except Exception:
            logger.exception("refund_notification_failed", extra={"order_uuid": order_uuid})

        return OutcomeResult(
            OutcomeStatus.APPLIED,
            tokens=tokens_revoked,
            old_balance=change.old_balance,
            new_balance=change.new_balance,
        )
