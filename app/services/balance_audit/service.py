"""
BalanceAuditService: append-only ledger of balance mutations, plus the
double-refund-proof refund primitive used by generation flows.

The ledger is forensic only: it is never read back to compute a balance,
and a failed ledger write never undoes the mutation it describes.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from app.db.row_store import RowStore, RowStoreError, eq
from app.services.balance.service import BalanceService, BalanceWriteError
from app.utils.detached import DetachedRunner
from app.utils.metrics import balance_changes_total

logger = logging.getLogger(__name__)


class BalanceChangeReason(str, Enum):
    GENERATION = "generation"          # spend on a generation
    REFUND = "refund"                  # tokens returned (failed generation, payment refund)
    PAYMENT = "payment"                # top-up
    SPIN = "spin"
    WHEEL = "wheel"
    ADMIN = "admin"                    # manual change by an operator
    WATERMARK = "watermark"
    CHAT = "chat"
    EDITOR = "editor"
    CHANNEL_REWARD = "channel_reward"
    REFERRAL = "referral"
    PROMO = "promo"


@dataclass
class SafeRefundResult:
    success: bool
    already_refunded: bool = False
    new_balance: int | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"success": self.success}
        if self.already_refunded:
            data["alreadyRefunded"] = True
        if self.new_balance is not None:
            data["newBalance"] = self.new_balance
        if self.error:
            data["error"] = self.error
        return data


class BalanceAuditService:
    def __init__(self, store: RowStore, balances: BalanceService, runner: DetachedRunner):
        self.store = store
        self.balances = balances
        self.runner = runner

    def log_balance_change(
        self,
        user_id: int,
        old_balance: int,
        new_balance: int,
        reason: BalanceChangeReason | str,
        reference_id: str | int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Insert one ledger row. Never raises."""
        reason_value = reason.value if isinstance(reason, BalanceChangeReason) else str(reason)
        balance_changes_total.labels(reason=reason_value).inc()
        entry = {
            "user_id": user_id,
            "old_balance": old_balance,
            "new_balance": new_balance,
            "change_amount": new_balance - old_balance,
            "reason": reason_value,
            "reference_id": str(reference_id) if reference_id is not None else None,
            "metadata": metadata or {},
        }
        try:
            result = self.store.insert("balance_audit_log", entry)
        except Exception:
            logger.exception("balance_audit_write_error", extra={"user_id": user_id, "reason": reason_value})
            return
        if not result.ok:
            logger.error(
                "balance_audit_write_failed",
                extra={"user_id": user_id, "reason": reason_value, "error": result.error},
            )

    def log_balance_change_detached(
        self,
        user_id: int,
        old_balance: int,
        new_balance: int,
        reason: BalanceChangeReason | str,
        reference_id: str | int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Same as log_balance_change, without waiting for the write."""
        self.runner.spawn(
            self.log_balance_change,
            user_id,
            old_balance,
            new_balance,
            reason,
            reference_id,
            metadata,
        )

    # ------------------------------------------------------------------
    # Safe refund
    # ------------------------------------------------------------------

    def safe_refund(
        self,
        generation_id: int | str,
        user_id: int,
        amount: int,
        metadata: dict[str, Any] | None = None,
    ) -> SafeRefundResult:
        """
        Return `amount` tokens for a generation at most once.

        generations.refunded is flipped false -> true with a conditional
        patch; only the caller whose patch returns the row credits the
        balance. Everybody else gets already_refunded=True.
        """
        if not generation_id or not user_id or amount <= 0:
            return SafeRefundResult(success=False, error="Invalid params")

        claim = self.store.patch(
            "generations",
            {"id": eq(generation_id), "refunded": eq(False)},
            {"refunded": True},
        )
        if not claim.ok:
            logger.error(
                "safe_refund_claim_failed",
                extra={"generation_id": generation_id, "user_id": user_id, "error": claim.error},
            )
            return SafeRefundResult(success=False, error=claim.error or "Failed to mark generation refunded")
        if not claim.rows:
            logger.info("safe_refund_already_refunded", extra={"generation_id": generation_id})
            return SafeRefundResult(success=False, already_refunded=True)

        try:
            user = self.balances.get_user(user_id, columns="user_id,balance")
            if user is None:
                # Flag stays set: the refund is owed but needs manual follow-up
                logger.error(
                    "safe_refund_user_not_found",
                    extra={"generation_id": generation_id, "user_id": user_id},
                )
                return SafeRefundResult(success=False, error="User not found")
            change = self.balances.apply_delta(user, amount)
        except (RowStoreError, BalanceWriteError) as e:
            logger.error(
                "safe_refund_balance_failed",
                extra={"generation_id": generation_id, "user_id": user_id, "error": str(e)},
            )
            return SafeRefundResult(success=False, error=str(e))

        self.log_balance_change_detached(
            user_id,
            change.old_balance,
            change.new_balance,
            BalanceChangeReason.REFUND,
            reference_id=generation_id,
            metadata={**(metadata or {}), "protected": True},
        )
        logger.info(
            "safe_refund_completed",
            extra={
                "generation_id": generation_id,
                "user_id": user_id,
                "old_balance": change.old_balance,
                "new_balance": change.new_balance,
            },
        )
        return SafeRefundResult(success=True, new_balance=change.new_balance)
