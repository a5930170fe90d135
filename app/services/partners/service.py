"""
Partner commission on card payments made by referred users.
"""
import logging
import math

from app.core.config import Settings
from app.db.row_store import RowStore, eq

logger = logging.getLogger(__name__)

PARTNER_COLUMNS = "user_id,username,partner_percent,partner_balance_rubles"
_MAX_BALANCE_ATTEMPTS = 3


class PartnerBonusService:
    def __init__(self, store: RowStore, settings: Settings) -> None:
        self.store = store
        self.eur_to_rub_rate = settings.partner_eur_to_rub_rate

    def process_partner_bonus(self, source_user_id: int, amount: int, currency: str) -> int:
        """
        Credit the buyer's partner with partner_percent of `amount` (minor
        units). Returns the bonus in minor units of `currency`, 0 when the
        buyer has no partner.
        """
        buyer = self.store.select("users", {"user_id": eq(source_user_id)}, columns="user_id,ref", limit=1)
        ref = buyer.first.get("ref") if buyer.ok and buyer.first else None
        if not ref:
            return 0

        found = self.store.select("users", {"username": eq(ref)}, columns=PARTNER_COLUMNS, limit=1)
        partner = found.first if found.ok else None
        if partner is None:
            logger.info("partner_not_found", extra={"user_id": source_user_id, "reason": ref})
            return 0

        percent = float(partner.get("partner_percent") or 0)
        if percent <= 0:
            return 0
        bonus = math.floor(amount * percent / 100)
        if bonus <= 0:
            return 0

        currency_upper = currency.upper()
        recorded = self.store.insert(
            "partner_transactions",
            {
                "partner_id": partner["user_id"],
                "source_user_id": source_user_id,
                "amount": amount,
                "currency": currency_upper,
                "bonus_amount": bonus,
            },
        )
        if not recorded.ok:
            logger.error("partner_transaction_write_failed", extra={"user_id": source_user_id, "error": recorded.error})
            return 0

        if currency_upper == "RUB":
            kopecks = bonus
        elif currency_upper == "EUR":
            kopecks = bonus * self.eur_to_rub_rate
        else:
            logger.warning(
                "partner_bonus_not_converted",
                extra={"user_id": partner["user_id"], "tokens": bonus, "reason": currency_upper},
            )
            return bonus

        self._add_rubles(partner, kopecks / 100)
        logger.info(
            "partner_bonus_credited",
            extra={"user_id": partner["user_id"], "source": str(source_user_id), "tokens": bonus},
        )
        return bonus

    def _add_rubles(self, partner: dict, rubles: float) -> None:
        row = partner
        for _ in range(_MAX_BALANCE_ATTEMPTS):
            current = row.get("partner_balance_rubles")
            updated = self.store.patch(
                "users",
                {"user_id": eq(partner["user_id"]), "partner_balance_rubles": eq(current)},
                {"partner_balance_rubles": round(float(current or 0) + rubles, 2)},
            )
            if not updated.ok or updated.rows:
                if not updated.ok:
                    logger.error(
                        "partner_balance_write_failed",
                        extra={"user_id": partner["user_id"], "error": updated.error},
                    )
                return
            fresh = self.store.select("users", {"user_id": eq(partner["user_id"])}, columns=PARTNER_COLUMNS, limit=1)
            if not fresh.ok or fresh.first is None:
                return
            row = fresh.first
        logger.error("partner_balance_conflict", extra={"user_id": partner["user_id"]})
