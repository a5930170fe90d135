"""
BalanceService: reads and mutates users.balance.

The row store has no multi-row transactions, so every mutation is a
compare-and-swap: read the balance, then patch with `balance=eq.<old>`.
An empty patch result means somebody else wrote in between; re-read and
try again.
"""
import logging
from dataclasses import dataclass

from app.db.row_store import RowStore, RowStoreError, Row, eq
from app.utils.metrics import balance_cas_conflicts_total

logger = logging.getLogger(__name__)

USER_COLUMNS = "user_id,balance,telegram_id,username,first_name,last_name"


class BalanceWriteError(Exception):
    pass


@dataclass(frozen=True)
class BalanceChange:
    user_id: int
    old_balance: int
    new_balance: int

    @property
    def change_amount(self) -> int:
        return self.new_balance - self.old_balance


class BalanceService:
    def __init__(self, store: RowStore, max_attempts: int = 5):
        self.store = store
        self.max_attempts = max(1, max_attempts)

    def get_user(self, user_id: int, columns: str = USER_COLUMNS) -> Row | None:
        """Fresh read of the user row; raises RowStoreError if the store is unreachable."""
        result = self.store.select("users", {"user_id": eq(user_id)}, columns=columns, limit=1)
        if not result.ok:
            raise RowStoreError("users", "select", result.error)
        return result.first

    def apply_delta(self, user: Row, delta: int, floor_at_zero: bool = False) -> BalanceChange:
        """
        Add delta to the user's balance. `user` must be a fresh read; its
        balance is the expected value of the first swap attempt.
        floor_at_zero clamps decrements so the balance never goes negative.
        """
        user_id = user["user_id"]
        row = user
        for attempt in range(1, self.max_attempts + 1):
            expected = row.get("balance")
            old_balance = int(expected or 0)
            new_balance = old_balance + delta
            if floor_at_zero:
                new_balance = max(0, new_balance)

            result = self.store.patch(
                "users",
                {"user_id": eq(user_id), "balance": eq(expected)},
                {"balance": new_balance},
            )
            if not result.ok:
                raise BalanceWriteError(f"balance update failed for user {user_id}: {result.error}")
            if result.rows:
                logger.info(
                    "balance_updated",
                    extra={"user_id": user_id, "old_balance": old_balance, "new_balance": new_balance},
                )
                return BalanceChange(user_id=user_id, old_balance=old_balance, new_balance=new_balance)

            balance_cas_conflicts_total.inc()
            logger.info("balance_cas_conflict", extra={"user_id": user_id, "attempt": attempt})
            try:
                row = self.get_user(user_id, columns="user_id,balance")
            except RowStoreError as e:
                raise BalanceWriteError(str(e)) from e
            if row is None:
                raise BalanceWriteError(f"user {user_id} disappeared during balance update")

        raise BalanceWriteError(
            f"balance update for user {user_id} lost {self.max_attempts} races in a row"
        )
