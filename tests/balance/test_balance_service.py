"""Tests for BalanceService: compare-and-swap balance writes."""
from unittest.mock import MagicMock

import pytest

from app.db.row_store import RowStoreError, RowStoreResult
from app.services.balance.service import BalanceService, BalanceWriteError


class TestApplyDelta:
    def test_increment(self, store, add_user, balance_of):
        add_user(balance=50)
        svc = BalanceService(store)

        change = svc.apply_delta(svc.get_user(42), 25)

        assert (change.old_balance, change.new_balance, change.change_amount) == (50, 75, 25)
        assert balance_of() == 75

    def test_floor_at_zero(self, store, add_user, balance_of):
        add_user(balance=10)
        svc = BalanceService(store)

        change = svc.apply_delta(svc.get_user(42), -100, floor_at_zero=True)

        assert change.new_balance == 0
        assert balance_of() == 0

    def test_null_balance_counts_as_zero(self, store, add_user, balance_of):
        add_user(balance=None)
        svc = BalanceService(store)

        svc.apply_delta(svc.get_user(42), 5)

        assert balance_of() == 5

    def test_stale_read_retries_against_fresh_balance(self, store, add_user, balance_of):
        add_user(balance=50)
        svc = BalanceService(store)
        stale = svc.get_user(42)
        # another writer spends 20 tokens in between
        store.patch("users", {"user_id": "eq.42"}, {"balance": 30})

        change = svc.apply_delta(stale, 100)

        assert change.old_balance == 30
        assert balance_of() == 130

    def test_gives_up_after_max_attempts(self):
        store = MagicMock()
        store.patch.return_value = RowStoreResult(ok=True, rows=[])
        store.select.return_value = RowStoreResult(ok=True, rows=[{"user_id": 42, "balance": 1}])
        svc = BalanceService(store, max_attempts=3)

        with pytest.raises(BalanceWriteError, match="lost 3 races"):
            svc.apply_delta({"user_id": 42, "balance": 0}, 10)
        assert store.patch.call_count == 3

    def test_store_error(self):
        store = MagicMock()
        store.patch.return_value = RowStoreResult(ok=False, error="timeout")
        svc = BalanceService(store)

        with pytest.raises(BalanceWriteError, match="timeout"):
            svc.apply_delta({"user_id": 42, "balance": 0}, 10)


class TestGetUser:
    def test_missing_user(self, store):
        assert BalanceService(store).get_user(404) is None

    def test_unreachable_store_raises(self):
        store = MagicMock()
        store.select.return_value = RowStoreResult(ok=False, error="connection refused")

        with pytest.raises(RowStoreError):
            BalanceService(store).get_user(42)
