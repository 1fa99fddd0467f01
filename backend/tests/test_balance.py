"""Tests for receipt balance aggregation and stock status."""

from types import SimpleNamespace

import pytest

from app.services.balance import (
    Balance,
    StockThresholds,
    compute_balance,
    derive_stock_status,
    refresh_receipt_balance,
)

THRESHOLDS = StockThresholds(meters=100, yards=100, pieces=10)


def lot(quantity, unit="meters", status="active"):
    return SimpleNamespace(quantity=quantity, unit=unit, status=status)


@pytest.mark.unit
class TestComputeBalance:

    def test_buckets_by_status(self):
        balance = compute_balance([
            lot(300),
            lot(100, status="reserved"),
            lot(50, status="damaged"),
            lot(20, status="consumed"),
        ])
        assert balance.total["meters"] == 450
        assert balance.available["meters"] == 300
        assert balance.reserved["meters"] == 100
        assert balance.damaged["meters"] == 50
        assert balance.consumed["meters"] == 20
        assert balance.is_consistent()

    def test_units_are_kept_apart(self):
        balance = compute_balance([lot(100, "yards"), lot(200), lot(15, "pieces")])
        assert balance.total == {"meters": 200, "yards": 100, "pieces": 15}
        assert balance.is_consistent()

    def test_empty(self):
        balance = compute_balance([])
        assert all(v == 0 for v in balance.total.values())
        assert balance.is_consistent()

    def test_unknown_unit_rejected(self):
        with pytest.raises(ValueError):
            compute_balance([lot(10, "kg")])

    def test_dict_round_trip(self):
        balance = compute_balance([lot(300), lot(40, "pieces", "reserved")])
        assert Balance.from_dict(balance.to_dict()) == balance
        assert Balance.from_dict(None) == Balance()


@pytest.mark.unit
class TestStockStatus:

    @pytest.mark.parametrize("lots, expected", [
        ([], "out_of_stock"),
        ([lot(500, status="consumed")], "out_of_stock"),
        ([lot(500, status="damaged")], "consumed"),
        ([lot(500, status="reserved")], "consumed"),
        ([lot(50)], "low_stock"),
        ([lot(50, "yards")], "low_stock"),
        ([lot(500)], "active"),
        ([lot(20, "pieces")], "active"),
        ([lot(5, "pieces"), lot(100, "yards")], "active"),
    ])
    def test_status_priority(self, lots, expected):
        assert derive_stock_status(compute_balance(lots), THRESHOLDS) == expected

    def test_refresh_writes_balance_and_status(self):
        receipt = SimpleNamespace(lots=[lot(80), lot(40, status="reserved")], balance=None, stock_status=None)
        balance = refresh_receipt_balance(receipt, THRESHOLDS)
        assert receipt.balance == balance.to_dict()
        assert receipt.balance["total"]["meters"] == 120
        assert receipt.stock_status == "low_stock"
