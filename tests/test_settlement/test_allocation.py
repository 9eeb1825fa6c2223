"""Unit tests for commission and proportional refund allocation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from splitpay.services.settlement.allocation import (
    allocate_refund,
    commission_for,
    to_money,
)

D = Decimal


class TestCommission:
    def test_ten_percent_of_forty_two(self):
        assert commission_for(D("42.00"), D("10.00")) == D("4.20")

    def test_rounds_half_up(self):
        # 12.5% of 0.20 = 0.025
        assert commission_for(D("0.20"), D("12.5")) == D("0.03")

    def test_zero_rate(self):
        assert commission_for(D("99.99"), D("0")) == D("0.00")


class TestAllocateRefund:
    def test_thirty_seventy_split_of_fifty(self):
        parts = allocate_refund(D("50"), [D("30"), D("70")])
        assert parts == [D("15.00"), D("35.00")]
        assert sum(parts) == D("50.00")

    def test_single_sale_takes_everything(self):
        assert allocate_refund(D("12.34"), [D("100")]) == [D("12.34")]

    def test_residual_cent_goes_to_last_sale(self):
        parts = allocate_refund(D("10.00"), [D("1"), D("1"), D("1")])
        assert parts == [D("3.33"), D("3.33"), D("3.34")]
        assert sum(parts) == D("10.00")

    @pytest.mark.parametrize(
        "requested,amounts",
        [
            ("0.01", ["10", "20", "30"]),
            ("99.99", ["33.33", "33.33", "33.34"]),
            ("7.77", ["0.99", "1.01"]),
            ("100", ["12.34", "56.78", "30.88"]),
        ],
    )
    def test_parts_always_sum_to_request(self, requested, amounts):
        parts = allocate_refund(D(requested), [D(a) for a in amounts])
        assert sum(parts) == to_money(requested)
        assert all(p == p.quantize(D("0.01")) for p in parts)

    def test_empty(self):
        assert allocate_refund(D("5"), []) == []

    def test_zero_total_rejected(self):
        with pytest.raises(ValueError):
            allocate_refund(D("5"), [D("0"), D("0")])
