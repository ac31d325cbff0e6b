"""Unit tests for amortized EMI pricing and offer comparison"""

import pytest
from decimal import Decimal
from lendit_gateway.domain.amortization import amortization_summary, compare_loan_options, monthly_payment
from lendit_gateway.domain.exceptions import ValidationError


def test_monthly_payment_reducing_balance():
    """10000 at 12% a year over 12 months"""
    assert monthly_payment("10000", 1200, 12) == Decimal("888.49")


def test_summary_totals_use_unrounded_emi():
    summary = amortization_summary("10000", 1200, 12)

    assert summary.monthly_payment == Decimal("888.49")
    assert summary.total_repayment == Decimal("10661.85")  # 12 x 888.4878..., not 12 x 888.49
    assert summary.total_interest == Decimal("661.85")


def test_zero_rate_splits_principal_evenly():
    summary = amortization_summary("1200", 0, 12)

    assert summary.monthly_payment == Decimal("100.00")
    assert summary.total_repayment == Decimal("1200.00")
    assert summary.total_interest == Decimal("0.00")


def test_emi_costs_less_interest_than_flat_simple_interest():
    """Same terms as the 5000 / 250 bps / 6 month agreement whose total due is 5062.50"""
    summary = amortization_summary("5000", 250, 6)

    assert summary.monthly_payment == Decimal("833.94")
    assert summary.total_repayment < Decimal("5062.50")


@pytest.mark.parametrize(
    "principal, rate, months",
    [
        ("0", 1200, 12),
        ("10000", -1, 12),
        ("10000", 1200, 0),
        ("1e30", 1200, 12),
    ],
)
def test_summary_rejects_invalid_terms(principal, rate, months):
    with pytest.raises(ValidationError):
        amortization_summary(principal, rate, months)


@pytest.mark.parametrize("sort_by", ["rate", "total", "monthly"])
def test_compare_orders_cheapest_first(sort_by):
    options = compare_loan_options("10000", 12, [1800, 0, 1200], sort_by=sort_by)

    assert [o.interest_rate_bps for o in options] == [0, 1200, 1800]
    assert options[1].total_interest == Decimal("661.85")


def test_compare_drops_rates_above_cap():
    options = compare_loan_options("10000", 12, [1800, 0, 1200], max_rate_bps=1200)

    assert [o.interest_rate_bps for o in options] == [0, 1200]


def test_compare_rejects_unknown_sort_key():
    with pytest.raises(ValidationError):
        compare_loan_options("10000", 12, [1200], sort_by="lender")
