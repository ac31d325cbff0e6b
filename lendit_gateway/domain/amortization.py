"""Amortized EMI figures for comparing loan offers"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from lendit_gateway.domain.exceptions import ValidationError
from lendit_gateway.domain.lifecycle import CENT, BPS_MONTHS_DIVISOR, to_money

SORT_KEYS = ("rate", "total", "monthly")


@dataclass
class AmortizationSummary:
    principal: Decimal
    interest_rate_bps: int
    duration_months: int
    monthly_payment: Decimal
    total_repayment: Decimal
    total_interest: Decimal


def _validate_terms(duration_months: int, interest_rate_bps: int) -> None:
    if duration_months is None or int(duration_months) <= 0:
        raise ValidationError("Duration must be at least one month")
    if interest_rate_bps is None or int(interest_rate_bps) < 0:
        raise ValidationError("Interest rate cannot be negative")


def _exact_payment(principal: Decimal, interest_rate_bps: int, duration_months: int) -> Decimal:
    monthly_rate = Decimal(int(interest_rate_bps)) / BPS_MONTHS_DIVISOR
    if monthly_rate == 0:
        return principal / duration_months
    growth = (1 + monthly_rate) ** duration_months
    return principal * monthly_rate * growth / (growth - 1)


def monthly_payment(principal, interest_rate_bps: int, duration_months: int) -> Decimal:
    """
    Equated monthly instalment for a reducing-balance loan.

    EMI = P * r * (1 + r)^n / ((1 + r)^n - 1) with r the monthly rate
    (annual bps / 10000 / 12). A zero rate splits the principal evenly.

    Example:
        10000 at 1200 bps over 12 months -> 888.49
    """
    return amortization_summary(principal, interest_rate_bps, duration_months).monthly_payment


def amortization_summary(principal, interest_rate_bps: int, duration_months: int) -> AmortizationSummary:
    """
    Monthly payment, total repayment and total interest for one offer.

    Total repayment is n times the unrounded EMI, so it can differ by a few
    paise from n times the rounded monthly figure.
    """
    _validate_terms(duration_months, interest_rate_bps)
    amount = to_money(principal)
    if amount <= 0:
        raise ValidationError("Loan amount must be greater than zero")
    months = int(duration_months)

    exact = _exact_payment(amount, interest_rate_bps, months)
    total = (exact * months).quantize(CENT, rounding=ROUND_HALF_UP)
    return AmortizationSummary(
        principal=amount,
        interest_rate_bps=int(interest_rate_bps),
        duration_months=months,
        monthly_payment=exact.quantize(CENT, rounding=ROUND_HALF_UP),
        total_repayment=total,
        total_interest=total - amount,
    )


def compare_loan_options(
    principal,
    duration_months: int,
    rates_bps: Iterable[int],
    sort_by: str = "rate",
    max_rate_bps: Optional[int] = None,
) -> List[AmortizationSummary]:
    """Summaries for each candidate rate, cheapest first by the chosen key"""
    if sort_by not in SORT_KEYS:
        raise ValidationError(f"sort_by must be one of {', '.join(SORT_KEYS)}")

    options = [amortization_summary(principal, bps, duration_months) for bps in rates_bps]
    if max_rate_bps is not None:
        options = [o for o in options if o.interest_rate_bps <= max_rate_bps]

    if sort_by == "total":
        options.sort(key=lambda o: (o.total_repayment, o.interest_rate_bps))
    elif sort_by == "monthly":
        options.sort(key=lambda o: (o.monthly_payment, o.interest_rate_bps))
    else:
        options.sort(key=lambda o: o.interest_rate_bps)
    return options
