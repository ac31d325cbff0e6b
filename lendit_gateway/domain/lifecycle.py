"""Loan lifecycle state machine - guard clauses and transitions for agreements

Every transition mutates a LoanAgreement in place after checking its guards.
Persistence (and the compare-and-swap that makes a transition atomic) is the
caller's job; see lendit_gateway.services.loans.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, FrozenSet, List, Optional

from lendit_gateway.domain.events import LoanCompleted, LoanDefaulted, PaymentMade
from lendit_gateway.domain.exceptions import (
    AuthorizationError,
    InvalidStateError,
    PreconditionError,
    ValidationError,
)
from lendit_gateway.domain.models import LoanAgreement, LoanStatus
from lendit_gateway.utils.date_utils import add_loan_months, ensure_aware, utcnow

CENT = Decimal("0.01")
# Largest amount a Numeric(14, 2) column holds exactly
MAX_AMOUNT = Decimal("999999999999.99")
BPS_MONTHS_DIVISOR = Decimal(10000 * 12)

ALLOWED_TRANSITIONS: Dict[LoanStatus, FrozenSet[LoanStatus]] = {
    LoanStatus.PENDING: frozenset({LoanStatus.ACTIVE, LoanStatus.CANCELLED}),
    LoanStatus.ACTIVE: frozenset({LoanStatus.COMPLETED, LoanStatus.DEFAULTED}),
    LoanStatus.COMPLETED: frozenset(),
    LoanStatus.DEFAULTED: frozenset(),
    LoanStatus.CANCELLED: frozenset(),
}

TERMINAL_STATES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)


@dataclass
class PaymentOutcome:
    """Result of applying one repayment to an agreement"""

    amount: Decimal
    amount_repaid: Decimal
    total_due: Decimal
    completed: bool
    on_time: bool
    events: List[object]


def to_money(value) -> Decimal:
    """Coerce a number to a 2-place Decimal, raising ValidationError on garbage"""
    try:
        amount = Decimal(str(value))
        if not amount.is_finite():
            raise ValidationError(f"Invalid amount: {value!r}")
        amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValidationError(f"Invalid amount: {value!r}") from e
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"Amount {value!r} exceeds the maximum of {MAX_AMOUNT}")
    return amount


def calculate_total_due(principal: Decimal, interest_rate_bps: int, duration_months: int) -> Decimal:
    """
    Simple-interest amount owed over the whole loan.

    total_due = principal + principal * rate_bps * months / (10000 * 12)

    Example:
        5000 at 250 bps for 6 months -> 5000 + 62.50 = 5062.50
    """
    interest = principal * Decimal(interest_rate_bps) * Decimal(duration_months) / BPS_MONTHS_DIVISOR
    return (principal + interest).quantize(CENT, rounding=ROUND_HALF_UP)


def total_due(agreement: LoanAgreement) -> Decimal:
    return calculate_total_due(agreement.principal, agreement.interest_rate_bps, agreement.duration_months)


def outstanding_balance(agreement: LoanAgreement) -> Decimal:
    return max(total_due(agreement) - agreement.amount_repaid, Decimal("0.00"))


def ensure_transition(agreement: LoanAgreement, target: LoanStatus) -> None:
    """Raise InvalidStateError unless status -> target is an edge of the graph"""
    if target not in ALLOWED_TRANSITIONS[agreement.status]:
        raise InvalidStateError(
            f"Agreement {agreement.id} cannot move from {agreement.status.value} to {target.value}"
        )


def _require_status(agreement: LoanAgreement, status: LoanStatus, action: str) -> None:
    if agreement.status != status:
        raise InvalidStateError(
            f"Cannot {action} agreement {agreement.id}: status is {agreement.status.value}, expected {status.value}"
        )


def create_request(
    agreement_id: str,
    borrower_id: str,
    amount,
    purpose: str,
    duration_months: int,
    interest_rate_bps: int = 0,
    description: Optional[str] = None,
    borrower_name: Optional[str] = None,
    borrower_email: Optional[str] = None,
    now: Optional[datetime] = None,
) -> LoanAgreement:
    """Build a new pending agreement with no lender bound"""
    if not borrower_id:
        raise ValidationError("Borrower is required")
    principal = to_money(amount)
    if principal <= 0:
        raise ValidationError("Loan amount must be greater than zero")
    if duration_months is None or int(duration_months) <= 0:
        raise ValidationError("Duration must be at least one month")
    if interest_rate_bps is None:
        interest_rate_bps = 0
    if int(interest_rate_bps) < 0:
        raise ValidationError("Interest rate cannot be negative")

    return LoanAgreement(
        id=agreement_id,
        borrower_id=borrower_id,
        principal=principal,
        interest_rate_bps=int(interest_rate_bps),
        duration_months=int(duration_months),
        status=LoanStatus.PENDING,
        created_at=now or utcnow(),
        purpose=purpose or "",
        description=description,
        borrower_name=borrower_name,
        borrower_email=borrower_email,
    )


def claim(
    agreement: LoanAgreement,
    lender_id: str,
    lender_name: Optional[str] = None,
    lender_email: Optional[str] = None,
) -> None:
    """Bind a lender to an open request"""
    _require_status(agreement, LoanStatus.PENDING, "claim")
    if agreement.lender_id is not None:
        raise InvalidStateError(f"Agreement {agreement.id} has already been claimed")
    if lender_id == agreement.borrower_id:
        raise InvalidStateError("Borrower cannot claim their own loan request")

    agreement.lender_id = lender_id
    agreement.lender_name = lender_name
    agreement.lender_email = lender_email


def sign(agreement: LoanAgreement, signer_id: str, signature_data: str) -> bool:
    """
    Record one party's signature. Re-signing overwrites only that party's signature.

    Returns True once both borrower and lender have signed.
    """
    _require_status(agreement, LoanStatus.PENDING, "sign")
    if not signature_data:
        raise ValidationError("Signature data is required")

    if signer_id == agreement.borrower_id:
        agreement.borrower_signature = signature_data
    elif agreement.lender_id is not None and signer_id == agreement.lender_id:
        agreement.lender_signature = signature_data
    else:
        raise AuthorizationError(f"User {signer_id} is not a party to agreement {agreement.id}")

    return agreement.fully_signed


def activate(agreement: LoanAgreement, deposited_amount=None, now: Optional[datetime] = None) -> None:
    """
    Pending -> Active once both parties signed.

    For the on-chain variant the lender's deposit must equal the principal
    exactly. The loan ends duration_months * 30 days after activation.
    """
    ensure_transition(agreement, LoanStatus.ACTIVE)
    if not agreement.fully_signed:
        raise PreconditionError(f"Agreement {agreement.id} needs both signatures before activation")
    if deposited_amount is not None and to_money(deposited_amount) != agreement.principal:
        raise PreconditionError(
            f"Deposited amount {to_money(deposited_amount)} does not match principal {agreement.principal}"
        )

    started = now or utcnow()
    agreement.status = LoanStatus.ACTIVE
    agreement.activated_at = started
    agreement.ends_at = add_loan_months(started, agreement.duration_months)


def apply_payment(agreement: LoanAgreement, amount, now: Optional[datetime] = None) -> PaymentOutcome:
    """Accrue a repayment; completes the loan once total due is reached"""
    _require_status(agreement, LoanStatus.ACTIVE, "record payment on")
    paid = to_money(amount)
    if paid <= 0:
        raise ValidationError("Payment amount must be greater than zero")
    if agreement.amount_repaid + paid > MAX_AMOUNT:
        raise ValidationError(f"Repaid total would exceed the maximum of {MAX_AMOUNT}")

    now = now or utcnow()
    on_time = agreement.ends_at is None or now <= ensure_aware(agreement.ends_at)
    agreement.amount_repaid = agreement.amount_repaid + paid
    due = total_due(agreement)

    events: List[object] = [
        PaymentMade(
            agreement_id=agreement.id,
            borrower_id=agreement.borrower_id,
            lender_id=agreement.lender_id,
            amount=paid,
            on_time=on_time,
        )
    ]

    completed = agreement.amount_repaid >= due
    if completed:
        ensure_transition(agreement, LoanStatus.COMPLETED)
        agreement.status = LoanStatus.COMPLETED
        agreement.completed_at = now
        events.append(
            LoanCompleted(
                agreement_id=agreement.id,
                borrower_id=agreement.borrower_id,
                lender_id=agreement.lender_id,
            )
        )

    return PaymentOutcome(
        amount=paid,
        amount_repaid=agreement.amount_repaid,
        total_due=due,
        completed=completed,
        on_time=on_time,
        events=events,
    )


def mark_defaulted(agreement: LoanAgreement, now: Optional[datetime] = None) -> LoanDefaulted:
    """Active -> Defaulted when the loan period is over and the balance is unpaid"""
    ensure_transition(agreement, LoanStatus.DEFAULTED)
    now = now or utcnow()
    if agreement.ends_at is None or now <= ensure_aware(agreement.ends_at):
        raise PreconditionError(f"Loan period for agreement {agreement.id} is not over yet")
    if agreement.amount_repaid >= total_due(agreement):
        raise PreconditionError(f"Agreement {agreement.id} is already fully paid")

    agreement.status = LoanStatus.DEFAULTED
    agreement.defaulted_at = now
    return LoanDefaulted(
        agreement_id=agreement.id,
        borrower_id=agreement.borrower_id,
        lender_id=agreement.lender_id,
    )


def cancel(agreement: LoanAgreement, requester_id: str, now: Optional[datetime] = None) -> None:
    """Pending -> Cancelled by the borrower or the bound lender"""
    ensure_transition(agreement, LoanStatus.CANCELLED)
    # Unclaimed requests have no lender identity, so only the borrower qualifies.
    if not agreement.is_party(requester_id):
        raise AuthorizationError(f"User {requester_id} cannot cancel agreement {agreement.id}")

    agreement.status = LoanStatus.CANCELLED
    agreement.cancelled_at = now or utcnow()
