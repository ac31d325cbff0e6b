"""Integration tests for the loan service against the test database"""

import pytest
from datetime import timedelta
from decimal import Decimal
from sqlalchemy.orm import Session
from lendit_gateway.domain.exceptions import (
    ConcurrencyConflictError,
    InvalidStateError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from lendit_gateway.domain.models import LoanStatus, PaymentMethod
from lendit_gateway.infrastructure.database.repositories import AgreementRepository
from lendit_gateway.services.loans import LoanService
from lendit_gateway.services.trust_scores import TrustScoreEngine, build_event_bus

from conftest import BORROWER, LENDER, START


@pytest.fixture
def loans(db: Session) -> LoanService:
    return LoanService(db, build_event_bus(db))


def _active_loan(loans: LoanService, deposited_amount=None) -> str:
    agreement = loans.create_request(BORROWER, "5000", "Laptop", 6, interest_rate_bps=250)
    loans.claim(agreement.id, LENDER)
    loans.finalize_terms(agreement.id, BORROWER, "b-sig")
    loans.finalize_terms(agreement.id, LENDER, "l-sig")
    loans.activate(agreement.id, deposited_amount=deposited_amount, now=START)
    return agreement.id


def test_create_request_persists_pending(loans: LoanService, db: Session):
    agreement = loans.create_request(BORROWER, "1000", "Rent", 3)
    db.commit()

    stored = loans.get(agreement.id)
    assert stored.status == LoanStatus.PENDING
    assert stored.principal == Decimal("1000.00")
    assert [a.id for a in loans.list_open_requests()] == [agreement.id]


def test_get_unknown_agreement(loans: LoanService):
    with pytest.raises(NotFoundError):
        loans.get("missing")


def test_finalize_terms_reports_both_signed(loans: LoanService):
    agreement = loans.create_request(BORROWER, "1000", "Rent", 3)
    loans.claim(agreement.id, LENDER)

    _, both = loans.finalize_terms(agreement.id, BORROWER, "b-sig")
    assert both is False
    _, both = loans.finalize_terms(agreement.id, LENDER, "l-sig")
    assert both is True


def test_claimed_request_leaves_open_list(loans: LoanService):
    agreement = loans.create_request(BORROWER, "1000", "Rent", 3)
    loans.claim(agreement.id, LENDER)

    assert loans.list_open_requests() == []
    assert [a.id for a in loans.list_for_user(LENDER)] == [agreement.id]


def test_activate_with_deposit_records_disbursement(loans: LoanService):
    agreement_id = _active_loan(loans, deposited_amount="5000")

    transactions = loans.list_transactions(agreement_id)
    assert [t.transaction_type for t in transactions] == ["disbursement"]
    assert transactions[0].payment_method == PaymentMethod.CRYPTO.value
    assert loans.get(agreement_id).ends_at == START + timedelta(days=180)


def test_activate_without_signatures_leaves_loan_pending(loans: LoanService):
    agreement = loans.create_request(BORROWER, "1000", "Rent", 3)
    loans.claim(agreement.id, LENDER)

    with pytest.raises(PreconditionError):
        loans.activate(agreement.id)
    assert loans.get(agreement.id).status == LoanStatus.PENDING


def test_full_repayment_completes_loan(loans: LoanService):
    agreement_id = _active_loan(loans)

    first = loans.record_payment(agreement_id, "3000", payment_reference="UTR1", now=START + timedelta(days=30))
    second = loans.record_payment(agreement_id, "2062.50", payment_reference="UTR2", now=START + timedelta(days=60))

    assert first.completed is False
    assert second.completed is True
    agreement = loans.get(agreement_id)
    assert agreement.status == LoanStatus.COMPLETED
    assert agreement.amount_repaid == Decimal("5062.50")
    assert loans.outstanding_balance(agreement_id) == Decimal("0.00")
    assert [t.payment_reference for t in loans.list_transactions(agreement_id)] == ["UTR1", "UTR2"]


def test_duplicate_payment_reference_is_rejected(loans: LoanService):
    agreement_id = _active_loan(loans)
    loans.record_payment(agreement_id, "100", payment_reference="UTR1", now=START)

    with pytest.raises(ValidationError):
        loans.record_payment(agreement_id, "100", payment_reference="UTR1", now=START)
    assert loans.get(agreement_id).amount_repaid == Decimal("100.00")


def test_payment_on_completed_loan_is_rejected(loans: LoanService):
    agreement_id = _active_loan(loans)
    loans.record_payment(agreement_id, "5062.50", now=START)

    with pytest.raises(InvalidStateError):
        loans.record_payment(agreement_id, "1", now=START)


def test_mark_defaulted_after_end_date(loans: LoanService):
    agreement_id = _active_loan(loans)

    with pytest.raises(PreconditionError):
        loans.mark_defaulted(agreement_id, now=START + timedelta(days=100))

    agreement = loans.mark_defaulted(agreement_id, now=START + timedelta(days=181))
    assert agreement.status == LoanStatus.DEFAULTED


def test_cancel_by_borrower(loans: LoanService):
    agreement = loans.create_request(BORROWER, "1000", "Rent", 3)

    cancelled = loans.cancel(agreement.id, BORROWER)
    assert cancelled.status == LoanStatus.CANCELLED

    with pytest.raises(InvalidStateError):
        loans.claim(agreement.id, LENDER)


def test_stale_write_loses_compare_and_swap(db: Session):
    """Two readers of the same version: only the first writer wins"""
    loans = LoanService(db)
    agreement = loans.create_request(BORROWER, "1000", "Rent", 3)
    repository = AgreementRepository(db)

    first = repository.get_by_id(agreement.id)
    second = repository.get_by_id(agreement.id)
    first.lender_id = LENDER
    second.lender_id = "other_lender"

    repository.save(first, expected_status=LoanStatus.PENDING)
    with pytest.raises(ConcurrencyConflictError):
        repository.save(second, expected_status=LoanStatus.PENDING)
    assert loans.get(agreement.id).lender_id == LENDER


def test_activate_and_cancel_race_has_one_winner(db: Session):
    loans = LoanService(db)
    agreement = loans.create_request(BORROWER, "1000", "Rent", 3)
    loans.claim(agreement.id, LENDER)
    loans.finalize_terms(agreement.id, BORROWER, "b-sig")
    loans.finalize_terms(agreement.id, LENDER, "l-sig")
    repository = AgreementRepository(db)

    to_activate = repository.get_by_id(agreement.id)
    to_cancel = repository.get_by_id(agreement.id)
    to_activate.status = LoanStatus.ACTIVE
    to_cancel.status = LoanStatus.CANCELLED

    repository.save(to_cancel, expected_status=LoanStatus.PENDING)
    with pytest.raises(ConcurrencyConflictError):
        repository.save(to_activate, expected_status=LoanStatus.PENDING)
    assert loans.get(agreement.id).status == LoanStatus.CANCELLED


def test_rollback_discards_transition_and_score_side_effects(db: Session, loans: LoanService):
    agreement_id = _active_loan(loans)
    db.commit()

    loans.record_payment(agreement_id, "5062.50", now=START)
    db.rollback()

    assert loans.get(agreement_id).status == LoanStatus.ACTIVE
    assert loans.get(agreement_id).amount_repaid == Decimal("0.00")
    assert TrustScoreEngine(db).get_history(BORROWER) == []


def test_largest_principal_round_trips_exactly(loans: LoanService, db: Session):
    agreement = loans.create_request(BORROWER, "999999999999.99", "Building", 12)
    db.commit()

    assert loans.get(agreement.id).principal == Decimal("999999999999.99")


def test_oversized_principal_is_never_stored(loans: LoanService):
    with pytest.raises(ValidationError):
        loans.create_request(BORROWER, "123456789012345678.91", "Building", 12)
    assert loans.list_for_user(BORROWER) == []
