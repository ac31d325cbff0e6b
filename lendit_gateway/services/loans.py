"""Loan lifecycle service - persists state machine transitions atomically"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session

from lendit_gateway.domain import lifecycle
from lendit_gateway.domain.exceptions import NotFoundError, ValidationError
from lendit_gateway.domain.lifecycle import PaymentOutcome
from lendit_gateway.domain.models import (
    LoanAgreement,
    LoanStatus,
    PaymentMethod,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from lendit_gateway.infrastructure.database.models import TransactionRecord
from lendit_gateway.infrastructure.database.repositories import AgreementRepository, TransactionRepository
from lendit_gateway.infrastructure.observability.logging import log_transition
from lendit_gateway.infrastructure.observability.metrics import (
    loan_requests_counter,
    loan_transition_counter,
    record_payment as record_payment_metrics,
)
from lendit_gateway.services.events import EventBus
from lendit_gateway.utils.date_utils import utcnow


class LoanService:
    """
    Applies lifecycle transitions against the datastore.

    Each operation reads the agreement, runs the domain guard clauses, then
    writes with a compare-and-swap on (status, version). Nothing is committed
    here: the caller owns the transaction and commits or rolls back the
    status change, its Transaction row and any trust score side effects as one.
    """

    def __init__(self, db: Session, events: Optional[EventBus] = None, request_id: Optional[str] = None):
        self.db = db
        self.events = events or EventBus()
        self.request_id = request_id
        self.agreements = AgreementRepository(db)
        self.transactions = TransactionRepository(db)

    def get(self, agreement_id: str) -> LoanAgreement:
        agreement = self.agreements.get_by_id(agreement_id)
        if agreement is None:
            raise NotFoundError(f"Agreement {agreement_id} not found")
        return agreement

    def create_request(
        self,
        borrower_id: str,
        amount,
        purpose: str,
        duration_months: int,
        interest_rate_bps: int = 0,
        description: Optional[str] = None,
        borrower_name: Optional[str] = None,
        borrower_email: Optional[str] = None,
    ) -> LoanAgreement:
        agreement = lifecycle.create_request(
            agreement_id=str(uuid.uuid4()),
            borrower_id=borrower_id,
            amount=amount,
            purpose=purpose,
            duration_months=duration_months,
            interest_rate_bps=interest_rate_bps,
            description=description,
            borrower_name=borrower_name,
            borrower_email=borrower_email,
        )
        self.agreements.add(agreement)
        loan_requests_counter.inc()
        log_transition(
            agreement.id, "none", LoanStatus.PENDING.value, actor=borrower_id, request_id=self.request_id
        )
        return agreement

    def claim(
        self,
        agreement_id: str,
        lender_id: str,
        lender_name: Optional[str] = None,
        lender_email: Optional[str] = None,
    ) -> LoanAgreement:
        agreement = self.get(agreement_id)
        lifecycle.claim(agreement, lender_id, lender_name, lender_email)
        self.agreements.save(agreement, expected_status=LoanStatus.PENDING)
        log_transition(agreement.id, "pending", "pending", actor=lender_id, request_id=self.request_id)
        return agreement

    def finalize_terms(self, agreement_id: str, signer_id: str, signature_data: str) -> Tuple[LoanAgreement, bool]:
        """Record a signature; returns the agreement and whether both parties have signed"""
        agreement = self.get(agreement_id)
        both_signed = lifecycle.sign(agreement, signer_id, signature_data)
        self.agreements.save(agreement, expected_status=LoanStatus.PENDING)
        return agreement, both_signed

    def activate(
        self,
        agreement_id: str,
        deposited_amount=None,
        payment_method: PaymentMethod = PaymentMethod.CRYPTO,
        now: Optional[datetime] = None,
    ) -> LoanAgreement:
        now = now or utcnow()
        agreement = self.get(agreement_id)
        lifecycle.activate(agreement, deposited_amount=deposited_amount, now=now)
        self.agreements.save(agreement, expected_status=LoanStatus.PENDING)

        if deposited_amount is not None:
            self.transactions.add(
                Transaction(
                    agreement_id=agreement.id,
                    transaction_type=TransactionType.DISBURSEMENT,
                    amount=agreement.principal,
                    payment_method=payment_method,
                    status=TransactionStatus.COMPLETED,
                    created_at=now,
                )
            )

        self._record_transition(agreement, LoanStatus.PENDING)
        return agreement

    def record_payment(
        self,
        agreement_id: str,
        amount,
        payment_method: PaymentMethod = PaymentMethod.UPI,
        payment_reference: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PaymentOutcome:
        """Accrue a repayment, append its Transaction and emit payment/completion events"""
        now = now or utcnow()
        if payment_reference and self.transactions.reference_exists(payment_reference):
            raise ValidationError(f"Payment reference {payment_reference} has already been recorded")

        agreement = self.get(agreement_id)
        outcome = lifecycle.apply_payment(agreement, amount, now=now)
        self.agreements.save(agreement, expected_status=LoanStatus.ACTIVE)

        self.transactions.add(
            Transaction(
                agreement_id=agreement.id,
                transaction_type=TransactionType.REPAYMENT,
                amount=outcome.amount,
                payment_method=payment_method,
                status=TransactionStatus.COMPLETED,
                created_at=now,
                payment_reference=payment_reference,
            )
        )
        record_payment_metrics(payment_method.value, outcome.amount, outcome.on_time)

        if outcome.completed:
            self._record_transition(agreement, LoanStatus.ACTIVE)

        self.events.publish_all(outcome.events)
        return outcome

    def mark_defaulted(self, agreement_id: str, now: Optional[datetime] = None) -> LoanAgreement:
        agreement = self.get(agreement_id)
        event = lifecycle.mark_defaulted(agreement, now=now)
        self.agreements.save(agreement, expected_status=LoanStatus.ACTIVE)
        self._record_transition(agreement, LoanStatus.ACTIVE)
        self.events.publish(event)
        return agreement

    def cancel(self, agreement_id: str, requester_id: str) -> LoanAgreement:
        agreement = self.get(agreement_id)
        lifecycle.cancel(agreement, requester_id)
        self.agreements.save(agreement, expected_status=LoanStatus.PENDING)
        self._record_transition(agreement, LoanStatus.PENDING, actor=requester_id)
        return agreement

    def list_for_user(self, user_id: str) -> List[LoanAgreement]:
        return self.agreements.list_for_user(user_id)

    def list_open_requests(self, limit: int = 50) -> List[LoanAgreement]:
        return self.agreements.list_open_requests(limit=limit)

    def list_transactions(self, agreement_id: str) -> List[TransactionRecord]:
        self.get(agreement_id)
        return self.transactions.list_for_agreement(agreement_id)

    def outstanding_balance(self, agreement_id: str) -> Decimal:
        return lifecycle.outstanding_balance(self.get(agreement_id))

    def _record_transition(self, agreement: LoanAgreement, from_status: LoanStatus, actor: Optional[str] = None) -> None:
        loan_transition_counter.labels(to_status=agreement.status.value).inc()
        log_transition(
            agreement.id, from_status.value, agreement.status.value, actor=actor, request_id=self.request_id
        )
