"""Loan agreement lifecycle endpoints under /v1/agreements"""

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from lendit_gateway.api.dependencies import (
    get_current_user,
    get_loan_service,
    get_rating_service,
    get_request_id,
)
from lendit_gateway.api.errors import unit_of_work
from lendit_gateway.api.v1.schemas import (
    ActivateRequest,
    AgreementResponse,
    ClaimRequest,
    CreateLoanRequest,
    LoanOptionSchema,
    PaymentInstructionsResponse,
    PaymentRequest,
    PaymentResponse,
    RatingRequest,
    RatingSchema,
    SignRequest,
    SignResponse,
    TransactionSchema,
)
from lendit_gateway.domain.amortization import compare_loan_options
from lendit_gateway.infrastructure.database.session import get_db
from lendit_gateway.services.loans import LoanService
from lendit_gateway.services.payments import build_payment_instructions
from lendit_gateway.services.ratings import RatingService

router = APIRouter()


@router.post("/agreements", response_model=AgreementResponse, status_code=201)
def create_loan_request(
    body: CreateLoanRequest,
    request: Request,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    loans: LoanService = Depends(get_loan_service),
):
    """Create a pending loan request with no lender bound"""
    with unit_of_work(db, get_request_id(request)):
        agreement = loans.create_request(
            borrower_id=user_id,
            amount=body.amount,
            purpose=body.purpose,
            duration_months=body.duration_months,
            interest_rate_bps=body.interest_rate_bps,
            description=body.description,
            borrower_name=body.borrower_name,
            borrower_email=body.borrower_email,
        )
    return AgreementResponse.from_domain(agreement)


@router.get("/agreements", response_model=List[AgreementResponse])
def list_my_agreements(
    user_id: str = Depends(get_current_user),
    loans: LoanService = Depends(get_loan_service),
):
    """Agreements where the caller is borrower or lender"""
    return [AgreementResponse.from_domain(a) for a in loans.list_for_user(user_id)]


@router.get("/agreements/open", response_model=List[AgreementResponse])
def list_open_requests(
    limit: int = Query(50, ge=1, le=200),
    loans: LoanService = Depends(get_loan_service),
):
    """Pending requests still waiting for a lender"""
    return [AgreementResponse.from_domain(a) for a in loans.list_open_requests(limit=limit)]


@router.get("/agreements/{agreement_id}", response_model=AgreementResponse)
def get_agreement(
    agreement_id: str,
    request: Request,
    db: Session = Depends(get_db),
    loans: LoanService = Depends(get_loan_service),
):
    with unit_of_work(db, get_request_id(request)):
        agreement = loans.get(agreement_id)
    return AgreementResponse.from_domain(agreement)


@router.post("/agreements/{agreement_id}/claim", response_model=AgreementResponse)
def claim_request(
    agreement_id: str,
    body: ClaimRequest,
    request: Request,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    loans: LoanService = Depends(get_loan_service),
):
    """Bind the caller as lender of an open request"""
    with unit_of_work(db, get_request_id(request)):
        agreement = loans.claim(agreement_id, user_id, body.lender_name, body.lender_email)
    return AgreementResponse.from_domain(agreement)


@router.post("/agreements/{agreement_id}/sign", response_model=SignResponse)
def finalize_terms(
    agreement_id: str,
    body: SignRequest,
    request: Request,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    loans: LoanService = Depends(get_loan_service),
):
    """Record the caller's digital signature"""
    with unit_of_work(db, get_request_id(request)):
        agreement, both_signed = loans.finalize_terms(agreement_id, user_id, body.signature_data)
    return SignResponse(agreement=AgreementResponse.from_domain(agreement), both_signed=both_signed)


@router.post("/agreements/{agreement_id}/activate", response_model=AgreementResponse)
def activate_agreement(
    agreement_id: str,
    request: Request,
    body: Optional[ActivateRequest] = None,
    db: Session = Depends(get_db),
    loans: LoanService = Depends(get_loan_service),
):
    """Pending -> Active once both parties have signed"""
    deposited = body.deposited_amount if body else None
    with unit_of_work(db, get_request_id(request)):
        agreement = loans.activate(agreement_id, deposited_amount=deposited)
    return AgreementResponse.from_domain(agreement)


@router.post("/agreements/{agreement_id}/payments", response_model=PaymentResponse)
def record_payment(
    agreement_id: str,
    body: PaymentRequest,
    request: Request,
    db: Session = Depends(get_db),
    loans: LoanService = Depends(get_loan_service),
):
    """Record a repayment confirmed outside the card gateway (UPI, bank transfer, cash)"""
    with unit_of_work(db, get_request_id(request)):
        outcome = loans.record_payment(
            agreement_id,
            body.amount,
            payment_method=body.payment_method,
            payment_reference=body.payment_reference,
        )
    return PaymentResponse(
        agreement_id=agreement_id,
        amount=outcome.amount,
        amount_repaid=outcome.amount_repaid,
        total_due=outcome.total_due,
        completed=outcome.completed,
        on_time=outcome.on_time,
        status="completed" if outcome.completed else "active",
    )


@router.post("/agreements/{agreement_id}/default", response_model=AgreementResponse)
def mark_defaulted(
    agreement_id: str,
    request: Request,
    db: Session = Depends(get_db),
    loans: LoanService = Depends(get_loan_service),
):
    with unit_of_work(db, get_request_id(request)):
        agreement = loans.mark_defaulted(agreement_id)
    return AgreementResponse.from_domain(agreement)


@router.post("/agreements/{agreement_id}/cancel", response_model=AgreementResponse)
def cancel_agreement(
    agreement_id: str,
    request: Request,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    loans: LoanService = Depends(get_loan_service),
):
    with unit_of_work(db, get_request_id(request)):
        agreement = loans.cancel(agreement_id, user_id)
    return AgreementResponse.from_domain(agreement)


@router.get("/agreements/{agreement_id}/transactions", response_model=List[TransactionSchema])
def list_transactions(
    agreement_id: str,
    request: Request,
    db: Session = Depends(get_db),
    loans: LoanService = Depends(get_loan_service),
):
    with unit_of_work(db, get_request_id(request)):
        transactions = loans.list_transactions(agreement_id)
    return [TransactionSchema.model_validate(t) for t in transactions]


@router.get("/agreements/{agreement_id}/payment-instructions", response_model=PaymentInstructionsResponse)
def payment_instructions(
    agreement_id: str,
    request: Request,
    amount: Optional[Decimal] = Query(None, description="Defaults to the outstanding balance"),
    transfer_method: Optional[str] = Query(None, description="neft, rtgs or imps; suggested from the amount when omitted"),
    db: Session = Depends(get_db),
    loans: LoanService = Depends(get_loan_service),
):
    """UPI deep links and bank transfer steps for paying this agreement"""
    with unit_of_work(db, get_request_id(request)):
        instructions = build_payment_instructions(
            loans.get(agreement_id),
            amount=amount,
            transfer_method=transfer_method,
            config=request.app.state.settings,
        )
    return PaymentInstructionsResponse(
        agreement_id=instructions.agreement_id,
        amount=instructions.amount,
        reference=instructions.reference,
        upi_link=instructions.upi_link,
        upi_app_links=instructions.upi_app_links,
        supported_transfer_methods=instructions.supported_transfer_methods,
        bank_transfer_instructions=instructions.bank_transfer.instructions,
        estimated_time=instructions.bank_transfer.estimated_time,
    )


@router.post("/agreements/{agreement_id}/ratings", response_model=RatingSchema, status_code=201)
def rate_counterparty(
    agreement_id: str,
    body: RatingRequest,
    request: Request,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    ratings: RatingService = Depends(get_rating_service),
):
    """Rate the other party of a completed loan"""
    with unit_of_work(db, get_request_id(request)):
        record = ratings.submit_rating(
            agreement_id,
            user_id,
            body.rating,
            categories=body.categories,
            review_text=body.review_text,
        )
        response = RatingSchema.model_validate(record)
    return response


@router.get("/loan-options", response_model=List[LoanOptionSchema])
def compare_loan_offers(
    request: Request,
    amount: Decimal = Query(..., description="Principal in rupees"),
    duration_months: int = Query(..., ge=1),
    rates_bps: List[int] = Query(..., description="Candidate annual rates in basis points"),
    sort_by: str = Query("rate", description="rate, total or monthly"),
    max_rate_bps: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
):
    """Price each candidate rate as an amortized loan; informational only, total_due stays simple interest"""
    with unit_of_work(db, get_request_id(request)):
        options = compare_loan_options(amount, duration_months, rates_bps, sort_by=sort_by, max_rate_bps=max_rate_bps)
    return [LoanOptionSchema.model_validate(o) for o in options]
