"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from lendit_gateway.domain import amortization, lifecycle
from lendit_gateway.domain.models import LoanAgreement, PaymentMethod, TrustScore


class CreateLoanRequest(BaseModel):
    """Request body for POST /v1/agreements"""

    amount: Decimal = Field(..., description="Principal in rupees")
    purpose: str = Field(..., min_length=1)
    duration_months: int = Field(..., description="Loan length in months")
    interest_rate_bps: int = Field(0, description="Annual simple interest in basis points")
    description: Optional[str] = None
    borrower_name: Optional[str] = None
    borrower_email: Optional[str] = None


class ClaimRequest(BaseModel):
    lender_name: Optional[str] = None
    lender_email: Optional[str] = None


class SignRequest(BaseModel):
    signature_data: str = Field(..., min_length=1)


class ActivateRequest(BaseModel):
    deposited_amount: Optional[Decimal] = None


class PaymentRequest(BaseModel):
    amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.UPI
    payment_reference: Optional[str] = None


class AgreementResponse(BaseModel):
    id: str
    borrower_id: str
    lender_id: Optional[str] = None
    principal: Decimal
    interest_rate_bps: int
    duration_months: int
    purpose: str
    description: Optional[str] = None
    status: str
    borrower_signed: bool
    lender_signed: bool
    amount_repaid: Decimal
    total_due: Decimal
    outstanding: Decimal
    monthly_payment: Decimal
    created_at: datetime
    activated_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, agreement: LoanAgreement) -> "AgreementResponse":
        return cls(
            id=agreement.id,
            borrower_id=agreement.borrower_id,
            lender_id=agreement.lender_id,
            principal=agreement.principal,
            interest_rate_bps=agreement.interest_rate_bps,
            duration_months=agreement.duration_months,
            purpose=agreement.purpose,
            description=agreement.description,
            status=agreement.status.value,
            borrower_signed=bool(agreement.borrower_signature),
            lender_signed=bool(agreement.lender_signature),
            amount_repaid=agreement.amount_repaid,
            total_due=lifecycle.total_due(agreement),
            outstanding=lifecycle.outstanding_balance(agreement),
            monthly_payment=amortization.monthly_payment(
                agreement.principal, agreement.interest_rate_bps, agreement.duration_months
            ),
            created_at=agreement.created_at,
            activated_at=agreement.activated_at,
            ends_at=agreement.ends_at,
            completed_at=agreement.completed_at,
        )


class LoanOptionSchema(BaseModel):
    """One candidate rate priced as an amortized (EMI) loan"""

    model_config = ConfigDict(from_attributes=True)

    principal: Decimal
    interest_rate_bps: int
    duration_months: int
    monthly_payment: Decimal
    total_repayment: Decimal
    total_interest: Decimal


class SignResponse(BaseModel):
    agreement: AgreementResponse
    both_signed: bool


class PaymentResponse(BaseModel):
    agreement_id: str
    amount: Decimal
    amount_repaid: Decimal
    total_due: Decimal
    completed: bool
    on_time: bool
    status: str


class TransactionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    transaction_type: str
    amount: Decimal
    payment_method: str
    payment_reference: Optional[str] = None
    status: str
    created_at: datetime


class PaymentInstructionsResponse(BaseModel):
    agreement_id: str
    amount: Decimal
    reference: str
    upi_link: str
    upi_app_links: Dict[str, str]
    supported_transfer_methods: List[str]
    bank_transfer_instructions: List[str]
    estimated_time: str


class CaptureRequest(BaseModel):
    """Checkout callback forwarded by the client after a Razorpay payment"""

    agreement_id: str
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    categories: Dict[str, int] = Field(default_factory=dict)
    review_text: Optional[str] = None


class RatingSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    loan_agreement_id: str
    rater_user_id: str
    rated_user_id: str
    rating: int
    rating_type: str
    rating_categories: Dict[str, int]
    review_text: Optional[str] = None
    created_at: datetime


class TrustScoreResponse(BaseModel):
    user_id: str
    overall_score: int
    score_tier: str
    repayment_score: int
    performance_score: int
    activity_score: int
    social_score: int
    verification_score: int
    base_score: int
    last_calculated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, score: TrustScore) -> "TrustScoreResponse":
        c = score.components
        return cls(
            user_id=score.user_id,
            overall_score=score.overall_score,
            score_tier=score.score_tier,
            repayment_score=c.repayment,
            performance_score=c.performance,
            activity_score=c.activity,
            social_score=c.social,
            verification_score=c.verification,
            base_score=c.base,
            last_calculated_at=score.last_calculated_at,
        )


class TrustEventRequest(BaseModel):
    event_type: str
    reason: str = Field(..., min_length=1)
    reference_id: Optional[str] = None


class HistoryItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    old_score: int
    new_score: int
    change_amount: int
    event_type: str
    change_reason: str
    event_reference_id: Optional[str] = None
    created_at: Optional[datetime] = None


class HistoryResponse(BaseModel):
    user_id: str
    history: List[HistoryItem]


class ComponentSchema(BaseModel):
    component: str
    score: int
    weight: Decimal
    contribution: Decimal


class AchievementSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    achievement_type: str
    achievement_name: str
    score_bonus: int
    earned_at: datetime


class BreakdownResponse(BaseModel):
    score: TrustScoreResponse
    components: List[ComponentSchema]
    recommendations: List[str]
    achievements: List[AchievementSchema]


class PlatformStatsResponse(BaseModel):
    average_score: int
    total_users: int
    tier_distribution: Dict[str, int]
