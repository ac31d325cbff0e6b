"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional


class LoanStatus(str, Enum):
    """Agreement lifecycle states"""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"
    CANCELLED = "cancelled"


class TransactionType(str, Enum):
    DISBURSEMENT = "disbursement"
    REPAYMENT = "repayment"


class PaymentMethod(str, Enum):
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"
    RAZORPAY = "razorpay"
    CRYPTO = "crypto"
    CASH = "cash"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class TrustEventType(str, Enum):
    """Events that adjust a user's trust score"""

    LOAN_COMPLETED = "loan_completed"
    LOAN_DEFAULTED = "loan_defaulted"
    PAYMENT_MADE = "payment_made"
    PAYMENT_LATE = "payment_late"
    RATING_RECEIVED = "rating_received"
    VERIFICATION_COMPLETED = "verification_completed"
    SCORE_RECALCULATION = "score_recalculation"
    ACHIEVEMENT_EARNED = "achievement_earned"
    PROFILE_UPDATED = "profile_updated"


class RatingType(str, Enum):
    LENDER_TO_BORROWER = "lender_to_borrower"
    BORROWER_TO_LENDER = "borrower_to_lender"


@dataclass
class LoanAgreement:
    """Loan contract between a borrower and (once claimed) a lender"""

    id: str
    borrower_id: str
    principal: Decimal
    interest_rate_bps: int
    duration_months: int
    status: LoanStatus
    created_at: datetime
    purpose: str = ""
    description: Optional[str] = None
    borrower_name: Optional[str] = None
    borrower_email: Optional[str] = None
    lender_id: Optional[str] = None
    lender_name: Optional[str] = None
    lender_email: Optional[str] = None
    borrower_signature: Optional[str] = None
    lender_signature: Optional[str] = None
    amount_repaid: Decimal = Decimal("0.00")
    activated_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    defaulted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    version: int = 0

    def is_party(self, user_id: str) -> bool:
        return user_id == self.borrower_id or (self.lender_id is not None and user_id == self.lender_id)

    @property
    def fully_signed(self) -> bool:
        return bool(self.borrower_signature) and bool(self.lender_signature)


@dataclass
class Transaction:
    """One payment recorded against an agreement"""

    agreement_id: str
    transaction_type: TransactionType
    amount: Decimal
    payment_method: PaymentMethod
    status: TransactionStatus
    created_at: datetime
    payment_reference: Optional[str] = None
    id: Optional[str] = None


@dataclass
class ScoreComponents:
    """The five weighted sub-scores plus the base component"""

    repayment: int
    performance: int
    activity: int
    social: int
    verification: int
    base: int


@dataclass
class TrustScore:
    """Per-user reputation aggregate"""

    user_id: str
    components: ScoreComponents
    overall_score: int
    score_tier: str
    last_calculated_at: Optional[datetime] = None
    version: int = 0


@dataclass
class TrustScoreHistoryEntry:
    """Immutable audit record of one score change"""

    user_id: str
    old_score: int
    new_score: int
    change_amount: int
    event_type: str
    change_reason: str
    event_reference_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Rating:
    """Directional star review authored by one party of a completed loan"""

    loan_agreement_id: str
    rater_user_id: str
    rated_user_id: str
    rating: int
    rating_type: RatingType
    rating_categories: Dict[str, int] = field(default_factory=dict)
    review_text: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class UserStats:
    """Aggregated activity used by achievement predicates and recommendations"""

    on_time_payments: int = 0
    late_payments: int = 0
    completed_as_borrower: int = 0
    completed_as_lender: int = 0
    defaulted_as_borrower: int = 0
    defaulted_as_lender: int = 0
    ratings_received: int = 0
    average_rating: float = 0.0
    verifications: int = 0

    @property
    def completed_loans(self) -> int:
        return self.completed_as_borrower + self.completed_as_lender

    @property
    def defaulted_loans(self) -> int:
        return self.defaulted_as_borrower + self.defaulted_as_lender
