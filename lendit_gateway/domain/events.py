"""Domain events emitted by lifecycle transitions and ratings"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class PaymentMade:
    agreement_id: str
    borrower_id: str
    lender_id: Optional[str]
    amount: Decimal
    on_time: bool


@dataclass(frozen=True)
class LoanCompleted:
    agreement_id: str
    borrower_id: str
    lender_id: Optional[str]


@dataclass(frozen=True)
class LoanDefaulted:
    agreement_id: str
    borrower_id: str
    lender_id: Optional[str]


@dataclass(frozen=True)
class RatingReceived:
    rating_id: str
    agreement_id: str
    rated_user_id: str
    rating: int
