"""Ratings left by loan parties after completion"""

from typing import Dict, List, Optional
from sqlalchemy.orm import Session

from lendit_gateway.domain.events import RatingReceived
from lendit_gateway.domain.exceptions import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from lendit_gateway.domain.models import LoanStatus, Rating, RatingType
from lendit_gateway.infrastructure.database.models import RatingRecord
from lendit_gateway.infrastructure.database.repositories import AgreementRepository, RatingRepository
from lendit_gateway.services.events import EventBus
from lendit_gateway.utils.date_utils import utcnow

RATING_CATEGORIES = ("communication", "reliability", "transparency", "responsiveness", "professionalism")


def _validate_stars(value: int, label: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= 5:
        raise ValidationError(f"{label} must be an integer between 1 and 5")


class RatingService:
    """Accepts one immutable rating per party per completed loan"""

    def __init__(self, db: Session, events: Optional[EventBus] = None):
        self.db = db
        self.events = events or EventBus()
        self.agreements = AgreementRepository(db)
        self.ratings = RatingRepository(db)

    def submit_rating(
        self,
        agreement_id: str,
        rater_id: str,
        rating: int,
        categories: Optional[Dict[str, int]] = None,
        review_text: Optional[str] = None,
    ) -> RatingRecord:
        agreement = self.agreements.get_by_id(agreement_id)
        if agreement is None:
            raise NotFoundError(f"Agreement {agreement_id} not found")
        if agreement.status != LoanStatus.COMPLETED:
            raise InvalidStateError("Only completed loans can be rated")

        if rater_id == agreement.lender_id:
            rating_type, rated_id = RatingType.LENDER_TO_BORROWER, agreement.borrower_id
        elif rater_id == agreement.borrower_id:
            rating_type, rated_id = RatingType.BORROWER_TO_LENDER, agreement.lender_id
        else:
            raise AuthorizationError(f"User {rater_id} is not a party to agreement {agreement_id}")

        _validate_stars(rating, "Rating")
        categories = categories or {}
        for name, stars in categories.items():
            if name not in RATING_CATEGORIES:
                raise ValidationError(f"Unknown rating category: {name}")
            _validate_stars(stars, name)

        if self.ratings.exists(agreement_id, rater_id):
            raise InvalidStateError("You have already rated this loan")

        record = self.ratings.add(
            Rating(
                loan_agreement_id=agreement_id,
                rater_user_id=rater_id,
                rated_user_id=rated_id,
                rating=rating,
                rating_type=rating_type,
                rating_categories=dict(categories),
                review_text=review_text,
                created_at=utcnow(),
            )
        )
        self.events.publish(
            RatingReceived(
                rating_id=record.id,
                agreement_id=agreement_id,
                rated_user_id=rated_id,
                rating=rating,
            )
        )
        return record

    def list_for_user(self, user_id: str) -> List[RatingRecord]:
        return self.ratings.list_for_user(user_id)
