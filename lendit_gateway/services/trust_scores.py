"""Trust score engine service - recompute, event recording, achievements and history"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lendit_gateway.domain.events import LoanCompleted, LoanDefaulted, PaymentMade, RatingReceived
from lendit_gateway.domain.exceptions import ConcurrencyConflictError, ValidationError
from lendit_gateway.domain.models import (
    ScoreComponents,
    TrustEventType,
    TrustScore,
    TrustScoreHistoryEntry,
    UserStats,
)
from lendit_gateway.domain.trust_scoring import (
    SCORE_MAX,
    SCORE_MIN,
    ComponentBreakdown,
    apply_adjustments,
    calculate_total,
    default_components,
    determine_tier,
    evaluate_achievements,
    event_adjustments,
    generate_recommendations,
    parse_event_type,
    parse_external_event_type,
    score_breakdown,
)
from lendit_gateway.infrastructure.database.models import AchievementRecord, TrustScoreHistoryRecord
from lendit_gateway.infrastructure.database.repositories import (
    AchievementRepository,
    AgreementRepository,
    RatingRepository,
    TrustScoreRepository,
)
from lendit_gateway.infrastructure.observability.logging import log_score_change
from lendit_gateway.infrastructure.observability.metrics import (
    achievement_counter,
    score_change_counter,
    score_recompute_histogram,
)
from lendit_gateway.services.events import EventBus
from lendit_gateway.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class TrustScoreReport:
    """Score with its per-component breakdown and improvement hints"""

    score: TrustScore
    breakdown: List[ComponentBreakdown]
    recommendations: List[str]
    achievements: List[AchievementRecord]


class TrustScoreEngine:
    """Maintains each user's weighted reputation score and its audit trail"""

    def __init__(self, db: Session, request_id: Optional[str] = None):
        self.db = db
        self.scores = TrustScoreRepository(db)
        self.agreements = AgreementRepository(db)
        self.ratings = RatingRepository(db)
        self.achievements = AchievementRepository(db)
        self.request_id = request_id

    def get_score(self, user_id: str) -> TrustScore:
        """Current score; first-time users are initialized to the neutral baseline"""
        score = self.scores.get(user_id)
        if score is None:
            score = self._initialize(user_id)
        return score

    def get_scores(self, user_ids: Iterable[str]) -> List[TrustScore]:
        return self.scores.get_many(user_ids)

    def recompute(
        self,
        user_id: str,
        reason: str = "Score recalculation",
        event_type: TrustEventType = TrustEventType.SCORE_RECALCULATION,
        reference_id: Optional[str] = None,
    ) -> TrustScoreHistoryEntry:
        """Recompute total and tier from the stored components and append history"""
        score = self.get_score(user_id)
        return self._apply(score, score.components, event_type, reason, reference_id)

    def record_event(
        self,
        user_id: str,
        event_type,
        reason: str,
        reference_id: Optional[str] = None,
        rating: Optional[int] = None,
        bonus: Optional[int] = None,
    ) -> TrustScoreHistoryEntry:
        """
        Apply the event's deterministic sub-score adjustment, then recompute.

        Non-achievement events also re-evaluate achievements, each of which is
        recorded as its own achievement_earned event.
        """
        event = parse_event_type(event_type)
        adjustments = event_adjustments(event, rating=rating, bonus=bonus)

        score = self.get_score(user_id)
        components = apply_adjustments(score.components, adjustments)
        entry = self._apply(score, components, event, reason, reference_id)
        score_change_counter.labels(event_type=event.value).inc()

        if event != TrustEventType.ACHIEVEMENT_EARNED:
            self.evaluate_achievements(user_id)
        return entry

    def record_external_event(
        self,
        user_id: str,
        event_type,
        reason: str,
        actor: str,
        reference_id: Optional[str] = None,
    ) -> TrustScoreHistoryEntry:
        """Caller-submitted events, limited to verification, profile updates and recalculation"""
        event = parse_external_event_type(event_type)
        logger.info(
            "External trust event",
            extra={"request_id": self.request_id, "user_id": user_id, "actor": actor, "event_type": event.value},
        )
        return self.record_event(user_id, event, reason, reference_id=reference_id)

    def users_in_score_range(self, min_score: int, max_score: int, limit: int = 20) -> List[TrustScore]:
        if not SCORE_MIN <= min_score <= max_score <= SCORE_MAX:
            raise ValidationError(f"Score range must satisfy {SCORE_MIN} <= min_score <= max_score <= {SCORE_MAX}")
        if limit < 1:
            raise ValidationError("Limit must be at least 1")
        return self.scores.list_in_range(min_score, max_score, limit=limit)

    def evaluate_achievements(self, user_id: str) -> List[AchievementRecord]:
        """Award every achievement whose predicate now holds; each is earned at most once"""
        stats = self.user_stats(user_id)
        earned: List[AchievementRecord] = []
        for definition in evaluate_achievements(stats, self.achievements.earned_types(user_id)):
            record = self.achievements.add(user_id, definition)
            self.record_event(
                user_id,
                TrustEventType.ACHIEVEMENT_EARNED,
                reason=f"Achievement earned: {definition.name}",
                reference_id=definition.achievement_type,
                bonus=definition.score_bonus,
            )
            achievement_counter.labels(achievement_type=definition.achievement_type).inc()
            earned.append(record)
        return earned

    def user_stats(self, user_id: str) -> UserStats:
        events = self.scores.event_counts(user_id)
        statuses = self.agreements.status_counts(user_id)
        ratings_received, average_rating = self.ratings.summary_for(user_id)

        return UserStats(
            on_time_payments=events.get(TrustEventType.PAYMENT_MADE.value, 0),
            late_payments=events.get(TrustEventType.PAYMENT_LATE.value, 0),
            completed_as_borrower=statuses.get(("borrower", "completed"), 0),
            completed_as_lender=statuses.get(("lender", "completed"), 0),
            defaulted_as_borrower=statuses.get(("borrower", "defaulted"), 0),
            defaulted_as_lender=statuses.get(("lender", "defaulted"), 0),
            ratings_received=ratings_received,
            average_rating=average_rating,
            verifications=events.get(TrustEventType.VERIFICATION_COMPLETED.value, 0),
        )

    def get_history(self, user_id: str, limit: int = 10) -> List[TrustScoreHistoryRecord]:
        return self.scores.get_history(user_id, limit=limit)

    def report(self, user_id: str) -> TrustScoreReport:
        score = self.get_score(user_id)
        return TrustScoreReport(
            score=score,
            breakdown=score_breakdown(score.components),
            recommendations=generate_recommendations(self.user_stats(user_id)),
            achievements=self.achievements.list_for_user(user_id),
        )

    def platform_stats(self) -> Dict[str, object]:
        """Average score, user count and tier distribution across the platform"""
        rows = self.scores.all_scores()
        tier_distribution: Dict[str, int] = {}
        for _, tier in rows:
            tier_distribution[tier] = tier_distribution.get(tier, 0) + 1
        average = round(sum(score for score, _ in rows) / len(rows)) if rows else 0
        return {
            "average_score": average,
            "total_users": len(rows),
            "tier_distribution": tier_distribution,
        }

    def _initialize(self, user_id: str) -> TrustScore:
        components = default_components()
        total = calculate_total(components)
        score = TrustScore(
            user_id=user_id,
            components=components,
            overall_score=total,
            score_tier=determine_tier(total),
            last_calculated_at=utcnow(),
        )
        try:
            self.scores.insert(score)
        except IntegrityError as e:
            raise ConcurrencyConflictError(f"Trust score for {user_id} was initialized concurrently") from e
        logger.info("Initialized trust score", extra={"user_id": user_id, "overall_score": total})
        return score

    def _apply(
        self,
        score: TrustScore,
        components: ScoreComponents,
        event_type: TrustEventType,
        reason: str,
        reference_id: Optional[str],
    ) -> TrustScoreHistoryEntry:
        with score_recompute_histogram.time():
            old_score = score.overall_score
            new_score = calculate_total(components)

            score.components = components
            score.overall_score = new_score
            score.score_tier = determine_tier(new_score)
            score.last_calculated_at = utcnow()
            self.scores.save(score)

            entry = TrustScoreHistoryEntry(
                user_id=score.user_id,
                old_score=old_score,
                new_score=new_score,
                change_amount=new_score - old_score,
                event_type=event_type.value,
                change_reason=reason,
                event_reference_id=reference_id,
                created_at=score.last_calculated_at,
            )
            self.scores.add_history(entry)

        log_score_change(
            score.user_id, old_score, new_score, event_type.value, reference_id, request_id=self.request_id
        )
        return entry


class TrustScoreSubscriber:
    """Turns lifecycle and rating events into trust score events"""

    def __init__(self, engine: TrustScoreEngine):
        self.engine = engine

    def register(self, bus: EventBus) -> EventBus:
        bus.subscribe(PaymentMade, self.on_payment_made)
        bus.subscribe(LoanCompleted, self.on_loan_completed)
        bus.subscribe(LoanDefaulted, self.on_loan_defaulted)
        bus.subscribe(RatingReceived, self.on_rating_received)
        return bus

    def on_payment_made(self, event: PaymentMade) -> None:
        if event.on_time:
            event_type, reason = TrustEventType.PAYMENT_MADE, f"On-time payment of {event.amount}"
        else:
            event_type, reason = TrustEventType.PAYMENT_LATE, f"Late payment of {event.amount}"
        self.engine.record_event(event.borrower_id, event_type, reason, reference_id=event.agreement_id)

    def on_loan_completed(self, event: LoanCompleted) -> None:
        self.engine.record_event(
            event.borrower_id, TrustEventType.LOAN_COMPLETED, "Loan repaid in full", reference_id=event.agreement_id
        )
        if event.lender_id:
            self.engine.record_event(
                event.lender_id, TrustEventType.LOAN_COMPLETED, "Funded loan completed", reference_id=event.agreement_id
            )

    def on_loan_defaulted(self, event: LoanDefaulted) -> None:
        self.engine.record_event(
            event.borrower_id, TrustEventType.LOAN_DEFAULTED, "Loan defaulted", reference_id=event.agreement_id
        )

    def on_rating_received(self, event: RatingReceived) -> None:
        self.engine.record_event(
            event.rated_user_id,
            TrustEventType.RATING_RECEIVED,
            f"Received a {event.rating}-star rating",
            reference_id=event.rating_id,
            rating=event.rating,
        )


def build_event_bus(db: Session, request_id: Optional[str] = None) -> EventBus:
    """Event bus with the trust score engine subscribed, sharing the caller's session"""
    return TrustScoreSubscriber(TrustScoreEngine(db, request_id)).register(EventBus())
