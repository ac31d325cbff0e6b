"""Trust score engine - weighted reputation scoring, event rules and achievements"""

from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Iterable, List, Optional

from lendit_gateway.domain.exceptions import ValidationError
from lendit_gateway.domain.models import ScoreComponents, TrustEventType, UserStats

SCORE_MIN = 0
SCORE_MAX = 850
NEUTRAL_SCORE = 300

COMPONENT_NAMES = ("repayment", "performance", "activity", "social", "verification", "base")

TRUST_SCORE_WEIGHTS: Dict[str, Decimal] = {
    "repayment": Decimal("0.40"),
    "performance": Decimal("0.20"),
    "activity": Decimal("0.10"),
    "social": Decimal("0.15"),
    "verification": Decimal("0.05"),
    "base": Decimal("0.10"),
}

# (tier, lowest score in tier), highest first
TIER_BREAKPOINTS = (
    ("platinum", 751),
    ("gold", 601),
    ("silver", 401),
    ("bronze", SCORE_MIN),
)

EVENT_RULES: Dict[TrustEventType, Dict[str, int]] = {
    TrustEventType.LOAN_COMPLETED: {"repayment": 40, "performance": 30, "activity": 15},
    TrustEventType.LOAN_DEFAULTED: {"repayment": -120, "performance": -60},
    TrustEventType.PAYMENT_MADE: {"repayment": 10, "activity": 5},
    TrustEventType.PAYMENT_LATE: {"repayment": -30, "performance": -10},
    TrustEventType.VERIFICATION_COMPLETED: {"verification": 100},
    TrustEventType.PROFILE_UPDATED: {"activity": 2},
    TrustEventType.SCORE_RECALCULATION: {},
}

RATING_POINTS_PER_STAR = 20
NEUTRAL_RATING = 3

# Events a caller may submit directly; the rest are raised by lifecycle and rating flows
EXTERNAL_EVENT_TYPES = frozenset(
    {
        TrustEventType.VERIFICATION_COMPLETED,
        TrustEventType.PROFILE_UPDATED,
        TrustEventType.SCORE_RECALCULATION,
    }
)


def clamp(value, lo: int = SCORE_MIN, hi: int = SCORE_MAX):
    return max(lo, min(hi, value))


def default_components() -> ScoreComponents:
    """Neutral baseline for a first-time user"""
    return ScoreComponents(
        repayment=NEUTRAL_SCORE,
        performance=NEUTRAL_SCORE,
        activity=NEUTRAL_SCORE,
        social=NEUTRAL_SCORE,
        verification=NEUTRAL_SCORE,
        base=NEUTRAL_SCORE,
    )


def calculate_total(components: ScoreComponents) -> int:
    """
    Weighted sum of sub-scores plus the base component, clamped to [0, 850].

    Inputs are not trusted to be in range: a sub-score of -1000 or +1000
    still yields a bounded total.
    """
    total = sum(
        Decimal(getattr(components, name)) * weight for name, weight in TRUST_SCORE_WEIGHTS.items()
    )
    total = clamp(total, Decimal(SCORE_MIN), Decimal(SCORE_MAX))
    return int(total.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def determine_tier(score: int) -> str:
    for tier, lowest in TIER_BREAKPOINTS:
        if score >= lowest:
            return tier
    return "bronze"


def parse_event_type(event_type) -> TrustEventType:
    try:
        return TrustEventType(event_type)
    except ValueError as e:
        raise ValidationError(f"Unknown trust score event type: {event_type}") from e


def parse_external_event_type(event_type) -> TrustEventType:
    event = parse_event_type(event_type)
    if event not in EXTERNAL_EVENT_TYPES:
        raise ValidationError(f"Event type {event.value} cannot be submitted directly")
    return event


def event_adjustments(
    event_type: TrustEventType,
    rating: Optional[int] = None,
    bonus: Optional[int] = None,
) -> Dict[str, int]:
    """Deterministic sub-score deltas for one event"""
    if event_type == TrustEventType.RATING_RECEIVED:
        if rating is None:
            raise ValidationError("Rating events require a star rating")
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5")
        return {"social": (rating - NEUTRAL_RATING) * RATING_POINTS_PER_STAR}
    if event_type == TrustEventType.ACHIEVEMENT_EARNED:
        return {"base": int(bonus or 0)}
    return dict(EVENT_RULES[event_type])


def apply_adjustments(components: ScoreComponents, adjustments: Dict[str, int]) -> ScoreComponents:
    """Return new components with deltas applied and each component clamped"""
    updated = {
        name: clamp(getattr(components, name) + delta) for name, delta in adjustments.items()
    }
    return replace(components, **updated)


@dataclass
class ComponentBreakdown:
    component: str
    score: int
    weight: Decimal
    contribution: Decimal


def score_breakdown(components: ScoreComponents) -> List[ComponentBreakdown]:
    """Per-component contribution to the overall score"""
    return [
        ComponentBreakdown(
            component=name,
            score=getattr(components, name),
            weight=weight,
            contribution=(Decimal(getattr(components, name)) * weight).quantize(Decimal("0.01")),
        )
        for name, weight in TRUST_SCORE_WEIGHTS.items()
    ]


def generate_recommendations(stats: UserStats) -> List[str]:
    recommendations = []

    if stats.completed_loans == 0 and stats.defaulted_loans == 0:
        recommendations.append("Complete your first loan to start building trust")
    elif stats.defaulted_loans > 0 or stats.late_payments > 0:
        recommendations.append("Focus on timely repayments to improve your score")

    if stats.ratings_received < 3:
        recommendations.append("Encourage lenders/borrowers to rate your transactions")
    elif stats.average_rating < 4.0:
        recommendations.append("Improve communication and reliability to get better ratings")

    if stats.verifications < 2:
        recommendations.append("Complete identity and bank verification for score boost")

    if stats.completed_loans < 5:
        recommendations.append("Stay active on the platform to improve your activity score")

    return recommendations


@dataclass(frozen=True)
class AchievementDefinition:
    achievement_type: str
    name: str
    description: str
    score_bonus: int
    earned: Callable[[UserStats], bool]


ACHIEVEMENTS: Dict[str, AchievementDefinition] = {
    definition.achievement_type: definition
    for definition in (
        AchievementDefinition(
            "first_loan",
            "First Steps",
            "Completed your first loan transaction",
            10,
            lambda s: s.completed_loans >= 1,
        ),
        AchievementDefinition(
            "perfect_repayment",
            "Perfect Record",
            "Maintained 100% on-time payment record",
            25,
            lambda s: s.on_time_payments >= 10 and s.late_payments == 0,
        ),
        AchievementDefinition(
            "highly_rated",
            "Community Favorite",
            "Received consistently high ratings",
            15,
            lambda s: s.ratings_received >= 5 and s.average_rating >= 4.5,
        ),
        AchievementDefinition(
            "verified_user",
            "Verified Member",
            "Completed comprehensive verification",
            20,
            lambda s: s.verifications >= 3,
        ),
        AchievementDefinition(
            "consistent_lender",
            "Reliable Lender",
            "Consistently provides loans to borrowers",
            18,
            lambda s: s.completed_as_lender >= 5 and s.defaulted_as_lender == 0,
        ),
        AchievementDefinition(
            "reliable_borrower",
            "Trustworthy Borrower",
            "Proven track record as a borrower",
            18,
            lambda s: s.completed_as_borrower >= 3 and s.defaulted_as_borrower == 0,
        ),
    )
}


def evaluate_achievements(stats: UserStats, already_earned: Iterable[str]) -> List[AchievementDefinition]:
    """Achievements whose predicate holds and that the user does not have yet"""
    earned = set(already_earned)
    return [
        definition
        for achievement_type, definition in ACHIEVEMENTS.items()
        if achievement_type not in earned and definition.earned(stats)
    ]
