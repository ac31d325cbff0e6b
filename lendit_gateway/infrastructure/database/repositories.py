"""Data access layer for agreements, transactions, trust scores and ratings"""

from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set, Tuple
from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from lendit_gateway.domain.exceptions import ConcurrencyConflictError
from lendit_gateway.domain.lifecycle import CENT
from lendit_gateway.domain.models import (
    LoanAgreement,
    LoanStatus,
    Rating,
    ScoreComponents,
    Transaction,
    TrustScore,
    TrustScoreHistoryEntry,
)
from lendit_gateway.domain.trust_scoring import AchievementDefinition
from lendit_gateway.infrastructure.database.models import (
    AchievementRecord,
    LoanAgreementRecord,
    RatingRecord,
    TransactionRecord,
    TrustScoreHistoryRecord,
    TrustScoreRecord,
)
from lendit_gateway.utils.date_utils import ensure_aware, utcnow


def _aware(value):
    return ensure_aware(value) if value is not None else None


def _money(value) -> Decimal:
    return Decimal(value).quantize(CENT)


MUTABLE_AGREEMENT_FIELDS = (
    "lender_id",
    "lender_name",
    "lender_email",
    "borrower_signature",
    "lender_signature",
    "amount_repaid",
    "activated_at",
    "ends_at",
    "completed_at",
    "defaulted_at",
    "cancelled_at",
)


class AgreementRepository:
    """Repository for loan agreements"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def to_domain(record: LoanAgreementRecord) -> LoanAgreement:
        return LoanAgreement(
            id=record.id,
            borrower_id=record.borrower_id,
            principal=_money(record.principal),
            interest_rate_bps=record.interest_rate_bps,
            duration_months=record.duration_months,
            status=LoanStatus(record.status),
            created_at=_aware(record.created_at),
            purpose=record.purpose,
            description=record.description,
            borrower_name=record.borrower_name,
            borrower_email=record.borrower_email,
            lender_id=record.lender_id,
            lender_name=record.lender_name,
            lender_email=record.lender_email,
            borrower_signature=record.borrower_signature,
            lender_signature=record.lender_signature,
            amount_repaid=_money(record.amount_repaid),
            activated_at=_aware(record.activated_at),
            ends_at=_aware(record.ends_at),
            completed_at=_aware(record.completed_at),
            defaulted_at=_aware(record.defaulted_at),
            cancelled_at=_aware(record.cancelled_at),
            version=record.version,
        )

    def add(self, agreement: LoanAgreement) -> LoanAgreementRecord:
        """Persist a freshly created agreement"""
        record = LoanAgreementRecord(
            id=agreement.id,
            borrower_id=agreement.borrower_id,
            borrower_name=agreement.borrower_name,
            borrower_email=agreement.borrower_email,
            principal=agreement.principal,
            interest_rate_bps=agreement.interest_rate_bps,
            duration_months=agreement.duration_months,
            purpose=agreement.purpose,
            description=agreement.description,
            status=agreement.status.value,
            amount_repaid=agreement.amount_repaid,
            created_at=agreement.created_at,
            version=agreement.version,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def get_by_id(self, agreement_id: str) -> Optional[LoanAgreement]:
        record = (
            self.db.query(LoanAgreementRecord)
            .populate_existing()
            .filter(LoanAgreementRecord.id == agreement_id)
            .first()
        )
        return self.to_domain(record) if record else None

    def save(self, agreement: LoanAgreement, expected_status: LoanStatus) -> None:
        """
        Compare-and-swap write: succeeds only if nobody changed the row since it was read.

        The WHERE clause pins both the version and the status the transition
        started from, so two racing claims (or activate vs cancel) cannot both win.
        """
        values = {name: getattr(agreement, name) for name in MUTABLE_AGREEMENT_FIELDS}
        values["status"] = agreement.status.value
        values["version"] = agreement.version + 1

        result = self.db.execute(
            update(LoanAgreementRecord)
            .where(
                LoanAgreementRecord.id == agreement.id,
                LoanAgreementRecord.version == agreement.version,
                LoanAgreementRecord.status == expected_status.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyConflictError(f"Agreement {agreement.id} was modified concurrently")
        agreement.version += 1

    def list_for_user(self, user_id: str) -> List[LoanAgreement]:
        """Agreements where the user is borrower or lender, newest first"""
        records = (
            self.db.query(LoanAgreementRecord)
            .filter(or_(LoanAgreementRecord.borrower_id == user_id, LoanAgreementRecord.lender_id == user_id))
            .order_by(LoanAgreementRecord.created_at.desc())
            .all()
        )
        return [self.to_domain(r) for r in records]

    def list_open_requests(self, limit: int = 50) -> List[LoanAgreement]:
        """Pending requests with no lender bound yet"""
        records = (
            self.db.query(LoanAgreementRecord)
            .filter(
                LoanAgreementRecord.status == LoanStatus.PENDING.value,
                LoanAgreementRecord.lender_id.is_(None),
            )
            .order_by(LoanAgreementRecord.created_at.desc())
            .limit(limit)
            .all()
        )
        return [self.to_domain(r) for r in records]

    def status_counts(self, user_id: str) -> Dict[Tuple[str, str], int]:
        """Counts keyed by (role, status) where role is borrower or lender"""
        counts: Dict[Tuple[str, str], int] = {}
        for role, column in (("borrower", LoanAgreementRecord.borrower_id), ("lender", LoanAgreementRecord.lender_id)):
            rows = (
                self.db.query(LoanAgreementRecord.status, func.count(LoanAgreementRecord.id))
                .filter(column == user_id)
                .group_by(LoanAgreementRecord.status)
                .all()
            )
            for status, count in rows:
                counts[(role, status)] = count
        return counts


class TransactionRepository:
    """Repository for the append-only payment ledger"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, transaction: Transaction) -> TransactionRecord:
        record = TransactionRecord(
            agreement_id=transaction.agreement_id,
            transaction_type=transaction.transaction_type.value,
            amount=transaction.amount,
            payment_method=transaction.payment_method.value,
            payment_reference=transaction.payment_reference,
            status=transaction.status.value,
            created_at=transaction.created_at,
        )
        self.db.add(record)
        self.db.flush()
        transaction.id = record.id
        return record

    def reference_exists(self, payment_reference: str) -> bool:
        return (
            self.db.query(TransactionRecord.seq)
            .filter(TransactionRecord.payment_reference == payment_reference)
            .first()
            is not None
        )

    def list_for_agreement(self, agreement_id: str) -> List[TransactionRecord]:
        return (
            self.db.query(TransactionRecord)
            .filter(TransactionRecord.agreement_id == agreement_id)
            .order_by(TransactionRecord.seq.asc())
            .all()
        )


class TrustScoreRepository:
    """Repository for trust scores and their history"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def to_domain(record: TrustScoreRecord) -> TrustScore:
        return TrustScore(
            user_id=record.user_id,
            components=ScoreComponents(
                repayment=record.repayment_score,
                performance=record.performance_score,
                activity=record.activity_score,
                social=record.social_score,
                verification=record.verification_score,
                base=record.base_score,
            ),
            overall_score=record.overall_score,
            score_tier=record.score_tier,
            last_calculated_at=_aware(record.last_calculated_at),
            version=record.version,
        )

    @staticmethod
    def _columns(score: TrustScore) -> Dict[str, object]:
        c = score.components
        return {
            "repayment_score": c.repayment,
            "performance_score": c.performance,
            "activity_score": c.activity,
            "social_score": c.social,
            "verification_score": c.verification,
            "base_score": c.base,
            "overall_score": score.overall_score,
            "score_tier": score.score_tier,
            "last_calculated_at": score.last_calculated_at,
        }

    def get(self, user_id: str) -> Optional[TrustScore]:
        record = (
            self.db.query(TrustScoreRecord)
            .populate_existing()
            .filter(TrustScoreRecord.user_id == user_id)
            .first()
        )
        return self.to_domain(record) if record else None

    def get_many(self, user_ids: Iterable[str]) -> List[TrustScore]:
        records = self.db.query(TrustScoreRecord).filter(TrustScoreRecord.user_id.in_(list(user_ids))).all()
        return [self.to_domain(r) for r in records]

    def insert(self, score: TrustScore) -> None:
        self.db.add(TrustScoreRecord(user_id=score.user_id, version=score.version, **self._columns(score)))
        self.db.flush()

    def save(self, score: TrustScore) -> None:
        """Compare-and-swap on version so concurrent recomputes cannot interleave"""
        result = self.db.execute(
            update(TrustScoreRecord)
            .where(TrustScoreRecord.user_id == score.user_id, TrustScoreRecord.version == score.version)
            .values(version=score.version + 1, **self._columns(score))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyConflictError(f"Trust score for {score.user_id} was modified concurrently")
        score.version += 1

    def add_history(self, entry: TrustScoreHistoryEntry) -> TrustScoreHistoryRecord:
        record = TrustScoreHistoryRecord(
            user_id=entry.user_id,
            old_score=entry.old_score,
            new_score=entry.new_score,
            change_amount=entry.change_amount,
            event_type=entry.event_type,
            change_reason=entry.change_reason,
            event_reference_id=entry.event_reference_id,
            created_at=entry.created_at or utcnow(),
        )
        self.db.add(record)
        self.db.flush()
        return record

    def get_history(self, user_id: str, limit: int = 10) -> List[TrustScoreHistoryRecord]:
        """Most recent history entries first"""
        return (
            self.db.query(TrustScoreHistoryRecord)
            .filter(TrustScoreHistoryRecord.user_id == user_id)
            .order_by(TrustScoreHistoryRecord.seq.desc())
            .limit(limit)
            .all()
        )

    def event_counts(self, user_id: str) -> Dict[str, int]:
        rows = (
            self.db.query(TrustScoreHistoryRecord.event_type, func.count(TrustScoreHistoryRecord.seq))
            .filter(TrustScoreHistoryRecord.user_id == user_id)
            .group_by(TrustScoreHistoryRecord.event_type)
            .all()
        )
        return {event_type: count for event_type, count in rows}

    def all_scores(self) -> List[Tuple[int, str]]:
        return self.db.query(TrustScoreRecord.overall_score, TrustScoreRecord.score_tier).all()

    def list_in_range(self, min_score: int, max_score: int, limit: int = 20) -> List[TrustScore]:
        """Users scoring within [min_score, max_score], highest score first"""
        records = (
            self.db.query(TrustScoreRecord)
            .filter(TrustScoreRecord.overall_score >= min_score, TrustScoreRecord.overall_score <= max_score)
            .order_by(TrustScoreRecord.overall_score.desc(), TrustScoreRecord.user_id)
            .limit(limit)
            .all()
        )
        return [self.to_domain(r) for r in records]


class RatingRepository:
    """Repository for user ratings"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, rating: Rating) -> RatingRecord:
        record = RatingRecord(
            loan_agreement_id=rating.loan_agreement_id,
            rater_user_id=rating.rater_user_id,
            rated_user_id=rating.rated_user_id,
            rating=rating.rating,
            review_text=rating.review_text,
            rating_categories=rating.rating_categories,
            rating_type=rating.rating_type.value,
            created_at=rating.created_at or utcnow(),
        )
        self.db.add(record)
        self.db.flush()
        return record

    def exists(self, agreement_id: str, rater_user_id: str) -> bool:
        return (
            self.db.query(RatingRecord.id)
            .filter(RatingRecord.loan_agreement_id == agreement_id, RatingRecord.rater_user_id == rater_user_id)
            .first()
            is not None
        )

    def summary_for(self, user_id: str) -> Tuple[int, float]:
        """(number of ratings received, average stars)"""
        count, average = (
            self.db.query(func.count(RatingRecord.id), func.avg(RatingRecord.rating))
            .filter(RatingRecord.rated_user_id == user_id)
            .one()
        )
        return count or 0, float(average or 0.0)

    def list_for_user(self, user_id: str) -> List[RatingRecord]:
        return (
            self.db.query(RatingRecord)
            .filter(RatingRecord.rated_user_id == user_id)
            .order_by(RatingRecord.created_at.desc())
            .all()
        )


class AchievementRepository:
    """Repository for earned achievements"""

    def __init__(self, db: Session):
        self.db = db

    def earned_types(self, user_id: str) -> Set[str]:
        rows = self.db.query(AchievementRecord.achievement_type).filter(AchievementRecord.user_id == user_id).all()
        return {row[0] for row in rows}

    def add(self, user_id: str, definition: AchievementDefinition) -> AchievementRecord:
        record = AchievementRecord(
            user_id=user_id,
            achievement_type=definition.achievement_type,
            achievement_name=definition.name,
            score_bonus=definition.score_bonus,
            earned_at=utcnow(),
        )
        self.db.add(record)
        self.db.flush()
        return record

    def list_for_user(self, user_id: str) -> List[AchievementRecord]:
        return (
            self.db.query(AchievementRecord)
            .filter(AchievementRecord.user_id == user_id)
            .order_by(AchievementRecord.earned_at.asc())
            .all()
        )
