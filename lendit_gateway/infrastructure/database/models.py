"""SQLAlchemy ORM models for agreements, transactions, trust scores and ratings"""

import uuid
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    Integer,
    ForeignKey,
    Numeric,
    Text,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class LoanAgreementRecord(Base):
    """Loan agreement between borrower and lender"""

    __tablename__ = "loan_agreements"

    id = Column(String(36), primary_key=True, default=_uuid)
    borrower_id = Column(Text, nullable=False, index=True)
    borrower_name = Column(Text, nullable=True)
    borrower_email = Column(Text, nullable=True)
    lender_id = Column(Text, nullable=True, index=True)
    lender_name = Column(Text, nullable=True)
    lender_email = Column(Text, nullable=True)
    principal = Column(Numeric(14, 2), nullable=False)
    interest_rate_bps = Column(Integer, nullable=False, default=0)
    duration_months = Column(Integer, nullable=False)
    purpose = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default="pending", index=True)
    borrower_signature = Column(Text, nullable=True)
    lender_signature = Column(Text, nullable=True)
    amount_repaid = Column(Numeric(14, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    activated_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    defaulted_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=0)

    transactions = relationship("TransactionRecord", back_populates="agreement", order_by="TransactionRecord.seq")


class TransactionRecord(Base):
    """Append-only payment ledger entry"""

    __tablename__ = "transactions"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, nullable=False, default=_uuid)
    agreement_id = Column(String(36), ForeignKey("loan_agreements.id"), nullable=False, index=True)
    transaction_type = Column(String(16), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    payment_method = Column(String(32), nullable=False)
    payment_reference = Column(Text, nullable=True, unique=True)
    status = Column(String(16), nullable=False, default="completed")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    agreement = relationship("LoanAgreementRecord", back_populates="transactions")


class TrustScoreRecord(Base):
    """Current trust score per user"""

    __tablename__ = "user_trust_scores"

    user_id = Column(Text, primary_key=True)
    repayment_score = Column(Integer, nullable=False)
    performance_score = Column(Integer, nullable=False)
    activity_score = Column(Integer, nullable=False)
    social_score = Column(Integer, nullable=False)
    verification_score = Column(Integer, nullable=False)
    base_score = Column(Integer, nullable=False)
    overall_score = Column(Integer, nullable=False, index=True)
    score_tier = Column(String(16), nullable=False)
    last_calculated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    version = Column(Integer, nullable=False, default=0)


class TrustScoreHistoryRecord(Base):
    """Immutable trust score audit trail"""

    __tablename__ = "trust_score_history"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, nullable=False, default=_uuid)
    user_id = Column(Text, nullable=False, index=True)
    old_score = Column(Integer, nullable=False)
    new_score = Column(Integer, nullable=False)
    change_amount = Column(Integer, nullable=False)
    event_type = Column(String(32), nullable=False, index=True)
    change_reason = Column(Text, nullable=False)
    event_reference_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class RatingRecord(Base):
    """Star rating left by one loan party for the other"""

    __tablename__ = "user_ratings"
    __table_args__ = (UniqueConstraint("loan_agreement_id", "rater_user_id", name="uq_rating_per_rater"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    loan_agreement_id = Column(String(36), ForeignKey("loan_agreements.id"), nullable=False, index=True)
    rater_user_id = Column(Text, nullable=False)
    rated_user_id = Column(Text, nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    review_text = Column(Text, nullable=True)
    rating_categories = Column(JSON, nullable=False, default=dict)
    rating_type = Column(String(32), nullable=False)
    is_verified = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AchievementRecord(Base):
    """Achievement earned by a user (at most once per type)"""

    __tablename__ = "trust_score_achievements"
    __table_args__ = (UniqueConstraint("user_id", "achievement_type", name="uq_achievement_per_user"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(Text, nullable=False, index=True)
    achievement_type = Column(String(32), nullable=False)
    achievement_name = Column(Text, nullable=False)
    score_bonus = Column(Integer, nullable=False)
    earned_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
