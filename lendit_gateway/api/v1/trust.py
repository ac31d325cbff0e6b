"""Trust score endpoints under /v1/trust-scores"""

from typing import List

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from lendit_gateway.api.dependencies import get_current_user, get_rating_service, get_request_id, get_trust_engine
from lendit_gateway.api.errors import unit_of_work
from lendit_gateway.api.v1.schemas import (
    AchievementSchema,
    BreakdownResponse,
    ComponentSchema,
    HistoryItem,
    HistoryResponse,
    PlatformStatsResponse,
    RatingSchema,
    TrustEventRequest,
    TrustScoreResponse,
)
from lendit_gateway.domain.exceptions import AuthorizationError
from lendit_gateway.infrastructure.database.session import get_db
from lendit_gateway.services.ratings import RatingService
from lendit_gateway.services.trust_scores import TrustScoreEngine

router = APIRouter()


@router.get("/trust-scores", response_model=List[TrustScoreResponse])
def get_multiple_scores(
    user_ids: str = Query(..., description="Comma-separated user identifiers"),
    engine: TrustScoreEngine = Depends(get_trust_engine),
):
    """Scores for several users at once (lending decisions, listings)"""
    ids = [u.strip() for u in user_ids.split(",") if u.strip()]
    return [TrustScoreResponse.from_domain(s) for s in engine.get_scores(ids)]


@router.get("/trust-scores/{user_id}", response_model=TrustScoreResponse)
def get_trust_score(
    user_id: str,
    request: Request,
    db: Session = Depends(get_db),
    engine: TrustScoreEngine = Depends(get_trust_engine),
):
    """Current score; initialized to the neutral baseline on first access"""
    with unit_of_work(db, get_request_id(request)):
        score = engine.get_score(user_id)
    return TrustScoreResponse.from_domain(score)


@router.post("/trust-scores/{user_id}/recompute", response_model=TrustScoreResponse)
def recompute_trust_score(
    user_id: str,
    request: Request,
    db: Session = Depends(get_db),
    engine: TrustScoreEngine = Depends(get_trust_engine),
):
    with unit_of_work(db, get_request_id(request)):
        engine.recompute(user_id)
        score = engine.get_score(user_id)
    return TrustScoreResponse.from_domain(score)


@router.post("/trust-scores/{user_id}/events", response_model=HistoryItem, status_code=201)
def record_trust_event(
    user_id: str,
    body: TrustEventRequest,
    request: Request,
    actor: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    engine: TrustScoreEngine = Depends(get_trust_engine),
):
    """Self-reported verification_completed, profile_updated or score_recalculation events"""
    with unit_of_work(db, get_request_id(request)):
        if actor != user_id:
            raise AuthorizationError("Trust events may only be submitted for your own score")
        entry = engine.record_external_event(
            user_id,
            body.event_type,
            body.reason,
            actor=actor,
            reference_id=body.reference_id,
        )
    return HistoryItem.model_validate(entry)


@router.get("/trust-scores/{user_id}/history", response_model=HistoryResponse)
def get_trust_score_history(
    user_id: str,
    limit: int = Query(10, ge=1, le=100),
    engine: TrustScoreEngine = Depends(get_trust_engine),
):
    """Most recent score changes first"""
    history = engine.get_history(user_id, limit=limit)
    return HistoryResponse(user_id=user_id, history=[HistoryItem.model_validate(h) for h in history])


@router.get("/trust-scores/{user_id}/breakdown", response_model=BreakdownResponse)
def get_trust_score_breakdown(
    user_id: str,
    request: Request,
    db: Session = Depends(get_db),
    engine: TrustScoreEngine = Depends(get_trust_engine),
):
    with unit_of_work(db, get_request_id(request)):
        report = engine.report(user_id)
        response = BreakdownResponse(
            score=TrustScoreResponse.from_domain(report.score),
            components=[
                ComponentSchema(
                    component=b.component,
                    score=b.score,
                    weight=b.weight,
                    contribution=b.contribution,
                )
                for b in report.breakdown
            ],
            recommendations=report.recommendations,
            achievements=[AchievementSchema.model_validate(a) for a in report.achievements],
        )
    return response


@router.get("/trust-scores/{user_id}/ratings", response_model=List[RatingSchema])
def get_ratings(user_id: str, ratings: RatingService = Depends(get_rating_service)):
    return [RatingSchema.model_validate(r) for r in ratings.list_for_user(user_id)]


@router.get("/platform/trust-stats", response_model=PlatformStatsResponse)
def get_platform_stats(engine: TrustScoreEngine = Depends(get_trust_engine)):
    return PlatformStatsResponse(**engine.platform_stats())


@router.get("/platform/trust-scores", response_model=List[TrustScoreResponse])
def get_users_by_score_range(
    request: Request,
    min_score: int = Query(..., ge=0, le=850),
    max_score: int = Query(..., ge=0, le=850),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    engine: TrustScoreEngine = Depends(get_trust_engine),
):
    """Users scoring within the range, highest first (lender discovery)"""
    with unit_of_work(db, get_request_id(request)):
        scores = engine.users_in_score_range(min_score, max_score, limit=limit)
    return [TrustScoreResponse.from_domain(s) for s in scores]
