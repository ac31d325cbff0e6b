"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from lendit_gateway.infrastructure.clients.razorpay import RazorpayClient
from lendit_gateway.infrastructure.database.session import get_db
from lendit_gateway.services.events import EventBus
from lendit_gateway.services.loans import LoanService
from lendit_gateway.services.ratings import RatingService
from lendit_gateway.services.trust_scores import TrustScoreEngine, build_event_bus


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_current_user(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity as asserted by the upstream auth provider"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="User not authenticated")
    return x_user_id


def get_event_bus(request: Request, db: Session = Depends(get_db)) -> EventBus:
    """Event bus with trust score subscribers bound to this request's session"""
    return build_event_bus(db, get_request_id(request))


def get_loan_service(
    request: Request, db: Session = Depends(get_db), events: EventBus = Depends(get_event_bus)
) -> LoanService:
    return LoanService(db, events, get_request_id(request))


def get_rating_service(db: Session = Depends(get_db), events: EventBus = Depends(get_event_bus)) -> RatingService:
    return RatingService(db, events)


def get_trust_engine(request: Request, db: Session = Depends(get_db)) -> TrustScoreEngine:
    return TrustScoreEngine(db, get_request_id(request))


def get_razorpay_client(request: Request) -> RazorpayClient:
    """Provide payment processor client configured from the app settings"""
    config = request.app.state.settings
    return RazorpayClient(
        key_id=config.razorpay_key_id,
        key_secret=config.razorpay_key_secret,
        base_url=config.razorpay_api_base,
        timeout=config.http_timeout_seconds,
    )
