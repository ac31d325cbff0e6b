"""Maps domain failures to HTTP responses and keeps each request all-or-nothing"""

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lendit_gateway.domain.exceptions import (
    AuthorizationError,
    DomainException,
    ExternalServiceError,
    InvalidStateError,
    NotFoundError,
    PaymentVerificationError,
    PreconditionError,
    ValidationError,
)
from lendit_gateway.infrastructure.observability.metrics import rejected_transition_counter

# Most specific first: AuthorizationError and ConcurrencyConflictError subclass InvalidStateError.
STATUS_CODES = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (AuthorizationError, 403),
    (InvalidStateError, 409),
    (PreconditionError, 409),
    (PaymentVerificationError, 400),
)


def status_code_for(error: DomainException) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


@contextmanager
def unit_of_work(db: Session, request_id: str) -> Iterator[None]:
    """Commit on success; roll back and translate the error otherwise"""
    try:
        yield
        db.commit()

    except HTTPException:
        db.rollback()
        raise

    except ExternalServiceError as e:
        db.rollback()
        logging.error(f"External service error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Payment service unavailable")

    except DomainException as e:
        db.rollback()
        rejected_transition_counter.labels(error=type(e).__name__).inc()
        logging.warning(f"Request rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=status_code_for(e), detail=str(e))

    except SQLAlchemyError as e:
        db.rollback()
        logging.error(f"Datastore error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Datastore unavailable")

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")
