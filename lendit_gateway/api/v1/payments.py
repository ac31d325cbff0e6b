"""POST /v1/payments/razorpay/verify - payment captured callback"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from lendit_gateway.api.dependencies import get_loan_service, get_razorpay_client, get_request_id
from lendit_gateway.api.errors import unit_of_work
from lendit_gateway.api.v1.schemas import CaptureRequest, PaymentResponse
from lendit_gateway.infrastructure.clients.razorpay import RazorpayClient
from lendit_gateway.infrastructure.database.session import get_db
from lendit_gateway.services.loans import LoanService
from lendit_gateway.services.payments import capture_razorpay_payment

router = APIRouter()


@router.post("/payments/razorpay/verify", response_model=PaymentResponse)
async def verify_razorpay_payment(
    body: CaptureRequest,
    request: Request,
    db: Session = Depends(get_db),
    loans: LoanService = Depends(get_loan_service),
    client: RazorpayClient = Depends(get_razorpay_client),
):
    """
    Verify a card/UPI gateway payment and record it as a repayment.

    Flow:
    1. Check the HMAC signature over order_id|payment_id
    2. Fetch the payment from the processor and require status=captured
    3. Record the repayment (may complete the loan and update trust scores)
    4. Commit everything or nothing
    """
    with unit_of_work(db, get_request_id(request)):
        outcome = await capture_razorpay_payment(
            loans,
            client,
            agreement_id=body.agreement_id,
            order_id=body.razorpay_order_id,
            payment_id=body.razorpay_payment_id,
            signature=body.razorpay_signature,
        )

    return PaymentResponse(
        agreement_id=body.agreement_id,
        amount=outcome.amount,
        amount_repaid=outcome.amount_repaid,
        total_due=outcome.total_due,
        completed=outcome.completed,
        on_time=outcome.on_time,
        status="completed" if outcome.completed else "active",
    )
