"""Payment capture and payment instruction helpers around the loan lifecycle"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from lendit_gateway.config import Settings, settings as default_settings
from lendit_gateway.domain import lifecycle
from lendit_gateway.domain.exceptions import InvalidStateError, PaymentVerificationError, ValidationError
from lendit_gateway.domain.lifecycle import PaymentOutcome
from lendit_gateway.domain.models import LoanAgreement, LoanStatus, PaymentMethod
from lendit_gateway.domain.payments import (
    BankAccount,
    TransferInstructions,
    UpiPaymentRequest,
    generate_app_specific_links,
    generate_upi_deep_link,
    supported_transfer_methods,
    transfer_instructions,
)
from lendit_gateway.infrastructure.clients.razorpay import RazorpayClient
from lendit_gateway.infrastructure.observability.metrics import payment_capture_failures_counter
from lendit_gateway.services.loans import LoanService
from lendit_gateway.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class PaymentInstructions:
    agreement_id: str
    amount: Decimal
    reference: str
    upi_link: str
    upi_app_links: Dict[str, str]
    supported_transfer_methods: list
    bank_transfer: TransferInstructions


async def capture_razorpay_payment(
    loans: LoanService,
    client: RazorpayClient,
    agreement_id: str,
    order_id: str,
    payment_id: str,
    signature: str,
) -> PaymentOutcome:
    """
    Handle the processor's "payment captured" callback.

    The processor is the source of truth: the signature must verify and the
    fetched payment must be captured before the repayment is recorded. The
    payment id doubles as the transaction reference, so a replayed callback
    is rejected instead of double-counting.
    """
    try:
        client.verify_signature(order_id, payment_id, signature)
        payment = await client.fetch_payment(payment_id)
        if payment.status != "captured":
            raise PaymentVerificationError(f"Payment {payment_id} is not captured (status={payment.status})")
    except PaymentVerificationError:
        payment_capture_failures_counter.inc()
        raise

    logger.info(
        "Payment captured",
        extra={"agreement_id": agreement_id, "payment_id": payment_id, "amount": str(payment.amount)},
    )
    return loans.record_payment(
        agreement_id,
        payment.amount,
        payment_method=PaymentMethod.RAZORPAY,
        payment_reference=payment_id,
    )


def build_payment_instructions(
    agreement: LoanAgreement,
    amount: Optional[Decimal] = None,
    config: Optional[Settings] = None,
    transfer_method: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PaymentInstructions:
    """UPI links and bank transfer steps for the next repayment on an active loan"""
    config = config or default_settings
    if agreement.status != LoanStatus.ACTIVE:
        raise InvalidStateError("Payment instructions are only available for active loans")

    amount = lifecycle.to_money(amount) if amount is not None else lifecycle.outstanding_balance(agreement)
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than zero")

    now = now or utcnow()
    reference = f"LOAN_{agreement.id.split('-')[0].upper()}_{now:%Y%m%d%H%M%S}"
    upi_request = UpiPaymentRequest(
        payee_vpa=config.upi_vpa,
        payee_name=config.upi_merchant_name,
        amount=amount,
        transaction_note=f"Loan payment for agreement {agreement.id}",
        transaction_ref=reference,
    )
    recipient = BankAccount(
        account_number=config.platform_account_number,
        ifsc_code=config.platform_ifsc_code,
        account_holder_name=config.platform_account_holder,
        bank_name=config.platform_bank_name,
    )

    return PaymentInstructions(
        agreement_id=agreement.id,
        amount=amount,
        reference=reference,
        upi_link=generate_upi_deep_link(upi_request),
        upi_app_links=generate_app_specific_links(upi_request),
        supported_transfer_methods=supported_transfer_methods(amount),
        bank_transfer=transfer_instructions(
            amount, recipient, reference, agreement.purpose or "Repayment", transfer_method=transfer_method
        ),
    )
