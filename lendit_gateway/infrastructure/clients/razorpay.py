"""Razorpay HTTP client for verifying captured payments"""

import hashlib
import hmac
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx

from lendit_gateway.config import settings
from lendit_gateway.domain.exceptions import ExternalServiceError, PaymentVerificationError

PAISE_PER_RUPEE = Decimal(100)


@dataclass
class CapturedPayment:
    """Payment as reported by the processor"""

    payment_id: str
    order_id: Optional[str]
    amount: Decimal  # rupees
    status: str
    method: Optional[str]


def compute_signature(order_id: str, payment_id: str, key_secret: str) -> str:
    """HMAC-SHA256 of 'order_id|payment_id' keyed with the API secret, hex-encoded"""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class RazorpayClient:
    """Client for the hosted payment processor's REST API"""

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ):
        self.key_id = key_id if key_id is not None else settings.razorpay_key_id
        self.key_secret = key_secret if key_secret is not None else settings.razorpay_key_secret
        self.base_url = (base_url or settings.razorpay_api_base).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> None:
        """
        Check the checkout callback signature.

        Raises:
            PaymentVerificationError: Secret missing or signature mismatch
        """
        if not self.key_secret:
            raise PaymentVerificationError("Payment processor secret is not configured")
        expected = compute_signature(order_id, payment_id, self.key_secret)
        if not hmac.compare_digest(expected, signature or ""):
            raise PaymentVerificationError("Invalid payment signature")

    async def fetch_payment(self, payment_id: str) -> CapturedPayment:
        """
        Fetch payment details from the processor.

        Raises:
            ExternalServiceError: On timeout, HTTP errors, or invalid response
        """
        async with httpx.AsyncClient(timeout=self.timeout, auth=(self.key_id, self.key_secret)) as client:
            try:
                response = await client.get(f"{self.base_url}/v1/payments/{payment_id}")
                response.raise_for_status()
                data = response.json()

                return CapturedPayment(
                    payment_id=data["id"],
                    order_id=data.get("order_id"),
                    amount=Decimal(data["amount"]) / PAISE_PER_RUPEE,
                    status=data["status"],
                    method=data.get("method"),
                )

            except httpx.TimeoutException as e:
                raise ExternalServiceError(f"Payment processor timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise ExternalServiceError(f"Payment processor error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise ExternalServiceError(f"Payment processor unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise ExternalServiceError(f"Invalid payment data from processor: {e}") from e
