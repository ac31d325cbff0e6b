"""UPI deep links and bank transfer instructions for Indian payment rails"""

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional
from urllib.parse import urlencode

from lendit_gateway.domain.exceptions import ValidationError

UPI_ID_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+@[a-zA-Z0-9.-]+$")
IFSC_PATTERN = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")
ACCOUNT_NUMBER_PATTERN = re.compile(r"^[0-9]{9,18}$")

RTGS_MINIMUM = Decimal("200000")  # 2 lakh

UPI_APP_SCHEMES = {
    "googlepay": "tez://upi/pay",
    "phonepe": "phonepe://pay",
    "paytm": "paytmmp://pay",
    "bhim": "bhim://pay",
    "amazonpay": "amazonpay://pay",
    "standard": "upi://pay",
}

TRANSFER_TIMES = {
    "neft": "2-4 hours",
    "rtgs": "30 minutes - 2 hours",
    "imps": "5-10 minutes",
}

BANK_CODES = {
    "HDFC": "HDFC Bank",
    "ICIC": "ICICI Bank",
    "SBIN": "State Bank of India",
    "UTIB": "Axis Bank",
    "KKBK": "Kotak Mahindra Bank",
    "YESB": "Yes Bank",
    "IDIB": "Indian Bank",
    "PUNB": "Punjab National Bank",
    "BARB": "Bank of Baroda",
    "CNRB": "Canara Bank",
    "IOBA": "Indian Overseas Bank",
    "UBIN": "Union Bank of India",
    "MAHB": "Bank of Maharashtra",
    "CBIN": "Central Bank of India",
    "PSIB": "Punjab & Sind Bank",
    "UCBA": "UCO Bank",
}


@dataclass
class UpiPaymentRequest:
    payee_vpa: str
    payee_name: str
    amount: Decimal
    transaction_note: str = ""
    transaction_ref: str = ""
    merchant_code: str = ""
    currency: str = "INR"


@dataclass
class BankAccount:
    account_number: str
    ifsc_code: str
    account_holder_name: str
    bank_name: Optional[str] = None


@dataclass
class TransferInstructions:
    instructions: List[str]
    reference: str
    transfer_method: str
    estimated_time: str


def _upi_params(request: UpiPaymentRequest) -> Dict[str, str]:
    params = {
        "pa": request.payee_vpa,
        "pn": request.payee_name,
        "am": f"{request.amount:.2f}",
        "cu": request.currency,
    }
    if request.transaction_note:
        params["tn"] = request.transaction_note
    if request.transaction_ref:
        params["tr"] = request.transaction_ref
    if request.merchant_code:
        params["mc"] = request.merchant_code
    return params


def generate_upi_deep_link(request: UpiPaymentRequest) -> str:
    """Standard NPCI upi://pay link understood by every UPI app"""
    return f"upi://pay?{urlencode(_upi_params(request))}"


def generate_app_specific_links(request: UpiPaymentRequest) -> Dict[str, str]:
    query = urlencode(_upi_params(request))
    return {app: f"{scheme}?{query}" for app, scheme in UPI_APP_SCHEMES.items()}


def validate_upi_id(upi_id: str) -> bool:
    """UPI ID format: username@bankcode"""
    return bool(upi_id) and UPI_ID_PATTERN.match(upi_id) is not None


def validate_ifsc_code(ifsc: str) -> bool:
    """IFSC format: 4 letters, a zero, then 6 alphanumerics"""
    return bool(ifsc) and IFSC_PATTERN.match(ifsc.upper()) is not None


def validate_account_number(account_number: str) -> bool:
    return bool(account_number) and ACCOUNT_NUMBER_PATTERN.match(account_number) is not None


def validate_bank_account(account: BankAccount) -> bool:
    return (
        validate_account_number(account.account_number)
        and validate_ifsc_code(account.ifsc_code)
        and len(account.account_holder_name or "") >= 2
    )


def bank_name_from_ifsc(ifsc: str) -> str:
    return BANK_CODES.get(ifsc[:4].upper(), "Unknown Bank")


def supported_transfer_methods(amount: Decimal) -> List[str]:
    """RTGS is only offered from 2 lakh upward"""
    methods = ["neft", "imps"]
    if amount >= RTGS_MINIMUM:
        methods.append("rtgs")
    return methods


def suggest_transfer_mode(amount: Decimal, urgent: bool = False) -> str:
    if amount >= RTGS_MINIMUM:
        return "rtgs"
    if urgent:
        return "imps"
    return "neft"


def format_inr(amount: Decimal) -> str:
    """Indian digit grouping: 1234567.5 -> 12,34,567.50"""
    sign = "-" if amount < 0 else ""
    whole, fraction = f"{abs(amount):.2f}".split(".")
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])
    return f"{sign}₹{whole}.{fraction}"


def transfer_instructions(
    amount: Decimal,
    recipient: BankAccount,
    reference: str,
    purpose: str,
    transfer_method: Optional[str] = None,
) -> TransferInstructions:
    """Human-readable bank transfer steps for paying into the recipient account"""
    method = (transfer_method or suggest_transfer_mode(amount)).lower()
    if method not in TRANSFER_TIMES:
        raise ValidationError(f"Unsupported transfer method: {method}")
    estimated_time = TRANSFER_TIMES[method]
    bank_name = recipient.bank_name or bank_name_from_ifsc(recipient.ifsc_code)

    lines = [
        f"Transfer Amount: {format_inr(amount)}",
        f"Recipient Bank: {bank_name}",
        f"Account Number: {recipient.account_number}",
        f"IFSC Code: {recipient.ifsc_code}",
        f"Account Holder: {recipient.account_holder_name}",
        f"Transfer Method: {method.upper()}",
        f"Purpose: Loan Payment - {purpose}",
        f"Reference: {reference}",
        f"Estimated Time: {estimated_time}",
    ]
    return TransferInstructions(
        instructions=lines,
        reference=reference,
        transfer_method=method,
        estimated_time=estimated_time,
    )
