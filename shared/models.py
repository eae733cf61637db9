# shared/models.py
"""
Core Pydantic models for the payment reconciler
These models define the data structures exchanged with the webhook source
and Zoho Books
"""

import re
from typing import Any, Dict, List, Optional
from decimal import Decimal, InvalidOperation
from enum import Enum
from pydantic import BaseModel, Field, validator

# Webhook item keys as sent by the automation tool
TRANSACTION_ID_KEY = "Transaction ID"
BALANCE_PAYMENT_KEY = "Balance Payment"
BALANCE_PAYMENT_MODE_KEY = "Balance Payment Mode"


# Leading numeric prefix of a string amount, e.g. "50.00 KES" -> "50.00"
_AMOUNT_PREFIX = re.compile(r'\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)')


def parse_amount(value: Any) -> Decimal:
    """Parse a loosely typed monetary value, falling back to zero"""
    if value is None or isinstance(value, bool):
        return Decimal('0')
    if isinstance(value, (int, float, Decimal)):
        text = str(value)
    else:
        match = _AMOUNT_PREFIX.match(str(value))
        if not match:
            return Decimal('0')
        text = match.group(1)
    try:
        amount = Decimal(text)
    except (InvalidOperation, ValueError):
        return Decimal('0')
    if not amount.is_finite():
        return Decimal('0')
    return amount


class LookupStatus(str, Enum):
    """Outcome of an invoice lookup"""
    FOUND = "found"
    NOT_FOUND = "not_found"
    LOOKUP_ERROR = "lookup_error"


class EventOutcome(str, Enum):
    """Terminal state of one webhook event"""
    NO_MATCH = "no_match"
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TransactionEvent(BaseModel):
    """
    Transaction completion event
    Derived from the first item of an inbound webhook batch
    """
    transaction_id: str = Field(..., min_length=1, description="Correlates to the invoice reference number")
    balance_payment: Decimal = Field(Decimal('0'), description="Amount the customer paid")
    balance_payment_mode: str = Field(..., description="Zoho payment mode, e.g. Cash")

    @validator('transaction_id', pre=True)
    def stringify_transaction_id(cls, v):
        """Numeric IDs from spreadsheets are accepted as strings"""
        if isinstance(v, float) and v.is_integer():
            return str(int(v))
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @validator('balance_payment', pre=True)
    def parse_balance_payment(cls, v):
        return parse_amount(v)


class Invoice(BaseModel):
    """
    Invoice data from Zoho Books
    Fetched fresh for every event, never cached
    """
    invoice_id: str = Field(..., description="Zoho invoice ID")
    reference_number: Optional[str] = Field(None, description="External transaction reference")
    customer_id: Optional[str] = Field(None, description="Zoho customer ID")
    balance: Decimal = Field(Decimal('0'), description="Remaining unpaid amount")

    @validator('balance', pre=True)
    def parse_balance(cls, v):
        return parse_amount(v)


class AppliedInvoice(BaseModel):
    """Portion of a payment applied to one invoice"""
    invoice_id: str
    amount_applied: Decimal


class Payment(BaseModel):
    """
    Customer payment recorded in Zoho Books
    The accounting service is the sole system of record
    """
    payment_id: Optional[str] = Field(None, description="Zoho payment ID once created")
    customer_id: str
    payment_mode: str
    amount: Decimal = Field(..., gt=0)
    date: str = Field(..., description="Payment date in the service's date format")
    reference_number: str
    invoices: List[AppliedInvoice] = Field(default_factory=list)

    def to_zoho_payload(self) -> Dict[str, Any]:
        """Build the customerpayments request body"""
        return {
            "customer_id": self.customer_id,
            "payment_mode": self.payment_mode,
            "amount": float(self.amount),
            "date": self.date,
            "reference_number": self.reference_number,
            "invoices": [
                {
                    "invoice_id": applied.invoice_id,
                    "amount_applied": float(applied.amount_applied)
                }
                for applied in self.invoices
            ]
        }


class WebhookResponse(BaseModel):
    """Body returned to the automation tool"""
    message: str
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """
    Standard health check response model
    """
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: str = Field(..., description="ISO-8601 timestamp")
    response_time_ms: int = Field(..., ge=0)
    checks: Optional[Dict[str, Any]] = Field(None, description="Additional health details")

    class Config:
        use_enum_values = True
