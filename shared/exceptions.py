# shared/exceptions.py
"""
Custom exceptions for the payment reconciler
Centralized error handling across the webhook and Zoho Books layers
"""

from typing import Any, Optional


class ReconcilerException(Exception):
    """Base exception for all reconciler errors"""
    def __init__(self, message: str, error_code: str = None, details: dict = None):
        self.message = message
        self.error_code = error_code or "RECONCILER_ERROR"
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(ReconcilerException):
    """Inbound payload validation errors"""
    def __init__(self, message: str, field: str = None, value=None):
        details = {"field": field, "value": value} if field else {}
        super().__init__(message, "VALIDATION_ERROR", details)


class TokenRefreshError(ReconcilerException):
    """Identity provider rejected the refresh token exchange"""
    def __init__(self, message: str, status_code: int = None):
        details = {"status_code": status_code} if status_code else {}
        super().__init__(message, "TOKEN_REFRESH_ERROR", details)


class ZohoRequestError(ReconcilerException):
    """Authenticated Zoho Books call failed after the permitted retry"""
    def __init__(self, message: str, status_code: int = None, response_data: Optional[Any] = None):
        self.status_code = status_code
        self.response_data = response_data
        details = {"status_code": status_code, "response": response_data}
        super().__init__(message, "ZOHO_REQUEST_ERROR", details)


class PaymentCreationError(ReconcilerException):
    """Invoice fetch or payment submission failed"""
    def __init__(self, message: str, invoice_id: str = None, transaction_id: str = None):
        details = {"invoice_id": invoice_id, "transaction_id": transaction_id}
        super().__init__(message, "PAYMENT_CREATION_ERROR", details)
