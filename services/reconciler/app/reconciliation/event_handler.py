# services/reconciler/app/reconciliation/event_handler.py
"""
Webhook event handling
Turns one inbound transaction event into zero or one Zoho Books payment
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from .invoice_locator import InvoiceLocator
from .payment_recorder import PaymentRecorder
from shared.models import (
    EventOutcome, Payment, TransactionEvent,
    TRANSACTION_ID_KEY, BALANCE_PAYMENT_KEY, BALANCE_PAYMENT_MODE_KEY
)
from shared.exceptions import ValidationError
from shared.logging_config import get_logger
from shared.metrics import WEBHOOK_EVENTS

logger = get_logger(__name__)

SUCCESS_MESSAGE = "Payment processed successfully"
NO_MATCH_MESSAGE = "No existing invoice found. Processing stopped."
FAILURE_MESSAGE = "Error processing webhook"


@dataclass
class WebhookResult:
    """Terminal outcome of one webhook delivery"""
    outcome: EventOutcome
    status_code: int
    message: str
    error: Optional[str] = None
    payment: Optional[Payment] = None

    def to_response_body(self) -> Dict[str, Any]:
        body = {'message': self.message}
        if self.error is not None:
            body['error'] = self.error
        return body


def parse_transaction_event(payload: Any, default_payment_mode: str = "Cash") -> TransactionEvent:
    """
    Extract the transaction event from the first item of a webhook batch

    Raises:
        ValidationError: The payload has no usable first item
    """
    items = payload.get('items') if isinstance(payload, dict) else None
    if not isinstance(items, list) or not items:
        raise ValidationError("Webhook payload must contain a non-empty 'items' list", field='items')

    item = items[0]
    if not isinstance(item, dict):
        raise ValidationError("Webhook item must be an object", field='items[0]')

    transaction_id = item.get(TRANSACTION_ID_KEY)
    if transaction_id is None or transaction_id == "":
        raise ValidationError(f"Webhook item is missing '{TRANSACTION_ID_KEY}'", field=TRANSACTION_ID_KEY)

    try:
        return TransactionEvent(
            transaction_id=transaction_id,
            balance_payment=item.get(BALANCE_PAYMENT_KEY),
            balance_payment_mode=item.get(BALANCE_PAYMENT_MODE_KEY) or default_payment_mode
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid webhook item: {e.errors()[0]['msg']}", field='items[0]') from e


class WebhookEventHandler:
    """
    Orchestrates invoice lookup and payment recording for webhook events

    Each delivery is handled once and independently. Deliveries for the same
    transaction ID are serialized within this process.
    """

    def __init__(
        self,
        locator: InvoiceLocator,
        recorder: PaymentRecorder,
        default_payment_mode: str = "Cash"
    ):
        self.locator = locator
        self.recorder = recorder
        self.default_payment_mode = default_payment_mode
        self._transaction_locks: Dict[str, asyncio.Lock] = {}
        self._lock_holders: Dict[str, int] = {}

    async def handle(self, payload: Any) -> WebhookResult:
        """Process one webhook payload and produce the HTTP outcome"""
        start_time = time.time()

        try:
            event = parse_transaction_event(payload, self.default_payment_mode)
            async with self._transaction_lock(event.transaction_id):
                result = await self._process(event)

        except Exception as e:
            logger.error(f"Error processing webhook: {e}", exc_info=True)
            result = WebhookResult(
                outcome=EventOutcome.FAILED,
                status_code=500,
                message=FAILURE_MESSAGE,
                error=str(e)
            )

        WEBHOOK_EVENTS.labels(outcome=result.outcome.value).inc()
        logger.info(f"Webhook handled: {result.outcome.value}", extra={
            'processing_time_ms': int((time.time() - start_time) * 1000)
        })
        return result

    async def _process(self, event: TransactionEvent) -> WebhookResult:
        logger.info(f"Locating invoice for transaction {event.transaction_id}")
        lookup = await self.locator.find_invoice(event.transaction_id)

        if not lookup.found:
            logger.info("No existing invoice found. Stopping processing.", extra={
                'lookup_status': lookup.status.value
            })
            return WebhookResult(outcome=EventOutcome.NO_MATCH, status_code=200, message=NO_MATCH_MESSAGE)

        if event.balance_payment <= 0:
            logger.info("Balance Payment is zero. Skipping payment creation.")
            return WebhookResult(outcome=EventOutcome.SKIPPED, status_code=200, message=SUCCESS_MESSAGE)

        payment = await self.recorder.create_payment(
            lookup.invoice.invoice_id,
            event.balance_payment,
            event.transaction_id,
            event.balance_payment_mode
        )
        return WebhookResult(
            outcome=EventOutcome.SUCCEEDED,
            status_code=200,
            message=SUCCESS_MESSAGE,
            payment=payment
        )

    @asynccontextmanager
    async def _transaction_lock(self, transaction_id: str):
        lock = self._transaction_locks.setdefault(transaction_id, asyncio.Lock())
        self._lock_holders[transaction_id] = self._lock_holders.get(transaction_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[transaction_id] -= 1
            if not self._lock_holders[transaction_id]:
                del self._lock_holders[transaction_id]
                del self._transaction_locks[transaction_id]
