# services/reconciler/app/reconciliation/payment_recorder.py

from typing import Optional
from decimal import Decimal
from datetime import datetime, timezone

from ..connectors.zoho_books import ZohoBooksClient
from shared.models import AppliedInvoice, Invoice, Payment
from shared.exceptions import PaymentCreationError
from shared.logging_config import get_logger
from shared.metrics import PAYMENTS_CREATED

logger = get_logger(__name__)

class PaymentRecorder:
    """Records a customer payment against a single Zoho Books invoice"""

    def __init__(
        self,
        client: ZohoBooksClient,
        payment_date_format: str = "%Y-%m-%d",
        dedupe_check: bool = False
    ):
        self.client = client
        self.payment_date_format = payment_date_format
        self.dedupe_check = dedupe_check

    async def create_payment(
        self,
        invoice_id: str,
        requested_amount: Decimal,
        transaction_id: str,
        payment_mode: str
    ) -> Optional[Payment]:
        """
        Apply a payment to an invoice, clamped to its current balance

        Args:
            invoice_id: Zoho invoice to pay
            requested_amount: Amount reported by the webhook
            transaction_id: Stored as the payment reference number
            payment_mode: Zoho payment mode

        Returns:
            The created payment, or None when there is nothing to pay

        Raises:
            PaymentCreationError: Fetching the invoice or submitting the payment failed
        """
        try:
            return await self._apply_payment(invoice_id, requested_amount, transaction_id, payment_mode)
        except PaymentCreationError:
            raise
        except Exception as e:
            logger.error(f"Error creating payment: {e}", extra={
                'invoice_id': invoice_id,
                'transaction_id': transaction_id
            })
            raise PaymentCreationError(
                f"Failed to create payment: {e}",
                invoice_id=invoice_id,
                transaction_id=transaction_id
            ) from e

    async def _apply_payment(
        self,
        invoice_id: str,
        requested_amount: Decimal,
        transaction_id: str,
        payment_mode: str
    ) -> Optional[Payment]:
        # Balance must be read before it is clamped against
        invoice = await self.fetch_invoice(invoice_id)
        payment_amount = min(requested_amount, invoice.balance)

        logger.info(f"Invoice {invoice_id} balance {invoice.balance}, requested {requested_amount}", extra={
            'customer_id': invoice.customer_id,
            'payment_amount': str(payment_amount)
        })

        if payment_amount <= 0:
            logger.info("Invoice balance is zero or negative. Skipping payment creation.")
            return None

        if self.dedupe_check and await self._has_existing_payment(transaction_id, invoice.customer_id):
            logger.warning(f"Payment with reference {transaction_id} already exists. Skipping payment creation.")
            return None

        payment = Payment(
            customer_id=invoice.customer_id,
            payment_mode=payment_mode,
            amount=payment_amount,
            date=self.today(),
            reference_number=transaction_id,
            invoices=[AppliedInvoice(invoice_id=invoice_id, amount_applied=payment_amount)]
        )

        data = await self.client.post('/customerpayments', json=payment.to_zoho_payload())
        payment.payment_id = (data.get('payment') or {}).get('payment_id')

        PAYMENTS_CREATED.labels(payment_mode=payment_mode).inc()
        logger.info("Payment created and applied successfully", extra={
            'payment_id': payment.payment_id,
            'invoice_id': invoice_id,
            'amount': str(payment_amount)
        })
        return payment

    async def fetch_invoice(self, invoice_id: str) -> Invoice:
        """Fetch authoritative customer and balance for an invoice"""
        data = await self.client.get(f'/invoices/{invoice_id}')
        return Invoice(**{'invoice_id': invoice_id, **data['invoice']})

    def today(self) -> str:
        return datetime.now(timezone.utc).strftime(self.payment_date_format)

    async def _has_existing_payment(self, transaction_id: str, customer_id: Optional[str]) -> bool:
        data = await self.client.get('/customerpayments', params={'reference_number': transaction_id})
        return any(
            existing.get('reference_number') == transaction_id
            and existing.get('customer_id') == customer_id
            for existing in data.get('customerpayments', [])
        )
