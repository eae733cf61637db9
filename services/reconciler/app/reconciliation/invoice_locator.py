# services/reconciler/app/reconciliation/invoice_locator.py

from typing import Optional
from dataclasses import dataclass

from ..connectors.zoho_books import ZohoBooksClient
from shared.models import Invoice, LookupStatus
from shared.logging_config import get_logger

logger = get_logger(__name__)

@dataclass
class InvoiceLookup:
    """Result of searching Zoho Books for a transaction's invoice"""
    status: LookupStatus
    invoice: Optional[Invoice] = None
    error: Optional[Exception] = None

    @property
    def found(self) -> bool:
        return self.status == LookupStatus.FOUND

class InvoiceLocator:
    """Finds the invoice whose reference number equals a transaction ID"""

    def __init__(self, client: ZohoBooksClient):
        self.client = client

    async def find_invoice(self, transaction_id: str) -> InvoiceLookup:
        """
        Look up the invoice for a transaction

        The remote reference_number filter is not guaranteed to be exact, so
        results are filtered again here. The first exact match in the order
        returned by Zoho wins. Lookup failures are reported as LOOKUP_ERROR
        rather than raised.
        """
        try:
            data = await self.client.get('/invoices', params={'reference_number': transaction_id})
            matches = [
                invoice for invoice in data.get('invoices', [])
                if invoice.get('reference_number') == transaction_id
            ]
            if not matches:
                logger.info(f"No invoice with reference number {transaction_id}", extra={
                    'transaction_id': transaction_id,
                    'candidates': len(data.get('invoices', []))
                })
                return InvoiceLookup(status=LookupStatus.NOT_FOUND)

            invoice = Invoice(**matches[0])

        except Exception as e:
            logger.error(f"Error finding invoice: {e}", extra={'transaction_id': transaction_id})
            return InvoiceLookup(status=LookupStatus.LOOKUP_ERROR, error=e)

        if len(matches) > 1:
            logger.warning(f"{len(matches)} invoices match reference number {transaction_id}; using {invoice.invoice_id}")

        logger.info(f"Found invoice {invoice.invoice_id} for transaction {transaction_id}", extra={
            'invoice_id': invoice.invoice_id,
            'balance': str(invoice.balance)
        })
        return InvoiceLookup(status=LookupStatus.FOUND, invoice=invoice)
