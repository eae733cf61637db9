# tests/test_event_handler.py

import asyncio
import json
from decimal import Decimal

import pytest

from services.reconciler.app.reconciliation.event_handler import (
    WebhookEventHandler, parse_transaction_event
)
from services.reconciler.app.reconciliation.invoice_locator import InvoiceLocator
from services.reconciler.app.reconciliation.payment_recorder import PaymentRecorder
from shared.exceptions import ValidationError
from shared.models import EventOutcome
from .fakes import INVOICES_PATH, PAYMENTS_PATH, invoice_summary


def webhook_payload(transaction_id="T-100", amount=50, mode=None):
    item = {"Transaction ID": transaction_id, "Balance Payment": amount}
    if mode is not None:
        item["Balance Payment Mode"] = mode
    return {"items": [item]}


@pytest.fixture
def handler(zoho_client):
    return WebhookEventHandler(
        locator=InvoiceLocator(zoho_client),
        recorder=PaymentRecorder(zoho_client),
        default_payment_mode="Cash"
    )


class TestParseTransactionEvent:

    def test_reads_first_item_only(self):
        payload = {"items": [
            {"Transaction ID": "T-1", "Balance Payment": "12.50", "Balance Payment Mode": "UPI"},
            {"Transaction ID": "T-2", "Balance Payment": "99"}
        ]}

        event = parse_transaction_event(payload)

        assert event.transaction_id == "T-1"
        assert event.balance_payment == Decimal("12.50")
        assert event.balance_payment_mode == "UPI"

    def test_defaults_payment_mode(self):
        event = parse_transaction_event(webhook_payload(), default_payment_mode="Cash")

        assert event.balance_payment_mode == "Cash"

    @pytest.mark.parametrize("amount", [None, "", "n/a", "NaN", True, "USD 50", "Infinity", "."])
    def test_unparseable_amount_is_zero(self, amount):
        event = parse_transaction_event(webhook_payload(amount=amount))

        assert event.balance_payment == Decimal("0")

    @pytest.mark.parametrize("amount, expected", [
        ("50 USD", Decimal("50")),
        ("50.00KES", Decimal("50.00")),
        ("  12.5abc", Decimal("12.5")),
        ("-3", Decimal("-3")),
        ("1e2", Decimal("1e2")),
        (".75", Decimal(".75")),
        (49.5, Decimal("49.5")),
    ])
    def test_amount_uses_leading_number(self, amount, expected):
        event = parse_transaction_event(webhook_payload(amount=amount))

        assert event.balance_payment == expected

    def test_numeric_transaction_id_is_stringified(self):
        event = parse_transaction_event(webhook_payload(transaction_id=4521))

        assert event.transaction_id == "4521"

    def test_integral_float_transaction_id_drops_fraction(self):
        event = parse_transaction_event(webhook_payload(transaction_id=4521.0))

        assert event.transaction_id == "4521"

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {},
        {"items": []},
        {"items": "T-100"},
        {"items": ["T-100"]},
        {"items": [{"Balance Payment": 50}]},
    ])
    def test_malformed_payload_raises(self, payload):
        with pytest.raises(ValidationError):
            parse_transaction_event(payload)


class TestWebhookEventHandler:
    """Event state machine: no match, skip, success and failure"""

    @pytest.mark.asyncio
    async def test_no_matching_invoice(self, handler, fake_zoho):
        fake_zoho.invoice_search(invoice_summary("INV-9", "T-1000"))

        result = await handler.handle(webhook_payload())

        assert result.outcome == EventOutcome.NO_MATCH
        assert result.status_code == 200
        assert result.to_response_body() == {"message": "No existing invoice found. Processing stopped."}
        assert fake_zoho.calls("POST", PAYMENTS_PATH) == []

    @pytest.mark.asyncio
    async def test_lookup_error_stops_like_no_match(self, handler, fake_zoho):
        fake_zoho.add("GET", INVOICES_PATH, (503, {"code": 1, "message": "Service unavailable"}))

        result = await handler.handle(webhook_payload())

        assert result.outcome == EventOutcome.NO_MATCH
        assert result.status_code == 200
        assert fake_zoho.calls("POST", PAYMENTS_PATH) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, "0", -5, "abc"])
    async def test_non_positive_balance_payment_is_skipped(self, handler, fake_zoho, amount):
        fake_zoho.invoice_search(invoice_summary("INV-1", "T-100"))

        result = await handler.handle(webhook_payload(amount=amount))

        assert result.outcome == EventOutcome.SKIPPED
        assert result.status_code == 200
        assert result.to_response_body() == {"message": "Payment processed successfully"}
        assert fake_zoho.calls("GET", f"{INVOICES_PATH}/INV-1") == []
        assert fake_zoho.calls("POST", PAYMENTS_PATH) == []

    @pytest.mark.asyncio
    async def test_matched_invoice_gets_payment(self, handler, fake_zoho):
        fake_zoho.invoice_search(invoice_summary("INV-1", "T-100", balance=80))
        fake_zoho.invoice_detail("INV-1", balance=80)
        fake_zoho.payment_created("PAY-1")

        result = await handler.handle(webhook_payload(amount=50))

        assert result.outcome == EventOutcome.SUCCEEDED
        assert result.status_code == 200
        assert result.payment.payment_id == "PAY-1"
        (request,) = fake_zoho.calls("POST", PAYMENTS_PATH)
        body = json.loads(request.content)
        assert body["reference_number"] == "T-100"
        assert body["payment_mode"] == "Cash"
        assert body["invoices"] == [{"invoice_id": "INV-1", "amount_applied": 50}]

    @pytest.mark.asyncio
    async def test_currency_suffixed_amount_is_paid(self, handler, fake_zoho):
        fake_zoho.invoice_search(invoice_summary("INV-1", "T-100", balance=80))
        fake_zoho.invoice_detail("INV-1", balance=80)
        fake_zoho.payment_created()

        result = await handler.handle(webhook_payload(amount="50 USD"))

        assert result.outcome == EventOutcome.SUCCEEDED
        (request,) = fake_zoho.calls("POST", PAYMENTS_PATH)
        assert json.loads(request.content)["amount"] == 50

    @pytest.mark.asyncio
    async def test_overpayment_is_clamped(self, handler, fake_zoho):
        fake_zoho.invoice_search(invoice_summary("INV-1", "T-100", balance=30))
        fake_zoho.invoice_detail("INV-1", balance=30)
        fake_zoho.payment_created()

        result = await handler.handle(webhook_payload(amount=50))

        assert result.outcome == EventOutcome.SUCCEEDED
        (request,) = fake_zoho.calls("POST", PAYMENTS_PATH)
        assert json.loads(request.content)["invoices"][0]["amount_applied"] == 30

    @pytest.mark.asyncio
    async def test_zero_invoice_balance_still_succeeds(self, handler, fake_zoho):
        fake_zoho.invoice_search(invoice_summary("INV-1", "T-100"))
        fake_zoho.invoice_detail("INV-1", balance=0)

        result = await handler.handle(webhook_payload(amount=50))

        assert result.outcome == EventOutcome.SUCCEEDED
        assert result.payment is None
        assert fake_zoho.calls("POST", PAYMENTS_PATH) == []

    @pytest.mark.asyncio
    async def test_payment_failure_is_a_500(self, handler, fake_zoho):
        fake_zoho.invoice_search(invoice_summary("INV-1", "T-100"))
        fake_zoho.invoice_detail("INV-1", balance=80)
        fake_zoho.add("POST", PAYMENTS_PATH, (400, {"code": 4, "message": "Invalid value passed for customer_id"}))

        result = await handler.handle(webhook_payload())

        assert result.outcome == EventOutcome.FAILED
        assert result.status_code == 500
        body = result.to_response_body()
        assert body["message"] == "Error processing webhook"
        assert body["error"].startswith("Failed to create payment")

    @pytest.mark.asyncio
    async def test_missing_items_is_a_500(self, handler, fake_zoho):
        result = await handler.handle({"rows": []})

        assert result.outcome == EventOutcome.FAILED
        assert result.status_code == 500
        assert "items" in result.error
        assert fake_zoho.requests == []

    @pytest.mark.asyncio
    async def test_same_transaction_events_are_serialized(self, handler, fake_zoho):
        fake_zoho.invoice_search(invoice_summary("INV-1", "T-100"))
        fake_zoho.add("GET", f"{INVOICES_PATH}/INV-1",
                      (200, {"invoice": {"customer_id": "CUST-1", "balance": 80}}),
                      (200, {"invoice": {"customer_id": "CUST-1", "balance": 30}}))
        fake_zoho.payment_created()

        results = await asyncio.gather(
            handler.handle(webhook_payload(amount=50)),
            handler.handle(webhook_payload(amount=50))
        )

        assert [r.outcome for r in results] == [EventOutcome.SUCCEEDED] * 2
        applied = [json.loads(r.content)["amount"] for r in fake_zoho.calls("POST", PAYMENTS_PATH)]
        assert applied == [50, 30]
        assert handler._transaction_locks == {}
