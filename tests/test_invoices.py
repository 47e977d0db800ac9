"""Tests for Stripe invoice creation and invoice payment sheets.

Covers:
- Admin key enforcement on /create-stripe-invoice
- Pre-Stripe validation (not found, no customer, paid, already linked)
- Item mirroring, finalization and local state update
- Rollback of completed Stripe steps when a later step fails
- Ad-hoc single-item invoices
- /invoice-payment-sheet
"""

import json
from unittest.mock import MagicMock, call, patch

import stripe

from paybridge.extensions import db
from paybridge.models.invoice import Invoice
from paybridge.services.invoice_service import StripeInvoiceSaga


def _stub_invoice_calls(mock_stripe, stripe_obj, item_ids=("ii_1", "ii_2")):
    mock_stripe.Invoice.create.return_value = MagicMock(id="in_new")
    mock_stripe.InvoiceItem.create.side_effect = [
        MagicMock(id=item_id) for item_id in item_ids
    ]
    mock_stripe.Invoice.finalize_invoice.return_value = stripe_obj(
        id="in_new", status="open", payment_intent="pi_inv"
    )


class TestAdminKey:

    @patch("paybridge.services.stripe_service.stripe")
    def test_missing_admin_key_returns_403(self, mock_stripe, client, seed_data):
        resp = client.post(
            "/create-stripe-invoice", json={"invoiceId": seed_data["invoice_id"]}
        )
        assert resp.status_code == 403
        assert not mock_stripe.mock_calls

    @patch("paybridge.services.stripe_service.stripe")
    def test_wrong_admin_key_returns_403(self, mock_stripe, client, seed_data):
        resp = client.post(
            "/create-stripe-invoice",
            json={"invoiceId": seed_data["invoice_id"]},
            headers={"X-Admin-Key": "guess"},
        )
        assert resp.status_code == 403
        assert not mock_stripe.mock_calls


class TestCreateStripeInvoiceValidation:

    @patch("paybridge.services.stripe_service.stripe")
    def test_unknown_invoice_returns_404(self, mock_stripe, client, seed_data,
                                         admin_headers):
        resp = client.post(
            "/create-stripe-invoice",
            json={"invoiceId": "missing"},
            headers=admin_headers,
        )
        assert resp.status_code == 404
        assert not mock_stripe.mock_calls

    @patch("paybridge.services.stripe_service.stripe")
    def test_paid_invoice_returns_409(self, mock_stripe, client, seed_data,
                                      admin_headers):
        resp = client.post(
            "/create-stripe-invoice",
            json={"invoiceId": seed_data["paid_invoice_id"]},
            headers=admin_headers,
        )
        assert resp.status_code == 409
        assert not mock_stripe.mock_calls

    @patch("paybridge.services.stripe_service.stripe")
    def test_already_linked_invoice_returns_409(self, mock_stripe, client, seed_data,
                                               admin_headers):
        resp = client.post(
            "/create-stripe-invoice",
            json={"invoiceId": seed_data["linked_invoice_id"]},
            headers=admin_headers,
        )
        assert resp.status_code == 409
        assert b"already has a Stripe invoice" in resp.data
        assert not mock_stripe.mock_calls

    @patch("paybridge.services.stripe_service.stripe")
    def test_invoice_without_customer_returns_400(self, mock_stripe, client, app,
                                                  admin_headers):
        with app.app_context():
            orphan = Invoice(amount_cents=1000, description="No owner")
            db.session.add(orphan)
            db.session.commit()
            orphan_id = orphan.id

        resp = client.post(
            "/create-stripe-invoice",
            json={"invoiceId": orphan_id},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert not mock_stripe.mock_calls

    @patch("paybridge.services.stripe_service.stripe")
    def test_missing_fields_returns_400(self, mock_stripe, client, seed_data,
                                        admin_headers):
        resp = client.post(
            "/create-stripe-invoice",
            json={"customerId": seed_data["joe_id"]},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert b"Missing invoiceId" in resp.data
        assert not mock_stripe.mock_calls


class TestCreateStripeInvoice:

    @patch("paybridge.services.stripe_service.stripe")
    def test_items_mirrored_and_invoice_finalized(self, mock_stripe, client,
                                                  seed_data, app, admin_headers,
                                                  stripe_obj):
        _stub_invoice_calls(mock_stripe, stripe_obj)

        resp = client.post(
            "/create-stripe-invoice",
            json={"invoiceId": seed_data["invoice_id"]},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert json.loads(resp.data) == {
            "ok": True,
            "invoiceId": seed_data["invoice_id"],
            "stripeInvoiceId": "in_new",
            "status": "open",
        }

        invoice_kwargs = mock_stripe.Invoice.create.call_args.kwargs
        assert invoice_kwargs["customer"] == "cus_joe"
        assert invoice_kwargs["collection_method"] == "send_invoice"
        assert invoice_kwargs["days_until_due"] == 7
        assert invoice_kwargs["auto_advance"] is False
        assert invoice_kwargs["metadata"]["invoice_id"] == seed_data["invoice_id"]

        items = [c.kwargs for c in mock_stripe.InvoiceItem.create.call_args_list]
        assert [(i["unit_amount"], i["quantity"]) for i in items] == [
            (5000, 2),
            (2500, 1),
        ]
        assert all(i["invoice"] == "in_new" for i in items)
        mock_stripe.Invoice.finalize_invoice.assert_called_once_with(
            "in_new", api_key="sk_test_fake"
        )
        mock_stripe.Customer.list.assert_not_called()

        with app.app_context():
            invoice = db.session.get(Invoice, seed_data["invoice_id"])
            assert invoice.stripe_invoice_id == "in_new"
            assert invoice.status == "open"
            assert invoice.payment_intent_id == "pi_inv"

    @patch("paybridge.services.stripe_service.stripe")
    def test_failure_rolls_back_created_stripe_objects(self, mock_stripe, client,
                                                       seed_data, app, admin_headers):
        """A failing second item deletes the first item, then the draft."""
        mock_stripe.Invoice.create.return_value = MagicMock(id="in_new")
        mock_stripe.InvoiceItem.create.side_effect = [
            MagicMock(id="ii_1"),
            stripe.InvalidRequestError("boom", None),
        ]

        resp = client.post(
            "/create-stripe-invoice",
            json={"invoiceId": seed_data["invoice_id"]},
            headers=admin_headers,
        )
        assert resp.status_code == 500
        assert json.loads(resp.data)["error"] == "boom"

        mock_stripe.InvoiceItem.delete.assert_called_once_with(
            "ii_1", api_key="sk_test_fake"
        )
        mock_stripe.Invoice.delete.assert_called_once_with(
            "in_new", api_key="sk_test_fake"
        )
        mock_stripe.Invoice.finalize_invoice.assert_not_called()

        with app.app_context():
            invoice = db.session.get(Invoice, seed_data["invoice_id"])
            assert invoice.stripe_invoice_id is None
            assert invoice.status == "unpaid"

    @patch("paybridge.services.stripe_service.stripe")
    def test_charge_automatically_omits_due_days(self, mock_stripe, client,
                                                 seed_data, app, monkeypatch,
                                                 admin_headers, stripe_obj):
        monkeypatch.setitem(
            app.config, "STRIPE_INVOICE_COLLECTION_METHOD", "charge_automatically"
        )
        _stub_invoice_calls(mock_stripe, stripe_obj)

        resp = client.post(
            "/create-stripe-invoice",
            json={"invoiceId": seed_data["invoice_id"]},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        invoice_kwargs = mock_stripe.Invoice.create.call_args.kwargs
        assert invoice_kwargs["collection_method"] == "charge_automatically"
        assert "days_until_due" not in invoice_kwargs

    @patch("paybridge.services.stripe_service.stripe")
    def test_ad_hoc_invoice_stored_then_pushed(self, mock_stripe, client,
                                               seed_data, app, admin_headers,
                                               stripe_obj):
        _stub_invoice_calls(mock_stripe, stripe_obj, item_ids=("ii_1",))

        resp = client.post(
            "/create-stripe-invoice",
            json={
                "customerId": seed_data["joe_id"],
                "amountCents": 3000,
                "description": "Rush fee",
            },
            headers=admin_headers,
        )
        assert resp.status_code == 200
        data = json.loads(resp.data)
        assert data["stripeInvoiceId"] == "in_new"

        item = mock_stripe.InvoiceItem.create.call_args.kwargs
        assert item["unit_amount"] == 3000
        assert item["quantity"] == 1
        assert item["description"] == "Rush fee"

        with app.app_context():
            invoice = db.session.get(Invoice, data["invoiceId"])
            assert invoice.customer_id == seed_data["joe_id"]
            assert invoice.amount_cents == 3000
            assert invoice.status == "open"

    @patch("paybridge.services.stripe_service.stripe")
    def test_ad_hoc_unknown_customer_returns_404(self, mock_stripe, client,
                                                 seed_data, admin_headers):
        resp = client.post(
            "/create-stripe-invoice",
            json={"customerId": "nobody", "amountCents": 3000, "description": "x"},
            headers=admin_headers,
        )
        assert resp.status_code == 404
        assert not mock_stripe.mock_calls


class TestSaga:

    def test_compensate_runs_newest_first_and_survives_undo_errors(self):
        calls = []

        def failing_undo():
            calls.append("item:ii_2")
            raise RuntimeError("already gone")

        saga = StripeInvoiceSaga("inv_1")
        saga.record("invoice:in_1", lambda: calls.append("invoice:in_1"))
        saga.record("item:ii_1", lambda: calls.append("item:ii_1"))
        saga.record("item:ii_2", failing_undo)
        saga.record("finalize")

        undone = saga.compensate()

        assert calls == ["item:ii_2", "item:ii_1", "invoice:in_1"]
        assert undone == ["item:ii_1", "invoice:in_1"]
        assert saga.steps == ["invoice:in_1", "item:ii_1", "item:ii_2", "finalize"]


class TestInvoicePaymentSheet:

    @patch("paybridge.services.stripe_service.stripe")
    def test_missing_ids_returns_400(self, mock_stripe, client):
        resp = client.post("/invoice-payment-sheet", json={})
        assert resp.status_code == 400
        assert not mock_stripe.mock_calls

    @patch("paybridge.services.stripe_service.stripe")
    def test_unlinked_local_invoice_returns_404(self, mock_stripe, client, seed_data):
        resp = client.post(
            "/invoice-payment-sheet", json={"invoiceId": seed_data["invoice_id"]}
        )
        assert resp.status_code == 404
        assert not mock_stripe.mock_calls

    @patch("paybridge.services.stripe_service.stripe")
    def test_invoice_without_intent_returns_400(self, mock_stripe, client,
                                                stripe_obj):
        mock_stripe.Invoice.retrieve.return_value = stripe_obj(
            id="in_draft", customer="cus_joe", payment_intent=None
        )

        resp = client.post(
            "/invoice-payment-sheet", json={"stripeInvoiceId": "in_draft"}
        )
        assert resp.status_code == 400
        assert b"no payment intent" in resp.data
        mock_stripe.PaymentIntent.modify.assert_not_called()

    @patch("paybridge.services.stripe_service.stripe")
    def test_payment_sheet_for_linked_invoice(self, mock_stripe, client,
                                              seed_data, app, stripe_obj):
        mock_stripe.Invoice.retrieve.return_value = stripe_obj(
            id="in_linked", customer="cus_joe", payment_intent="pi_linked"
        )
        mock_stripe.PaymentIntent.modify.return_value = MagicMock(
            client_secret="pi_linked_secret"
        )
        mock_stripe.EphemeralKey.create.return_value = MagicMock(secret="ek_inv")

        resp = client.post(
            "/invoice-payment-sheet",
            json={"invoiceId": seed_data["linked_invoice_id"]},
        )
        assert resp.status_code == 200
        assert json.loads(resp.data) == {
            "clientSecret": "pi_linked_secret",
            "customerId": "cus_joe",
            "ephemeralKey": "ek_inv",
            "paymentIntentId": "pi_linked",
            "stripeInvoiceId": "in_linked",
        }
        assert mock_stripe.PaymentIntent.modify.call_args == call(
            "pi_linked",
            payment_method_types=app.config["INVOICE_PAYMENT_METHOD_TYPES"],
            api_key="sk_test_fake",
        )
