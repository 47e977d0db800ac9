"""Payments blueprint: PaymentIntents and Stripe invoices.

Route Map:
  POST /create-payment-intent  PaymentIntent + ephemeral key for the payment sheet
  POST /create-stripe-invoice  push a stored invoice to Stripe (admin key)
  POST /invoice-payment-sheet  payment sheet for a finalized Stripe invoice

Invoice / transaction status is never changed here; see the webhooks
blueprint.
"""

import logging

from flask import Blueprint, jsonify

from paybridge.decorators import admin_key_required, json_body
from paybridge.errors import BadRequest
from paybridge.extensions import limiter
from paybridge.services.invoice_service import (
    create_local_invoice,
    create_stripe_invoice as push_invoice_to_stripe,
    invoice_payment_sheet as build_invoice_payment_sheet,
)
from paybridge.services.payment_service import create_payment_intent as start_payment

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__)


# ──────────────────────────────────────────────
# POST /create-payment-intent
# ──────────────────────────────────────────────

@payments_bp.route("/create-payment-intent", methods=["POST"])
@limiter.limit("30 per minute")
@json_body
def create_payment_intent(data):
    """Create a PaymentIntent for the mobile payment sheet.

    Body: { amount, customerEmail, customerId?, invoiceId?, transactionId? }
    Returns: { clientSecret, customerId, ephemeralKey, paymentIntentId }
    """
    result = start_payment(data)
    return jsonify(result), 200


# ──────────────────────────────────────────────
# POST /create-stripe-invoice
# ──────────────────────────────────────────────

@payments_bp.route("/create-stripe-invoice", methods=["POST"])
@admin_key_required
@json_body
def create_stripe_invoice(data):
    """Create and finalize a Stripe invoice.

    Body: { invoiceId } for a stored invoice, or
          { customerId, customerEmail?, amountCents, description } to store
          a single-item invoice first.
    Returns: { ok, invoiceId, stripeInvoiceId, status }
    """
    invoice_id = data.get("invoiceId")
    if not invoice_id:
        if data.get("amountCents") is None or not (
            data.get("customerId") or data.get("customerEmail")
        ):
            raise BadRequest(
                "Missing invoiceId (or customerId + amountCents + description)"
            )
        invoice = create_local_invoice(
            customer_id=data.get("customerId"),
            amount_cents=data.get("amountCents"),
            description=data.get("description"),
            customer_email=data.get("customerEmail"),
        )
        invoice_id = invoice.id
        logger.info(f"Stored ad-hoc invoice {invoice_id}")

    invoice = push_invoice_to_stripe(str(invoice_id))
    return jsonify(
        ok=True,
        invoiceId=invoice.id,
        stripeInvoiceId=invoice.stripe_invoice_id,
        status=invoice.status,
    ), 200


# ──────────────────────────────────────────────
# POST /invoice-payment-sheet
# ──────────────────────────────────────────────

@payments_bp.route("/invoice-payment-sheet", methods=["POST"])
@limiter.limit("30 per minute")
@json_body
def invoice_payment_sheet(data):
    """Payment sheet for a finalized Stripe invoice.

    Body: { stripeInvoiceId } or { invoiceId }
    Returns: { clientSecret, customerId, ephemeralKey, paymentIntentId, stripeInvoiceId }
    """
    result = build_invoice_payment_sheet(
        stripe_invoice_id=data.get("stripeInvoiceId"),
        invoice_id=data.get("invoiceId"),
    )
    return jsonify(result), 200
