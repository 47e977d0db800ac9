"""Webhook service: applies verified Stripe events to stored state.

Webhooks are the only path that marks invoices paid / failed and
transactions succeeded / failed. Responsible for:
- Idempotency via the stripe_events table
- Dispatching to event-specific handlers
- Awarding loyalty points, and reversing them on full refunds

Events whose metadata carries no invoice_id / transaction_id (or whose
Stripe invoice we have never seen) are acknowledged without any change.
"""

import logging
from datetime import datetime, timezone

from paybridge.extensions import db
from paybridge.models.customer import Customer
from paybridge.models.invoice import Invoice
from paybridge.models.stripe_event import StripeEvent
from paybridge.models.transaction import Transaction
from paybridge.services.points_service import (
    award_points,
    invoice_reference,
    reverse_points,
    transaction_reference,
)
from paybridge.services.stripe_service import payment_intent_id_of

logger = logging.getLogger(__name__)


def _timestamp(ts):
    """Stripe epoch seconds -> aware datetime (None passes through)."""
    if not ts:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _metadata(obj):
    return obj.get("metadata") or {}


def handle_webhook_event(event):
    """Process a verified Stripe webhook event.

    Idempotency: checks stripe_events table before processing.
    If the event was already processed, returns immediately.

    Returns (success: bool, message: str).
    """
    event_id = event["id"]
    event_type = event["type"]

    # --- Idempotency check ---
    if StripeEvent.already_processed(event_id):
        logger.info(f"Duplicate webhook event {event_id}, skipping")
        return True, "already_processed"

    # --- Route to handler ---
    handlers = {
        "payment_intent.succeeded": _handle_intent_succeeded,
        "payment_intent.payment_failed": _handle_intent_failed,
        "payment_intent.canceled": _handle_intent_failed,
        "invoice.finalized": _handle_invoice_finalized,
        "invoice.payment_succeeded": _handle_invoice_paid,
        "invoice.payment_failed": _handle_invoice_payment_failed,
        "charge.refunded": _handle_charge_refunded,
    }

    handler = handlers.get(event_type)
    if handler:
        try:
            handler(event)
        except Exception as e:
            logger.error(f"Error handling {event_type}: {e}", exc_info=True)
            db.session.rollback()
            return False, str(e)
    else:
        logger.info(f"Unhandled webhook event type {event_type}")

    # --- Record event for idempotency ---
    StripeEvent.record(event)
    db.session.commit()

    return True, "processed"


# ──────────────────────────────────────────────
# PaymentIntent events
# ──────────────────────────────────────────────

def _correlated_rows(intent):
    """(invoice, transaction) referenced by a PaymentIntent's metadata."""
    metadata = _metadata(intent)
    invoice_id = metadata.get("invoice_id")
    transaction_id = metadata.get("transaction_id")

    invoice = db.session.get(Invoice, invoice_id) if invoice_id else None
    transaction = (
        db.session.get(Transaction, transaction_id) if transaction_id else None
    )
    if invoice_id and invoice is None:
        logger.warning(f"{intent.get('id')}: unknown invoice {invoice_id}")
    if transaction_id and transaction is None:
        logger.warning(f"{intent.get('id')}: unknown transaction {transaction_id}")
    return invoice, transaction


def _handle_intent_succeeded(event):
    """Handle payment_intent.succeeded.

    Marks the referenced invoice paid / transaction succeeded and awards
    points once per invoice / transaction.
    """
    intent = event["data"]["object"]
    invoice, transaction = _correlated_rows(intent)
    amount = intent.get("amount_received") or intent.get("amount")

    if invoice:
        if not invoice.is_paid:
            invoice.status = "paid"
            invoice.paid_at = datetime.now(timezone.utc)
        invoice.payment_intent_id = intent.get("id") or invoice.payment_intent_id
        db.session.flush()
        award_points(
            invoice_reference(invoice.id),
            invoice.customer_id,
            amount or invoice.amount_cents,
        )
        logger.info(f"Invoice {invoice.id} paid via {intent.get('id')}")

    if transaction:
        transaction.status = "succeeded"
        transaction.payment_intent_id = (
            intent.get("id") or transaction.payment_intent_id
        )
        db.session.flush()
        award_points(
            transaction_reference(transaction.id),
            transaction.customer_id,
            amount or transaction.amount_cents,
        )
        logger.info(f"Transaction {transaction.id} succeeded via {intent.get('id')}")


def _handle_intent_failed(event):
    """Handle payment_intent.payment_failed and payment_intent.canceled.

    Returns the invoice to unpaid and marks the transaction failed. A paid
    invoice or succeeded transaction is left alone: Stripe may deliver a
    failure from an earlier declined attempt after the success.
    """
    intent = event["data"]["object"]
    invoice, transaction = _correlated_rows(intent)

    if invoice:
        if invoice.is_paid:
            logger.warning(
                f"{event['type']} for already-paid invoice {invoice.id}, ignoring"
            )
        else:
            invoice.status = "unpaid"

    if transaction:
        if transaction.status == "succeeded":
            logger.warning(
                f"{event['type']} for succeeded transaction {transaction.id}, ignoring"
            )
        else:
            transaction.status = "failed"

    db.session.flush()


# ──────────────────────────────────────────────
# Charge events
# ──────────────────────────────────────────────

def _handle_charge_refunded(event):
    """Handle charge.refunded.

    A fully refunded charge takes back the points its payment earned.
    Status is left as paid / succeeded; partial refunds change nothing.
    """
    charge = event["data"]["object"]
    payment_intent_id = charge.get("payment_intent")
    if not charge.get("refunded") or not payment_intent_id:
        logger.info(
            f"charge.refunded for {charge.get('id')}: partial or unlinked, skipping"
        )
        return

    invoice = Invoice.query.filter_by(payment_intent_id=payment_intent_id).first()
    if invoice:
        reverse_points(invoice_reference(invoice.id))

    transaction = Transaction.query.filter_by(
        payment_intent_id=payment_intent_id
    ).first()
    if transaction:
        reverse_points(transaction_reference(transaction.id))


# ──────────────────────────────────────────────
# Invoice events
# ──────────────────────────────────────────────

def _find_invoice(stripe_invoice):
    """Local invoice for a Stripe invoice: by Stripe id, then metadata."""
    invoice = Invoice.query.filter_by(
        stripe_invoice_id=stripe_invoice.get("id")
    ).first()
    if invoice:
        return invoice
    local_id = _metadata(stripe_invoice).get("invoice_id")
    if local_id:
        return db.session.get(Invoice, local_id)
    return None


def _handle_invoice_finalized(event):
    """Handle invoice.finalized.

    Upserts the local invoice so invoices created directly in the Stripe
    dashboard are mirrored too.
    """
    remote = event["data"]["object"]
    stripe_customer_id = remote.get("customer")

    invoice = _find_invoice(remote)
    if invoice is None:
        customer = None
        if stripe_customer_id:
            customer = Customer.query.filter_by(
                stripe_customer_id=stripe_customer_id
            ).first()
        if customer is None:
            customer = Customer.find_by_email(remote.get("customer_email"))
        invoice = Invoice(customer_id=customer.id if customer else None)
        db.session.add(invoice)
        logger.info(f"Mirroring Stripe invoice {remote.get('id')} locally")

    invoice.stripe_invoice_id = remote.get("id")
    invoice.stripe_customer_id = stripe_customer_id
    invoice.amount_cents = remote.get("amount_due") or 0
    invoice.currency = remote.get("currency") or invoice.currency or "usd"
    invoice.description = remote.get("description") or invoice.description
    invoice.payment_intent_id = payment_intent_id_of(remote) or invoice.payment_intent_id
    if not invoice.is_paid:
        invoice.status = "open"
    db.session.flush()


def _handle_invoice_paid(event):
    """Handle invoice.payment_succeeded.

    Marks the invoice paid with Stripe's paid timestamp and awards points
    (skipped if the PaymentIntent event already did).
    """
    remote = event["data"]["object"]
    invoice = _find_invoice(remote)
    if invoice is None:
        logger.info(f"invoice.payment_succeeded: no local invoice for {remote.get('id')}")
        return

    transitions = remote.get("status_transitions") or {}
    paid_at = _timestamp(transitions.get("paid_at")) or _timestamp(event.get("created"))

    invoice.status = "paid"
    invoice.paid_at = paid_at or invoice.paid_at or datetime.now(timezone.utc)
    db.session.flush()

    award_points(
        invoice_reference(invoice.id),
        invoice.customer_id,
        remote.get("amount_paid") or invoice.amount_cents,
    )


def _handle_invoice_payment_failed(event):
    """Handle invoice.payment_failed."""
    remote = event["data"]["object"]
    invoice = _find_invoice(remote)
    if invoice is None:
        logger.info(f"invoice.payment_failed: no local invoice for {remote.get('id')}")
        return
    if invoice.is_paid:
        logger.warning(f"invoice.payment_failed for paid invoice {invoice.id}, ignoring")
        return

    invoice.status = "failed"
    db.session.flush()
