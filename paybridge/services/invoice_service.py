"""Invoice service: pushing stored invoices to Stripe and paying them.

Responsible for:
- Creating a local invoice from an ad-hoc admin request
- Creating + itemising + finalizing the matching Stripe invoice
- Building a payment sheet (client secret + ephemeral key) for a
  finalized Stripe invoice

Stripe invoice creation is a chain of remote writes. StripeInvoiceSaga
records each completed step with its undo action; if a later step fails,
completed steps are undone newest-first before the error propagates.
"""

import logging
from decimal import Decimal

from flask import current_app

from paybridge.errors import BadRequest, Conflict, NotFound
from paybridge.extensions import db, get_gateway
from paybridge.models.customer import Customer
from paybridge.models.invoice import Invoice, InvoiceItem
from paybridge.services.stripe_service import payment_intent_id_of

logger = logging.getLogger(__name__)


class StripeInvoiceSaga:
    """Ordered record of completed remote steps and how to undo them."""

    def __init__(self, invoice_id):
        self.invoice_id = invoice_id
        self.completed = []  # [(step name, undo callable or None)]

    def record(self, step, undo=None):
        self.completed.append((step, undo))
        logger.debug(f"Invoice {self.invoice_id}: step {step} done")

    @property
    def steps(self):
        return [name for name, _ in self.completed]

    def compensate(self):
        """Undo completed steps newest-first. Returns names of steps undone.

        An undo failure is logged and the remaining steps are still undone.
        """
        undone = []
        for step, undo in reversed(self.completed):
            if undo is None:
                continue
            try:
                undo()
                undone.append(step)
            except Exception as e:
                logger.error(
                    f"Invoice {self.invoice_id}: failed to undo {step}: {e}"
                )
        logger.warning(
            f"Invoice {self.invoice_id}: rolled back Stripe steps {undone}"
        )
        return undone


# ──────────────────────────────────────────────
# Ad-hoc invoices
# ──────────────────────────────────────────────

def create_local_invoice(customer_id, amount_cents, description,
                         customer_email=None):
    """Store a single-item invoice for an existing customer.

    customer_id is our customer id; customer_email is used only when the
    id is unknown and a customer with that email exists.
    """
    customer = db.session.get(Customer, customer_id) if customer_id else None
    if customer is None and customer_email:
        customer = Customer.find_by_email(customer_email)
    if customer is None:
        raise NotFound("Customer not found")

    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise BadRequest("amountCents must be an integer number of cents")
    if amount_cents < current_app.config["MIN_CHARGE_CENTS"]:
        raise BadRequest(
            f"amountCents must be at least {current_app.config['MIN_CHARGE_CENTS']} cents"
        )

    invoice = Invoice(
        customer_id=customer.id,
        amount_cents=amount_cents,
        description=description,
        status="unpaid",
    )
    invoice.items.append(InvoiceItem(
        position=0,
        description=description or "Invoice",
        quantity=1,
        unit_price=Decimal(amount_cents) / 100,
    ))
    db.session.add(invoice)
    db.session.flush()
    return invoice


# ──────────────────────────────────────────────
# Stripe invoice creation
# ──────────────────────────────────────────────

def _line_items(invoice):
    """(description, quantity, unit amount cents) for each Stripe item."""
    if invoice.items:
        return [
            (item.description, item.quantity, item.unit_amount_cents)
            for item in invoice.items
        ]
    return [(invoice.description or "Invoice", 1, invoice.amount_cents)]


def create_stripe_invoice(invoice_id):
    """Create, itemise and finalize the Stripe invoice for a stored invoice.

    Returns the updated Invoice.
    Raises NotFound / BadRequest / Conflict before touching Stripe;
    stripe.StripeError after rolling back completed Stripe steps.
    """
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFound("Invoice not found")
    if invoice.is_paid:
        raise Conflict("Invoice is already paid")
    if invoice.stripe_invoice_id:
        raise Conflict("Invoice already has a Stripe invoice")

    customer = invoice.customer
    if customer is None or not customer.email:
        raise BadRequest("Invoice customer has no email")

    config = current_app.config
    gateway = get_gateway()
    collection_method = config["STRIPE_INVOICE_COLLECTION_METHOD"]

    stripe_customer_id = gateway.resolve_customer(
        email=customer.email,
        customer_id=customer.stripe_customer_id,
        name=customer.full_name,
    )

    saga = StripeInvoiceSaga(invoice.id)
    try:
        remote = gateway.create_invoice(
            customer_id=stripe_customer_id,
            collection_method=collection_method,
            days_until_due=config["INVOICE_DAYS_UNTIL_DUE"],
            description=invoice.description,
            metadata={"invoice_id": invoice.id, "customer_id": customer.id},
        )
        saga.record(
            f"invoice:{remote.id}",
            lambda: gateway.delete_draft_invoice(remote.id),
        )

        for description, quantity, unit_amount in _line_items(invoice):
            line = gateway.add_invoice_item(
                customer_id=stripe_customer_id,
                invoice_id=remote.id,
                unit_amount=unit_amount,
                quantity=quantity,
                description=description,
            )
            saga.record(
                f"item:{line.id}",
                lambda line_id=line.id: gateway.delete_invoice_item(line_id),
            )

        finalized = gateway.finalize_invoice(remote.id)
        saga.record("finalize")
    except Exception as e:
        logger.error(
            f"Stripe invoice creation failed for {invoice.id} after "
            f"{saga.steps}: {e}"
        )
        saga.compensate()
        raise

    invoice.stripe_invoice_id = finalized.id
    invoice.stripe_customer_id = stripe_customer_id
    invoice.status = "open"
    invoice.payment_intent_id = payment_intent_id_of(finalized)
    if not customer.stripe_customer_id:
        customer.stripe_customer_id = stripe_customer_id
    db.session.commit()

    logger.info(f"Invoice {invoice.id} finalized as Stripe {finalized.id}")
    return invoice


# ──────────────────────────────────────────────
# Payment sheet
# ──────────────────────────────────────────────

def invoice_payment_sheet(stripe_invoice_id=None, invoice_id=None):
    """Return clientSecret + ephemeralKey for paying a finalized Stripe invoice."""
    if not stripe_invoice_id:
        if not invoice_id:
            raise BadRequest("Missing stripeInvoiceId or invoiceId")
        invoice = db.session.get(Invoice, invoice_id)
        if invoice is None or not invoice.stripe_invoice_id:
            raise NotFound("Invoice not found")
        if invoice.is_paid:
            raise Conflict("Invoice is already paid")
        stripe_invoice_id = invoice.stripe_invoice_id

    gateway = get_gateway()
    remote = gateway.retrieve_invoice(stripe_invoice_id)
    payment_intent_id = payment_intent_id_of(remote)
    if not payment_intent_id:
        raise BadRequest("Invoice has no payment intent; finalize it first")

    intent = gateway.update_payment_methods(
        payment_intent_id,
        current_app.config["INVOICE_PAYMENT_METHOD_TYPES"],
    )
    customer_id = remote.get("customer")
    ephemeral_key = gateway.create_ephemeral_key(customer_id)

    return {
        "clientSecret": intent.client_secret,
        "customerId": customer_id,
        "ephemeralKey": ephemeral_key,
        "paymentIntentId": payment_intent_id,
        "stripeInvoiceId": stripe_invoice_id,
    }
