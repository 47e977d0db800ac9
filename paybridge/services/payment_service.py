"""Payment service: PaymentIntent creation for the mobile payment sheet.

Three flows share one entry point:
- plain: amount comes from the request
- invoice: amount re-derived from the stored invoice, ownership checked,
  already-paid invoices rejected before Stripe is called
- transaction: amount from the stored transaction when it has one

The PaymentIntent id is written back to the invoice / transaction row; its
status is left for the webhook to change.
"""

import logging

from flask import current_app

from paybridge.errors import BadRequest, Conflict, Forbidden, NotFound
from paybridge.extensions import db, get_gateway
from paybridge.models.customer import Customer
from paybridge.models.invoice import Invoice
from paybridge.models.transaction import Transaction

logger = logging.getLogger(__name__)


def payment_method_types(app_config):
    types = ["card"]
    if app_config.get("ENABLE_BANK_DEBIT"):
        types.append("us_bank_account")
    return types


def _parse_amount(value):
    """Return value as integer cents or raise BadRequest."""
    if value is None or value == "":
        raise BadRequest("Missing amount")
    if isinstance(value, bool):
        raise BadRequest("amount must be an integer number of cents")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise BadRequest("amount must be an integer number of cents")
    return value


def _clean(value):
    if value is None:
        return None
    return str(value).strip() or None


def _check_invoice_owner(invoice, customer_email, stripe_customer_id):
    owner = invoice.customer
    if owner is not None:
        if customer_email:
            if owner.email.lower() != customer_email.lower():
                raise Forbidden("Invoice does not belong to this customer")
        elif not (stripe_customer_id
                  and invoice.stripe_customer_id == stripe_customer_id):
            raise Forbidden("Invoice does not belong to this customer")
    if (stripe_customer_id and invoice.stripe_customer_id
            and invoice.stripe_customer_id != stripe_customer_id):
        raise Forbidden("Invoice does not belong to this customer")


def create_payment_intent(data):
    """Create a PaymentIntent + ephemeral key for the request body `data`.

    Returns dict: clientSecret, customerId, ephemeralKey, paymentIntentId.
    Raises BadRequest / Forbidden / NotFound / Conflict before any Stripe call.
    """
    config = current_app.config
    customer_email = _clean(data.get("customerEmail"))
    stripe_customer_id = _clean(data.get("customerId"))
    invoice_id = _clean(data.get("invoiceId"))
    transaction_id = _clean(data.get("transactionId"))

    if not customer_email and not stripe_customer_id:
        raise BadRequest("Missing customerEmail or customerId")

    invoice = None
    transaction = None

    # --- Resolve the amount ---
    if invoice_id:
        invoice = db.session.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFound("Invoice not found")
        if invoice.is_paid:
            raise Conflict("Invoice is already paid")
        _check_invoice_owner(invoice, customer_email, stripe_customer_id)
        amount = invoice.amount_cents
    elif transaction_id:
        transaction = db.session.get(Transaction, transaction_id)
        if transaction is None:
            raise NotFound("Transaction not found")
        if transaction.status == "succeeded":
            raise Conflict("Transaction is already paid")
        if transaction.amount_cents:
            amount = transaction.amount_cents
        else:
            amount = _parse_amount(data.get("amount"))
    else:
        amount = _parse_amount(data.get("amount"))

    min_charge = config["MIN_CHARGE_CENTS"]
    if amount < min_charge:
        raise BadRequest(f"amount must be at least {min_charge} cents")

    # --- Resolve the Stripe customer ---
    gateway = get_gateway()
    local_customer = Customer.find_by_email(customer_email)
    if not stripe_customer_id and invoice and invoice.stripe_customer_id:
        stripe_customer_id = invoice.stripe_customer_id
    if not stripe_customer_id and local_customer and local_customer.stripe_customer_id:
        stripe_customer_id = local_customer.stripe_customer_id
    looked_up = stripe_customer_id is None
    stripe_customer_id = gateway.resolve_customer(
        email=customer_email,
        customer_id=stripe_customer_id,
        name=local_customer.full_name if local_customer else None,
    )
    if looked_up and local_customer and not local_customer.stripe_customer_id:
        local_customer.stripe_customer_id = stripe_customer_id

    ephemeral_key = gateway.create_ephemeral_key(stripe_customer_id)

    metadata = {}
    if customer_email:
        metadata["customer_email"] = customer_email
    if invoice:
        metadata["invoice_id"] = invoice.id
        if invoice.customer_id:
            metadata["customer_id"] = invoice.customer_id
    elif transaction:
        metadata["transaction_id"] = transaction.id
        if transaction.customer_id:
            metadata["customer_id"] = transaction.customer_id
    elif local_customer:
        metadata["customer_id"] = local_customer.id

    intent = gateway.create_payment_intent(
        amount=amount,
        customer_id=stripe_customer_id,
        payment_method_types=payment_method_types(config),
        metadata=metadata,
        receipt_email=customer_email,
    )

    # --- Persist the intent id (status stays webhook-owned) ---
    if invoice:
        invoice.payment_intent_id = intent.id
        if not invoice.stripe_customer_id:
            invoice.stripe_customer_id = stripe_customer_id
    elif transaction:
        transaction.payment_intent_id = intent.id
    db.session.commit()

    return {
        "clientSecret": intent.client_secret,
        "customerId": stripe_customer_id,
        "ephemeralKey": ephemeral_key,
        "paymentIntentId": intent.id,
    }
