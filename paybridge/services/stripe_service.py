"""Stripe service: every Stripe API call goes through StripeGateway.

Responsible for:
- Resolving Stripe customers by email (lookup, then create)
- Ephemeral keys for the mobile payment sheet
- Creating / updating PaymentIntents
- Creating, itemising, finalizing and deleting Stripe invoices
- Balance round-trips and webhook signature verification

One gateway is built per app in create_app() and fetched with
paybridge.extensions.get_gateway(). Errors from the SDK (stripe.StripeError)
propagate to the caller untouched.
"""

import hashlib
import logging

import stripe

logger = logging.getLogger(__name__)


def display_name_from_email(email):
    """Derive a customer display name from the email local part."""
    return (email or "").split("@")[0]


def payment_intent_id_of(stripe_invoice):
    """PaymentIntent id of a Stripe invoice, expanded or not."""
    pi = stripe_invoice.get("payment_intent")
    if isinstance(pi, dict):
        return pi.get("id")
    return pi


class StripeGateway:
    """Thin wrapper over the Stripe SDK, bound to one API key."""

    def __init__(self, api_key, webhook_secret=None, api_version=None,
                 currency="usd"):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.api_version = api_version
        self.currency = currency

    @classmethod
    def from_config(cls, config):
        return cls(
            api_key=config.get("STRIPE_SECRET_KEY"),
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET"),
            api_version=config.get("STRIPE_API_VERSION"),
            currency=config.get("CURRENCY", "usd"),
        )

    @property
    def mode(self):
        return "Live" if (self.api_key or "").startswith("sk_live_") else "Test"

    # ──────────────────────────────────────────────
    # Customers
    # ──────────────────────────────────────────────

    def find_customer_by_email(self, email):
        """Return the first Stripe customer id with this email, or None."""
        existing = stripe.Customer.list(email=email, limit=1, api_key=self.api_key)
        if existing.data:
            return existing.data[0].id
        return None

    def create_customer(self, email, name=None, metadata=None):
        """Create a Stripe customer.

        The idempotency key is derived from the email so two concurrent
        requests for the same new email collapse into one Stripe customer.
        """
        key = hashlib.sha256(email.strip().lower().encode()).hexdigest()
        customer = stripe.Customer.create(
            email=email,
            name=name or display_name_from_email(email),
            metadata=metadata or {},
            idempotency_key=f"customer-create-{key}",
            api_key=self.api_key,
        )
        logger.info(f"Created Stripe customer {customer.id} for {email}")
        return customer.id

    def resolve_customer(self, email=None, customer_id=None, name=None):
        """Reuse customer_id, else look up by email, else create.

        Returns the Stripe customer id, or None when neither is given.
        """
        if customer_id:
            return customer_id
        if not email:
            return None
        found = self.find_customer_by_email(email)
        if found:
            return found
        return self.create_customer(email, name=name)

    def create_ephemeral_key(self, customer_id):
        """Short-lived key letting the client SDK act for this customer."""
        key = stripe.EphemeralKey.create(
            customer=customer_id,
            stripe_version=self.api_version,
            api_key=self.api_key,
        )
        return key.secret

    # ──────────────────────────────────────────────
    # Payment Intents
    # ──────────────────────────────────────────────

    def create_payment_intent(self, amount, customer_id, payment_method_types,
                              metadata=None, receipt_email=None):
        params = {
            "amount": amount,
            "currency": self.currency,
            "customer": customer_id,
            "payment_method_types": payment_method_types,
            "setup_future_usage": "on_session",
            "metadata": metadata or {},
        }
        if receipt_email:
            params["receipt_email"] = receipt_email
        intent = stripe.PaymentIntent.create(api_key=self.api_key, **params)
        logger.info(
            f"Created PaymentIntent {intent.id} for ${amount / 100:.2f} "
            f"(customer={customer_id})"
        )
        return intent

    def update_payment_methods(self, payment_intent_id, payment_method_types):
        return stripe.PaymentIntent.modify(
            payment_intent_id,
            payment_method_types=payment_method_types,
            api_key=self.api_key,
        )

    # ──────────────────────────────────────────────
    # Invoices
    # ──────────────────────────────────────────────

    def create_invoice(self, customer_id, collection_method, days_until_due=None,
                       description=None, metadata=None):
        params = {
            "customer": customer_id,
            "collection_method": collection_method,
            "auto_advance": False,
            "pending_invoice_items_behavior": "exclude",
            "metadata": metadata or {},
        }
        if collection_method == "send_invoice":
            params["days_until_due"] = days_until_due
        if description:
            params["description"] = description
        return stripe.Invoice.create(api_key=self.api_key, **params)

    def add_invoice_item(self, customer_id, invoice_id, unit_amount, quantity,
                         description):
        return stripe.InvoiceItem.create(
            customer=customer_id,
            invoice=invoice_id,
            unit_amount=unit_amount,
            quantity=quantity,
            currency=self.currency,
            description=description,
            api_key=self.api_key,
        )

    def delete_invoice_item(self, invoice_item_id):
        return stripe.InvoiceItem.delete(invoice_item_id, api_key=self.api_key)

    def finalize_invoice(self, invoice_id):
        return stripe.Invoice.finalize_invoice(invoice_id, api_key=self.api_key)

    def delete_draft_invoice(self, invoice_id):
        return stripe.Invoice.delete(invoice_id, api_key=self.api_key)

    def retrieve_invoice(self, invoice_id):
        return stripe.Invoice.retrieve(invoice_id, api_key=self.api_key)

    # ──────────────────────────────────────────────
    # Account / Webhooks
    # ──────────────────────────────────────────────

    def retrieve_balance(self):
        return stripe.Balance.retrieve(api_key=self.api_key)

    def construct_event(self, payload, sig_header):
        """Verify the Stripe signature and construct the event.

        Raises stripe.SignatureVerificationError on an invalid signature and
        ValueError on an unparseable payload.
        """
        return stripe.Webhook.construct_event(
            payload, sig_header, self.webhook_secret
        )
