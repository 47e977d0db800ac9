"""Invoice models.

- Invoice: an amount owed by a customer. status moves to paid / failed only
  from Stripe webhooks; client-reported success is never trusted.
- InvoiceItem: a stored line item, mirrored to a Stripe invoice item when
  the invoice is pushed to Stripe.
"""

import uuid
from decimal import Decimal, ROUND_HALF_UP

from paybridge.extensions import db


class Invoice(db.Model):
    __tablename__ = "invoices"

    # -- Valid statuses --
    STATUSES = [
        "unpaid",
        "open",
        "paid",
        "failed",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id"), nullable=True
    )  # null when mirrored from a Stripe invoice with no local customer
    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="usd")
    description = db.Column(db.String(500), nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="unpaid"
    )  # unpaid | open | paid | failed
    stripe_customer_id = db.Column(db.String(255), nullable=True)
    stripe_invoice_id = db.Column(db.String(255), unique=True, nullable=True)
    payment_intent_id = db.Column(db.String(255), nullable=True, index=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    customer = db.relationship("Customer", back_populates="invoices")
    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
    )

    @property
    def is_paid(self):
        return self.status == "paid"

    def __repr__(self):
        return f"<Invoice {self.id} {self.amount_cents} ({self.status})>"


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    invoice_id = db.Column(
        db.String(36), db.ForeignKey("invoices.id"), nullable=False
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.String(500), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)  # dollars

    # --- Relationships ---
    invoice = db.relationship("Invoice", back_populates="items")

    @property
    def unit_amount_cents(self):
        """unit_price in cents, rounded half-up."""
        cents = Decimal(str(self.unit_price)) * 100
        return int(cents.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def __repr__(self):
        return f"<InvoiceItem {self.description} x{self.quantity}>"
