"""Transaction model.

A lighter alternative to invoices: one payment attempt per row. Only the
webhook moves status from pending to succeeded / failed.
"""

import uuid

from paybridge.extensions import db


class Transaction(db.Model):
    __tablename__ = "transactions"

    STATUSES = ["pending", "succeeded", "failed"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id"), nullable=True
    )
    amount_cents = db.Column(db.Integer, nullable=True)
    payment_intent_id = db.Column(db.String(255), nullable=True, index=True)
    status = db.Column(
        db.String(20), nullable=False, default="pending"
    )  # pending | succeeded | failed
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer")

    def __repr__(self):
        return f"<Transaction {self.id} ({self.status})>"
