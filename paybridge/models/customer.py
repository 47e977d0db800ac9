"""Customer model.

One row per paying customer, keyed by email. stripe_customer_id caches the
Stripe customer so repeat payments skip the Stripe email lookup.
"""

import uuid

from paybridge.extensions import db


class Customer(db.Model):
    __tablename__ = "customers"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(255), nullable=True)
    stripe_customer_id = db.Column(
        db.String(255), unique=True, nullable=True
    )  # e.g. "cus_Abc..."
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    invoices = db.relationship("Invoice", back_populates="customer")

    @classmethod
    def find_by_email(cls, email):
        if not email:
            return None
        return cls.query.filter(
            db.func.lower(cls.email) == email.strip().lower()
        ).first()

    def __repr__(self):
        return f"<Customer {self.email}>"
