"""Points award model.

The points ledger itself lives in Supabase and is driven through RPCs.
This table records which payments have already been credited so a payment
is awarded at most once, whatever path (or redelivery) reports it.
"""

import uuid

from paybridge.extensions import db


class PointsAward(db.Model):
    __tablename__ = "points_awards"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    reference = db.Column(
        db.String(100), unique=True, nullable=False
    )  # "invoice:<id>" | "transaction:<id>"
    user_id = db.Column(db.String(36), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="awarded"
    )  # awarded | reversed
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    reversed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<PointsAward {self.reference} ({self.status})>"
