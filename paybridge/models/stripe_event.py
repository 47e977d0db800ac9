"""Processed webhook events.

Stripe redelivers an event until it gets a 2xx, and may deliver it more
than once even then. A row is written only after the event's handler has
committed its changes, so a redelivered event id is acknowledged without
touching invoices, transactions or points again. A failed handler leaves no
row and the next delivery runs it from scratch.
"""

import uuid

from paybridge.extensions import db


class StripeEvent(db.Model):
    __tablename__ = "stripe_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    stripe_event_id = db.Column(db.String(255), unique=True, nullable=False)
    event_type = db.Column(db.String(255), nullable=False)
    # pi_... / in_... / ch_... the event was about; null for object-less events
    object_id = db.Column(db.String(255), nullable=True, index=True)
    processed_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    @classmethod
    def already_processed(cls, stripe_event_id):
        return db.session.query(
            cls.query.filter_by(stripe_event_id=stripe_event_id).exists()
        ).scalar()

    @classmethod
    def record(cls, event):
        """Stage a row for a handled event; the caller commits."""
        obj = (event.get("data") or {}).get("object") or {}
        row = cls(
            stripe_event_id=event["id"],
            event_type=event["type"],
            object_id=obj.get("id"),
        )
        db.session.add(row)
        return row

    def __repr__(self):
        return f"<StripeEvent {self.stripe_event_id} {self.event_type} {self.object_id}>"
