"""Points service: loyalty points awarded on payment, reversed on failure.

The ledger is owned by Supabase (POINTS_AWARD_FN / POINTS_REVERSE_FN RPCs).
points_awards records what we have already credited so the same payment is
never awarded twice. Uses flush() so the webhook handler controls the
commit boundary; if the RPC fails the caller rolls the row back.
"""

import logging
from datetime import datetime, timezone

from flask import current_app

from paybridge.extensions import db, get_storage
from paybridge.models.points import PointsAward

logger = logging.getLogger(__name__)


def invoice_reference(invoice_id):
    return f"invoice:{invoice_id}"


def transaction_reference(transaction_id):
    return f"transaction:{transaction_id}"


def award_points(reference, user_id, amount_cents):
    """Credit points for a successful payment, at most once per reference.

    Returns True if the RPC was called, False if skipped.
    """
    if not user_id:
        logger.warning(f"Points award skipped for {reference}: no user")
        return False

    existing = PointsAward.query.filter_by(reference=reference).first()
    if existing:
        logger.info(f"Points already {existing.status} for {reference}, skipping")
        return False

    db.session.add(PointsAward(
        reference=reference,
        user_id=user_id,
        amount_cents=amount_cents or 0,
    ))
    db.session.flush()

    get_storage().rpc(current_app.config["POINTS_AWARD_FN"], {
        "p_user_id": user_id,
        "p_amount_cents": amount_cents or 0,
        "p_reference": reference,
    })
    logger.info(f"Awarded points to {user_id} for {reference}")
    return True


def reverse_points(reference):
    """Reverse a previous award for reference. No-op if nothing was awarded.

    Returns True if the RPC was called.
    """
    award = PointsAward.query.filter_by(reference=reference).first()
    if not award or award.status != "awarded":
        return False

    award.status = "reversed"
    award.reversed_at = datetime.now(timezone.utc)
    db.session.flush()

    get_storage().rpc(current_app.config["POINTS_REVERSE_FN"], {
        "p_user_id": award.user_id,
        "p_amount_cents": award.amount_cents,
        "p_reference": reference,
    })
    logger.info(f"Reversed points for {award.user_id} ({reference})")
    return True
