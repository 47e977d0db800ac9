"""System blueprint: liveness and Stripe connectivity checks."""

import time

from flask import Blueprint, current_app, jsonify

from paybridge.extensions import get_gateway

system_bp = Blueprint("system", __name__)


@system_bp.route("/")
def index():
    return "Payments server is live.", 200


@system_bp.route("/test")
def stripe_test():
    """Round-trip to Stripe: fetch the account balance."""
    gateway = get_gateway()
    balance = gateway.retrieve_balance()
    return jsonify(
        message=f"Stripe API connected ({gateway.mode} mode)",
        balance=balance,
    ), 200


@system_bp.route("/health")
def health():
    started = current_app.config.get("STARTED_AT", time.time())
    return jsonify(
        status="ok",
        uptime_seconds=round(time.time() - started, 3),
    ), 200
