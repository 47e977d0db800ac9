import os
import logging
import time

import click
from flask import Flask

from paybridge.config import config_by_name
from paybridge.errors import register_error_handlers
from paybridge.extensions import (
    GATEWAY_KEY,
    STORAGE_KEY,
    cors,
    db,
    limiter,
    migrate,
)


def create_app(config_name=None, gateway=None, storage=None):
    """Application factory.

    gateway / storage replace the Stripe and Supabase clients built from
    config (tests pass fakes here).
    """

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    app.config["STARTED_AT"] = time.time()

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors.init_app(
        app,
        resources={r"/*": {"origins": app.config["CORS_ALLOWED_ORIGINS"]}},
        methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Admin-Key"],
    )

    # --- External clients (one per process) ---
    from paybridge.services.stripe_service import StripeGateway
    from paybridge.services.storage_service import SupabaseStorage

    app.extensions[GATEWAY_KEY] = gateway or StripeGateway.from_config(app.config)
    app.extensions[STORAGE_KEY] = storage or SupabaseStorage.from_config(app.config)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from paybridge import models  # noqa: F401

    # --- Register blueprints ---
    from paybridge.blueprints.system import system_bp
    from paybridge.blueprints.payments import payments_bp
    from paybridge.blueprints.uploads import uploads_bp
    from paybridge.blueprints.webhooks import webhooks_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(uploads_bp)
    app.register_blueprint(webhooks_bp)

    # Stripe retries webhooks itself; never throttle them
    limiter.exempt(webhooks_bp)

    # --- Error handlers ---
    register_error_handlers(app)

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_response_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("check-stripe")
    def check_stripe():
        """Verify the configured Stripe key works and show its mode.

        Usage:
            flask check-stripe
        """
        from paybridge.extensions import get_gateway

        gateway = get_gateway()
        if not gateway.api_key:
            click.echo("ERROR: STRIPE_SECRET_KEY is not set.")
            return

        click.echo(f"Stripe key mode: {gateway.mode}")
        balance = gateway.retrieve_balance()
        for entry in balance.get("available", []):
            click.echo(
                f"  available: {entry['amount'] / 100:.2f} {entry['currency'].upper()}"
            )
        for entry in balance.get("pending", []):
            click.echo(
                f"  pending:   {entry['amount'] / 100:.2f} {entry['currency'].upper()}"
            )

    @app.cli.command("seed-demo")
    @click.option("--email", default="demo@example.com", help="Demo customer email")
    def seed_demo(email):
        """Create a demo customer with an unpaid invoice and a pending transaction.

        Usage:
            flask seed-demo
            flask seed-demo --email someone@example.com
        """
        from decimal import Decimal

        from paybridge.models.customer import Customer
        from paybridge.models.invoice import Invoice, InvoiceItem
        from paybridge.models.transaction import Transaction

        customer = Customer.find_by_email(email)
        if customer:
            click.echo(f"Customer already exists: {email}")
        else:
            customer = Customer(email=email, full_name="Demo Customer")
            db.session.add(customer)
            db.session.flush()
            click.echo(f"Created customer: {email}")

        invoice = Invoice(
            customer_id=customer.id,
            amount_cents=12500,
            description="Video production package",
            status="unpaid",
        )
        invoice.items = [
            InvoiceItem(position=0, description="Editing (hours)",
                        quantity=2, unit_price=Decimal("50.00")),
            InvoiceItem(position=1, description="Color grading",
                        quantity=1, unit_price=Decimal("25.00")),
        ]
        db.session.add(invoice)

        transaction = Transaction(customer_id=customer.id, amount_cents=2000)
        db.session.add(transaction)
        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo("Seed data created successfully!")
        click.echo("=" * 60)
        click.echo(f"  Customer:    {customer.email} (id: {customer.id})")
        click.echo(f"  Invoice:     {invoice.id} (${invoice.amount_cents / 100:.2f})")
        click.echo(f"  Transaction: {transaction.id} (${transaction.amount_cents / 100:.2f})")
        click.echo("=" * 60)
