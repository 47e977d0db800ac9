"""Shared test fixtures for the payments API test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, fake Supabase)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- storage: the injected FakeStorage, reset per test
- seed_data: customers, invoices and a transaction
- admin_headers / stripe_obj: request and Stripe response helpers
"""

from decimal import Decimal

import pytest

from paybridge import create_app
from paybridge.extensions import STORAGE_KEY, db as _db
from paybridge.models.customer import Customer
from paybridge.models.invoice import Invoice, InvoiceItem
from paybridge.models.transaction import Transaction

ADMIN_KEY = "admin_test_key"


class StripeObj(dict):
    """Dict with attribute access, shaped like stripe.StripeObject."""

    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name)


class FakeStorage:
    """Stands in for SupabaseStorage; records every call."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.rpc_calls = []
        self.signed_paths = []
        self.fail_with = None

    def create_signed_upload_url(self, path, expires_in=3600):
        if self.fail_with:
            raise self.fail_with
        self.signed_paths.append(path)
        return {
            "signedUrl": (
                "https://test-project.supabase.co/storage/v1/object/upload/sign/"
                f"client_videos/{path}?token=tok_test"
            ),
            "token": "tok_test",
            "path": path,
        }

    def rpc(self, function, params):
        if self.fail_with:
            raise self.fail_with
        self.rpc_calls.append((function, params))
        return None


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing", storage=FakeStorage())
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture(autouse=True)
def storage(app):
    """The app's FakeStorage, cleared for each test."""
    fake = app.extensions[STORAGE_KEY]
    fake.reset()
    return fake


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": ADMIN_KEY}


@pytest.fixture
def stripe_obj():
    """Factory for Stripe-shaped objects: stripe_obj(id="in_1", ...)."""
    return StripeObj


@pytest.fixture
def seed_data(app, db_session):
    """Seed customers, invoices and a transaction.

    Returns plain IDs so tests can use them across app contexts.
    """
    with app.app_context():
        # --- Customers ---
        joe = Customer(
            email="joe@example.com",
            full_name="Joe Client",
            stripe_customer_id="cus_joe",
        )
        eve = Customer(email="eve@example.com", full_name="Eve Other")
        _db.session.add_all([joe, eve])
        _db.session.flush()

        # --- Unpaid invoice with two items ($125.00) ---
        invoice = Invoice(
            customer_id=joe.id,
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
        _db.session.add(invoice)

        # --- Paid invoice ---
        paid_invoice = Invoice(
            customer_id=joe.id,
            amount_cents=5000,
            description="Already settled",
            status="paid",
        )
        _db.session.add(paid_invoice)

        # --- Invoice already pushed to Stripe ---
        linked_invoice = Invoice(
            customer_id=joe.id,
            amount_cents=7500,
            description="Sent invoice",
            status="open",
            stripe_customer_id="cus_joe",
            stripe_invoice_id="in_linked",
            payment_intent_id="pi_linked",
        )
        _db.session.add(linked_invoice)

        # --- Pending transaction ($20.00) ---
        transaction = Transaction(customer_id=joe.id, amount_cents=2000)
        _db.session.add(transaction)

        _db.session.commit()

        return {
            "joe_id": joe.id,
            "eve_id": eve.id,
            "invoice_id": invoice.id,
            "paid_invoice_id": paid_invoice.id,
            "linked_invoice_id": linked_invoice.id,
            "transaction_id": transaction.id,
        }
