"""
Deferred extension instances and external client accessors.

Extensions are created here and bound to the app in create_app() via
init_app(). The Stripe and Supabase client objects are built once per app
and stored in app.extensions; route handlers reach them through
get_gateway() / get_storage() so tests can inject substitutes.
"""

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_cors import CORS

db = SQLAlchemy()
migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # per-route limits only
    storage_uri="memory://",
)
cors = CORS()

GATEWAY_KEY = "stripe_gateway"
STORAGE_KEY = "supabase_storage"


def get_gateway():
    """Return the app's StripeGateway."""
    return current_app.extensions[GATEWAY_KEY]


def get_storage():
    """Return the app's SupabaseStorage."""
    return current_app.extensions[STORAGE_KEY]
