import os


def _flag(name, default=""):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: Supabase and some PaaS providers hand out
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None
    # Pooler URL for runtime, direct URL for migrations (DDL).
    DATABASE_DIRECT_URL = os.environ.get("DATABASE_DIRECT_URL")

    # --- Stripe ---
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    # Ephemeral keys must be minted for the API version the mobile SDK speaks.
    STRIPE_API_VERSION = os.environ.get("STRIPE_API_VERSION", "2024-06-20")

    # --- Payments ---
    MIN_CHARGE_CENTS = int(os.environ.get("MIN_CHARGE_CENTS", 50))
    CURRENCY = "usd"
    ENABLE_BANK_DEBIT = _flag("ENABLE_BANK_DEBIT")
    INVOICE_PAYMENT_METHOD_TYPES = [
        t.strip()
        for t in os.environ.get(
            "INVOICE_PAYMENT_METHOD_TYPES", "card,us_bank_account,cashapp"
        ).split(",")
        if t.strip()
    ]
    STRIPE_INVOICE_COLLECTION_METHOD = os.environ.get(
        "STRIPE_INVOICE_COLLECTION_METHOD", "send_invoice"
    )  # send_invoice | charge_automatically
    INVOICE_DAYS_UNTIL_DUE = int(os.environ.get("INVOICE_DAYS_UNTIL_DUE", 7))

    # --- Admin ---
    ADMIN_API_KEY = os.environ.get("ADMIN_API_KEY")

    # --- Supabase ---
    SUPABASE_URL = os.environ.get("SUPABASE_URL")                  # e.g. https://xyz.supabase.co
    SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY")  # service_role key, never the anon key
    SUPABASE_VIDEO_BUCKET = os.environ.get("SUPABASE_VIDEO_BUCKET", "client_videos")
    SUPABASE_TIMEOUT = int(os.environ.get("SUPABASE_TIMEOUT", 30))
    UPLOAD_URL_EXPIRES_IN = 60 * 60
    POINTS_AWARD_FN = os.environ.get("POINTS_AWARD_FN", "award_points")
    POINTS_REVERSE_FN = os.environ.get("POINTS_REVERSE_FN", "reverse_points")

    # --- CORS ---
    # Comma-separated; "*" allows any origin.
    CORS_ALLOWED_ORIGINS = [
        o.strip()
        for o in os.environ.get("CORS_ALLOWED_ORIGINS", "*").split(",")
        if o.strip()
    ]

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "STRIPE_SECRET_KEY",
            "STRIPE_WEBHOOK_SECRET",
            "SUPABASE_URL",
            "SUPABASE_SERVICE_KEY",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True


class TestConfig(Config):
    """Testing with in-memory SQLite and fake credentials."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    STRIPE_SECRET_KEY = "sk_test_fake"
    STRIPE_WEBHOOK_SECRET = "whsec_test_fake"
    SUPABASE_URL = "https://test-project.supabase.co"
    SUPABASE_SERVICE_KEY = "service_role_test_fake"
    ADMIN_API_KEY = "admin_test_key"
    ENABLE_BANK_DEBIT = False  # override per-test as needed
    STRIPE_INVOICE_COLLECTION_METHOD = "send_invoice"
    RATELIMIT_ENABLED = False  # disable rate limiting in tests

    @staticmethod
    def validate():
        """Nothing to validate; test values are hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False

    @staticmethod
    def validate():
        Config.validate()
        if not os.environ.get("ADMIN_API_KEY"):
            raise RuntimeError(
                "Missing required environment variables: ADMIN_API_KEY"
            )


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
