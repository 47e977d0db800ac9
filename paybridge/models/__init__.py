# Models package: import all models here so Alembic can discover them.

from paybridge.models.customer import Customer  # noqa: F401
from paybridge.models.invoice import Invoice, InvoiceItem  # noqa: F401
from paybridge.models.transaction import Transaction  # noqa: F401
from paybridge.models.stripe_event import StripeEvent  # noqa: F401
from paybridge.models.points import PointsAward  # noqa: F401
