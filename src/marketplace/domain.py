"""Marketplace bounded context — carts, stock reservations and seller orders.

Converts a multi-seller shopping cart into inventory-backed orders (one per
seller), keeps an auditable ledger of stock movements, and drives each order
through its fulfillment lifecycle.
"""

import structlog
from protean.domain import Domain

marketplace = Domain(name="marketplace")

logger = structlog.get_logger(__name__)
