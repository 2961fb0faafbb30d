"""Marketplace bounded context: carts, orders, payments and subscriptions.

A single domain hosts every aggregate of the commerce core so that checkout,
payment reconciliation and subscription activation each commit in one
UnitOfWork. Business constants are read from the ``[custom]`` section of
``domain.toml`` and exposed as attributes (``marketplace.TAX_RATE_PERCENT``).
"""

import structlog
from protean.domain import Domain

marketplace = Domain(name="marketplace")

logger = structlog.get_logger(__name__)
