"""Stock ledger: the only code that moves product inventory.

Every movement loads the product, checks it and writes it back inside the
caller's UnitOfWork. The write is a compare-and-set on the product version:
if another unit changed the product in between, the commit raises
``ExpectedVersionError``, the whole unit rolls back and the command handler
is re-run against fresh state by Protean's version retry.
"""

import structlog
from protean.utils.globals import current_domain

from marketplace.catalogue.product import Product

logger = structlog.get_logger(__name__)


def _load(product_id) -> Product:
    return current_domain.repository_for(Product).get(product_id)


def decrement(product_id, quantity: int) -> Product:
    """Take ``quantity`` units out of stock. Raises ``OutOfStock``."""
    product = _load(product_id)
    if not product.track_inventory:
        return product

    product.decrement_stock(quantity)
    current_domain.repository_for(Product).add(product)
    logger.info(
        "Stock decremented",
        product_id=str(product_id),
        quantity=quantity,
        stock_quantity=product.stock_quantity,
    )
    return product


def increment(product_id, quantity: int) -> Product | None:
    """Put ``quantity`` units back. Products that were deleted are skipped."""
    product = current_domain.repository_for(Product).get_or_none(product_id)
    if product is None:
        logger.warning("Cannot restore stock for missing product", product_id=str(product_id), quantity=quantity)
        return None
    if not product.track_inventory:
        return product

    product.increment_stock(quantity)
    current_domain.repository_for(Product).add(product)
    logger.info(
        "Stock restored",
        product_id=str(product_id),
        quantity=quantity,
        stock_quantity=product.stock_quantity,
    )
    return product


def record_sale(product_id, quantity: int) -> Product:
    product = _load(product_id)
    product.record_sale(quantity)
    current_domain.repository_for(Product).add(product)
    return product


def sell(product_id, quantity: int) -> Product:
    """Decrement stock and count the sale in a single product write."""
    product = _load(product_id)
    if product.track_inventory:
        product.decrement_stock(quantity)
    product.record_sale(quantity)
    current_domain.repository_for(Product).add(product)
    logger.info(
        "Product sold",
        product_id=str(product_id),
        quantity=quantity,
        stock_quantity=product.stock_quantity,
        sales_count=product.sales_count,
    )
    return product
