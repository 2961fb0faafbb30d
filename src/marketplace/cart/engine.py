"""Cart calculations and checkout validation.

``calculate_totals`` and ``validate_cart`` are pure: they take the cart lines
and the products they reference and never touch persistence. ``load_cart``
is the read side that feeds them.
"""

from dataclasses import dataclass

from protean.utils.globals import current_domain

from marketplace.cart.cart import CartItem
from marketplace.cart.pricing import PricingPolicy
from marketplace.catalogue.product import Product


@dataclass(frozen=True)
class CartTotals:
    subtotal: int
    tax_amount: int
    shipping_amount: int
    discount_amount: int
    total_amount: int
    item_count: int
    total_weight: float
    currency: str


def calculate_totals(
    items: list[CartItem],
    products: dict[str, Product],
    policy: PricingPolicy,
) -> CartTotals:
    subtotal = sum(item.quantity * item.unit_price for item in items)
    total_weight = sum(
        (products[str(item.product_id)].weight or 0.0) * item.quantity
        for item in items
        if str(item.product_id) in products
    )
    tax = policy.tax_for(subtotal)
    shipping = policy.shipping_for(subtotal, total_weight)
    discount = 0

    return CartTotals(
        subtotal=subtotal,
        tax_amount=tax,
        shipping_amount=shipping,
        discount_amount=discount,
        total_amount=subtotal + tax + shipping - discount,
        item_count=sum(item.quantity for item in items),
        total_weight=total_weight,
        currency=policy.currency,
    )


def validate_cart(items: list[CartItem], products: dict[str, Product]) -> list[str]:
    """Return one message per line that can no longer be checked out as-is."""
    errors = []
    for item in items:
        product = products.get(str(item.product_id))
        if product is None:
            errors.append(f"Product {item.product_id} no longer exists")
            continue

        if not product.is_active:
            errors.append(f"{product.name} is no longer available")
            continue

        if not product.can_supply(item.quantity):
            errors.append(
                f"Insufficient stock for {product.name}: {product.stock_quantity} available, {item.quantity} requested"
            )

        if product.price != item.unit_price:
            errors.append(f"The price of {product.name} changed from {item.unit_price} to {product.price}")

    return errors


def load_cart(user_id=None, session_id=None) -> tuple[list[CartItem], dict[str, Product]]:
    items = current_domain.repository_for(CartItem).for_owner(user_id=user_id, session_id=session_id)
    product_repo = current_domain.repository_for(Product)
    products = {}
    for product_id in {str(item.product_id) for item in items}:
        product = product_repo.get_or_none(product_id)
        if product is not None:
            products[product_id] = product
    return items, products
