"""Checkout: converting a user's cart into an order.

Everything happens in the handler's single UnitOfWork: the cart is
re-validated against live catalogue data, totals are computed, the order is
persisted, stock is taken and sales are counted, and the cart is emptied.
Any failure (including a stock race detected at commit) rolls the whole
checkout back.
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Dict, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.cart.cart import CartItem
from marketplace.cart.engine import calculate_totals, load_cart, validate_cart
from marketplace.cart.pricing import PricingPolicy
from marketplace.domain import marketplace
from marketplace.inventory import ledger
from marketplace.order.order import Address, Order, OrderItem, ProductSnapshot

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class PlaceOrder:
    user_id = Identifier(required=True)
    shipping_address = Dict(required=True)
    billing_address = Dict()
    shipping_method = String(max_length=50, default="standard")
    customer_email = String(max_length=255)
    customer_phone = String(max_length=30)
    notes = Text()


def _build_item(line, product) -> OrderItem:
    return OrderItem(
        product_id=str(product.id),
        product_name=product.name,
        product_sku=product.sku,
        quantity=line.quantity,
        unit_price=line.unit_price,
        total_price=line.quantity * line.unit_price,
        product_options=line.options or {},
        product_snapshot=ProductSnapshot(
            name=product.name,
            description=(product.description or "")[:500] or None,
            image=product.image,
            sku=product.sku,
            category=product.category,
        ),
    )


@marketplace.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        lines, products = load_cart(user_id=command.user_id)
        if not lines:
            raise ValidationError({"cart": ["Cart is empty"]})

        errors = validate_cart(lines, products)
        if errors:
            logger.info("Checkout rejected", user_id=str(command.user_id), errors=errors)
            raise ValidationError({"cart": errors})

        totals = calculate_totals(lines, products, PricingPolicy.from_domain(current_domain))

        repo = current_domain.repository_for(Order)
        order_number = repo.next_order_number(str(current_domain.ORDER_NUMBER_PREFIX), datetime.now(UTC))

        order = Order.place(
            order_number=order_number,
            user_id=command.user_id,
            totals=totals,
            items=[_build_item(line, products[str(line.product_id)]) for line in lines],
            shipping_address=Address(**command.shipping_address),
            billing_address=Address(**command.billing_address) if command.billing_address else None,
            shipping_method=command.shipping_method,
            customer_email=command.customer_email,
            customer_phone=command.customer_phone,
            notes=command.notes,
        )
        repo.add(order)

        for line in lines:
            ledger.sell(line.product_id, line.quantity)

        cart_repo = current_domain.repository_for(CartItem)
        for line in lines:
            cart_repo.remove(line)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            user_id=str(command.user_id),
            total_amount=order.total_amount,
        )
        return str(order.id)
