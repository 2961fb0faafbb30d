"""Cart line commands: add, change quantity, remove, clear.

Stock is checked against the cumulative quantity of the line, so adding the
same product twice cannot exceed what the catalogue can supply.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Dict, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.cart.cart import CartItem
from marketplace.catalogue.product import Product
from marketplace.domain import marketplace
from marketplace.exceptions import InsufficientStock, NotFound

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="CartItem")
class AddToCart:
    user_id = Identifier()
    session_id = String(max_length=255)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    options = Dict()


@marketplace.command(part_of="CartItem")
class UpdateCartItemQuantity:
    cart_item_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@marketplace.command(part_of="CartItem")
class RemoveCartItem:
    cart_item_id = Identifier(required=True)


@marketplace.command(part_of="CartItem")
class ClearCart:
    user_id = Identifier()
    session_id = String(max_length=255)


def _sellable_product(product_id) -> Product:
    product = current_domain.repository_for(Product).get_or_none(product_id)
    if product is None:
        raise NotFound(f"Product {product_id} does not exist")
    if not product.is_active:
        raise ValidationError({"product_id": [f"{product.name} is not available for purchase"]})
    return product


def _ensure_supply(product: Product, quantity: int) -> None:
    if not product.can_supply(quantity):
        raise InsufficientStock(str(product.id), quantity, product.stock_quantity or 0)


@marketplace.command_handler(part_of=CartItem)
class CartItemHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        if not command.user_id and not command.session_id:
            raise ValidationError({"owner": ["Either user_id or session_id is required"]})

        product = _sellable_product(command.product_id)
        repo = current_domain.repository_for(CartItem)
        owner = {"user_id": command.user_id} if command.user_id else {"session_id": command.session_id}

        line = repo.find_line(command.product_id, command.options, **owner)
        if line is not None:
            new_quantity = line.quantity + command.quantity
            _ensure_supply(product, new_quantity)
            line.change_quantity(new_quantity)
        else:
            _ensure_supply(product, command.quantity)
            line = CartItem.create(
                product_id=command.product_id,
                quantity=command.quantity,
                unit_price=product.price,
                options=command.options,
                **owner,
            )

        repo.add(line)
        logger.info(
            "Added to cart",
            cart_item_id=str(line.id),
            product_id=str(command.product_id),
            quantity=line.quantity,
        )
        return str(line.id)

    @handle(UpdateCartItemQuantity)
    def update_quantity(self, command):
        repo = current_domain.repository_for(CartItem)
        line = repo.get(command.cart_item_id)
        product = _sellable_product(line.product_id)
        _ensure_supply(product, command.quantity)

        line.change_quantity(command.quantity)
        repo.add(line)

    @handle(RemoveCartItem)
    def remove_item(self, command):
        repo = current_domain.repository_for(CartItem)
        repo.remove(repo.get(command.cart_item_id))

    @handle(ClearCart)
    def clear_cart(self, command):
        repo = current_domain.repository_for(CartItem)
        items = repo.for_owner(user_id=command.user_id, session_id=command.session_id)
        for item in items:
            repo.remove(item)
        return len(items)
