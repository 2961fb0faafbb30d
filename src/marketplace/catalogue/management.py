"""Catalogue commands used by the core: registering products and editing
the attributes carts and checkout depend on (price, status, stock)."""

from protean import handle
from protean.fields import Boolean, Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.catalogue.product import Product, ProductStatus
from marketplace.domain import marketplace


@marketplace.command(part_of="Product")
class RegisterProduct:
    store_id = Identifier()
    name = String(required=True, max_length=255)
    sku = String(required=True, max_length=50)
    description = Text()
    image = String(max_length=500)
    category = String(max_length=100)
    price = Integer(required=True, min_value=0)
    currency = String(max_length=3)
    stock_quantity = Integer(default=0)
    track_inventory = Boolean(default=True)
    allow_backorder = Boolean(default=False)
    weight = Float(default=0.0)


@marketplace.command(part_of="Product")
class ChangeProductPrice:
    product_id = Identifier(required=True)
    price = Integer(required=True, min_value=0)


@marketplace.command(part_of="Product")
class ChangeProductStatus:
    product_id = Identifier(required=True)
    status = String(required=True, choices=ProductStatus)


@marketplace.command_handler(part_of=Product)
class ProductManagementHandler:
    @handle(RegisterProduct)
    def register_product(self, command):
        product = Product.register(
            store_id=command.store_id,
            name=command.name,
            sku=command.sku,
            description=command.description,
            image=command.image,
            category=command.category,
            price=command.price,
            currency=command.currency or current_domain.CURRENCY,
            stock_quantity=command.stock_quantity,
            track_inventory=command.track_inventory,
            allow_backorder=command.allow_backorder,
            weight=command.weight,
        )
        current_domain.repository_for(Product).add(product)
        return str(product.id)

    @handle(ChangeProductPrice)
    def change_price(self, command):
        repo = current_domain.repository_for(Product)
        product = repo.get(command.product_id)
        product.change_price(command.price)
        repo.add(product)

    @handle(ChangeProductStatus)
    def change_status(self, command):
        repo = current_domain.repository_for(Product)
        product = repo.get(command.product_id)
        product.change_status(ProductStatus(command.status))
        repo.add(product)
