"""Product aggregate: the catalogue surface the commerce core relies on.

Products are owned by the catalogue subsystem; the core reads price, status
and stock for carts and writes stock and sales counters through the stock
ledger. Only the attributes the core needs are modelled here.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from marketplace.domain import marketplace
from marketplace.exceptions import OutOfStock


class ProductStatus(Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"


@marketplace.aggregate
class Product:
    """Sellable product with inventory counters."""

    store_id: Identifier()
    name: String(required=True, max_length=255)
    sku: String(required=True, max_length=50, unique=True)
    description: Text()
    image: String(max_length=500)
    category: String(max_length=100)
    price: Integer(required=True, min_value=0)
    currency: String(max_length=3, default="XAF")
    stock_quantity: Integer(default=0)
    track_inventory: Boolean(default=True)
    allow_backorder: Boolean(default=False)
    status: String(choices=ProductStatus, default=ProductStatus.ACTIVE.value)
    weight: Float(default=0.0, min_value=0.0)  # kilograms
    sales_count: Integer(default=0, min_value=0)
    created_at: DateTime()
    updated_at: DateTime()

    @invariant.post
    def stock_cannot_go_negative_without_backorder(self):
        if self.track_inventory and not self.allow_backorder and (self.stock_quantity or 0) < 0:
            raise ValidationError({"stock_quantity": ["Stock cannot be negative for tracked products"]})

    @classmethod
    def register(cls, **attributes):
        now = datetime.now(UTC)
        return cls(created_at=now, updated_at=now, **attributes)

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE.value

    def can_supply(self, quantity: int) -> bool:
        """True when ``quantity`` units can be sold right now."""
        if not self.track_inventory or self.allow_backorder:
            return True
        return (self.stock_quantity or 0) >= quantity

    def decrement_stock(self, quantity: int) -> None:
        if not self.track_inventory:
            return
        if not self.can_supply(quantity):
            raise OutOfStock(str(self.id), quantity, self.stock_quantity or 0)
        self.stock_quantity = (self.stock_quantity or 0) - quantity
        self.updated_at = datetime.now(UTC)

    def increment_stock(self, quantity: int) -> None:
        if not self.track_inventory:
            return
        self.stock_quantity = (self.stock_quantity or 0) + quantity
        self.updated_at = datetime.now(UTC)

    def record_sale(self, quantity: int) -> None:
        self.sales_count = (self.sales_count or 0) + quantity

    def change_price(self, price: int) -> None:
        if price < 0:
            raise ValidationError({"price": ["Price cannot be negative"]})
        self.price = price
        self.updated_at = datetime.now(UTC)

    def change_status(self, status: ProductStatus) -> None:
        self.status = status.value
        self.updated_at = datetime.now(UTC)
