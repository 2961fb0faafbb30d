"""Order aggregate: a placed order and its status state machine.

State machine:
    pending → confirmed → processing → shipped → delivered
    pending, confirmed, processing → cancelled

delivered, cancelled and refunded are terminal. ``payment_status`` is a
separate axis driven by payment reconciliation only (``mark_paid``,
``mark_payment_failed``, ``mark_refunded``); a completed payment also
confirms a pending order.

Amounts are integers in the smallest currency unit and always satisfy
``total = subtotal + tax + shipping - discount``.
"""

from datetime import UTC, datetime
from enum import Enum

import structlog
from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Dict,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from marketplace.domain import marketplace
from marketplace.exceptions import IllegalTransition
from marketplace.order.events import OrderCancelled, OrderPlaced, OrderStatusChanged

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIAL = "partial"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
}

PAYABLE_STATES = {OrderStatus.PENDING, OrderStatus.CONFIRMED}


def allowed_transitions(status: OrderStatus) -> set[OrderStatus]:
    return set(_VALID_TRANSITIONS.get(status, set()))


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="Order")
class Address:
    """Shipping or billing address as it was given at checkout."""

    full_name = String(required=True, max_length=255)
    phone = String(max_length=30)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    region = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(max_length=2, default="GA")


@marketplace.value_object(part_of="Order")
class ProductSnapshot:
    """What the customer bought, frozen at checkout.

    ``schema_version`` is bumped whenever fields are added so older
    snapshots can still be read.
    """

    schema_version = Integer(default=1)
    name = String(required=True, max_length=255)
    description = Text()
    image = String(max_length=500)
    sku = String(max_length=50)
    category = String(max_length=100)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    product_sku = String(max_length=50)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)
    total_price = Integer(required=True, min_value=0)
    product_options = Dict()
    product_snapshot = ValueObject(ProductSnapshot)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Order:
    order_number = String(required=True, max_length=20, unique=True)
    user_id = Identifier(required=True)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    items = HasMany(OrderItem)
    subtotal = Integer(default=0)
    tax_amount = Integer(default=0)
    shipping_amount = Integer(default=0)
    discount_amount = Integer(default=0)
    total_amount = Integer(default=0)
    currency = String(max_length=3, default="XAF")
    shipping_address = ValueObject(Address)
    billing_address = ValueObject(Address)
    shipping_method = String(max_length=50)
    customer_email = String(max_length=255)
    customer_phone = String(max_length=30)
    notes = Text()
    admin_notes = Text()
    tracking_number = String(max_length=100)
    cancellation_reason = Text()
    last_actor = String(max_length=255)
    paid_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def total_must_match_components(self):
        expected = (
            (self.subtotal or 0) + (self.tax_amount or 0) + (self.shipping_amount or 0) - (self.discount_amount or 0)
        )
        if self.total_amount != expected:
            raise ValidationError({"total_amount": [f"Total {self.total_amount} does not match components {expected}"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        order_number,
        user_id,
        totals,
        items,
        shipping_address,
        billing_address=None,
        **details,
    ):
        """Create a pending order.

        Args:
            totals: ``CartTotals`` computed from the cart.
            items: ``OrderItem`` instances built from the cart lines.
            details: shipping_method, customer_email, customer_phone, notes.
        """
        now = datetime.now(UTC)
        order = cls(
            order_number=order_number,
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            items=items,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            shipping_amount=totals.shipping_amount,
            discount_amount=totals.discount_amount,
            total_amount=totals.total_amount,
            currency=totals.currency,
            shipping_address=shipping_address,
            billing_address=billing_address or shipping_address,
            last_actor=str(user_id),
            created_at=now,
            updated_at=now,
            **details,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                user_id=str(user_id),
                total_amount=order.total_amount,
                currency=order.currency,
                item_count=sum(item.quantity for item in items),
                customer_email=order.customer_email,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def can_transition_to(self, target: OrderStatus) -> bool:
        return target in _VALID_TRANSITIONS.get(OrderStatus(self.status), set())

    def _assert_can_transition(self, target: OrderStatus) -> None:
        if not self.can_transition_to(target):
            raise IllegalTransition("order", self.status, target.value)

    def transition(self, target: OrderStatus, actor_id, tracking_number=None, reason=None, admin_notes=None):
        """Move the order to ``target`` and stamp the matching timestamp.

        Stock restoration on cancellation is the caller's job; it must run
        in the same unit of work.
        """
        self._assert_can_transition(target)

        previous = self.status
        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = target.value
            self.last_actor = str(actor_id)
            self.updated_at = now
            if admin_notes:
                self.admin_notes = admin_notes

            if target == OrderStatus.SHIPPED:
                self.shipped_at = now
                if tracking_number:
                    self.tracking_number = tracking_number
            elif target == OrderStatus.DELIVERED:
                self.delivered_at = now
            elif target == OrderStatus.CANCELLED:
                self.cancelled_at = now
                self.cancellation_reason = reason

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                order_number=self.order_number,
                user_id=str(self.user_id),
                previous_status=previous,
                new_status=target.value,
                actor_id=str(actor_id),
                tracking_number=self.tracking_number,
                changed_at=now,
            )
        )
        if target == OrderStatus.CANCELLED:
            self.raise_(
                OrderCancelled(
                    order_id=str(self.id),
                    order_number=self.order_number,
                    user_id=str(self.user_id),
                    previous_status=previous,
                    reason=reason,
                    actor_id=str(actor_id),
                    cancelled_at=now,
                )
            )

    # -------------------------------------------------------------------
    # Payment side
    # -------------------------------------------------------------------
    @property
    def is_payable(self) -> bool:
        return OrderStatus(self.status) in PAYABLE_STATES and self.payment_status != PaymentStatus.PAID.value

    def mark_paid(self, paid_at=None, actor_id=None):
        """Record a completed payment; a pending order becomes confirmed.

        Returns False when the order could not take the payment (already
        paid or no longer open) so the caller can flag it for manual
        reconciliation. The payment itself is never rolled back.
        """
        if self.payment_status == PaymentStatus.PAID.value:
            logger.warning("Order already paid", order_id=str(self.id), order_number=self.order_number)
            return False

        now = paid_at or datetime.now(UTC)
        self.payment_status = PaymentStatus.PAID.value
        self.paid_at = now
        self.updated_at = datetime.now(UTC)
        if actor_id:
            self.last_actor = str(actor_id)

        if OrderStatus(self.status) == OrderStatus.CANCELLED:
            logger.warning(
                "Payment completed for a cancelled order",
                order_id=str(self.id),
                order_number=self.order_number,
            )
            return False

        if OrderStatus(self.status) == OrderStatus.PENDING:
            self.transition(OrderStatus.CONFIRMED, actor_id or "system")
        return True

    def mark_payment_failed(self):
        if self.payment_status == PaymentStatus.PAID.value:
            return
        self.payment_status = PaymentStatus.FAILED.value
        self.updated_at = datetime.now(UTC)

    def mark_refunded(self):
        self.payment_status = PaymentStatus.REFUNDED.value
        self.updated_at = datetime.now(UTC)
