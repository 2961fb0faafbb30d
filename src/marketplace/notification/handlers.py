"""Event handlers that notify customers about orders, payments and subscriptions.

Notifications are fire-and-forget: a failing notifier is logged and never
retried, and it never undoes the change that triggered it.
"""

import structlog
from protean.utils.mixins import handle

from marketplace.domain import marketplace
from marketplace.notification.port import get_notifier
from marketplace.order.events import OrderCancelled, OrderPlaced, OrderStatusChanged
from marketplace.order.order import Order, OrderStatus
from marketplace.payment.events import PaymentCompleted, PaymentFailed
from marketplace.payment.payment import Payment
from marketplace.subscription.events import SubscriptionActivated, SubscriptionExpired
from marketplace.subscription.subscription import Subscription

logger = structlog.get_logger(__name__)


def send(user_id, template: str, **context) -> None:
    try:
        get_notifier().notify(str(user_id), template, context)
    except Exception as exc:  # noqa: BLE001
        logger.error("Notification failed", user_id=str(user_id), template=template, error=str(exc))


@marketplace.event_handler(part_of=Order)
class OrderNotificationsHandler:
    @handle(OrderPlaced)
    def on_order_placed(self, event: OrderPlaced) -> None:
        send(
            event.user_id,
            "order_placed",
            order_number=event.order_number,
            total_amount=event.total_amount,
            currency=event.currency,
        )

    @handle(OrderStatusChanged)
    def on_status_changed(self, event: OrderStatusChanged) -> None:
        if event.new_status not in (OrderStatus.SHIPPED.value, OrderStatus.DELIVERED.value):
            return
        send(
            event.user_id,
            f"order_{event.new_status}",
            order_number=event.order_number,
            tracking_number=event.tracking_number,
        )

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        send(event.user_id, "order_cancelled", order_number=event.order_number, reason=event.reason)


@marketplace.event_handler(part_of=Payment)
class PaymentNotificationsHandler:
    @handle(PaymentCompleted)
    def on_payment_completed(self, event: PaymentCompleted) -> None:
        send(
            event.user_id,
            "payment_receipt",
            reference=event.reference,
            amount=event.amount,
            currency=event.currency,
            order_id=str(event.order_id) if event.order_id else None,
        )

    @handle(PaymentFailed)
    def on_payment_failed(self, event: PaymentFailed) -> None:
        send(event.user_id, "payment_failed", reference=event.reference, reason=event.reason)


@marketplace.event_handler(part_of=Subscription)
class SubscriptionNotificationsHandler:
    @handle(SubscriptionActivated)
    def on_activated(self, event: SubscriptionActivated) -> None:
        send(event.user_id, "subscription_activated", reference=event.reference, ends_at=event.ends_at.isoformat())

    @handle(SubscriptionExpired)
    def on_expired(self, event: SubscriptionExpired) -> None:
        send(
            event.user_id,
            "subscription_expired",
            reference=event.reference,
            auto_renewal_failed=event.auto_renewal_failed,
        )
