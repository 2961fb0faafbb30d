from datetime import datetime

from protean.exceptions import ObjectNotFoundError

from marketplace.domain import marketplace
from marketplace.exceptions import NotFound
from marketplace.order.numbering import format_order_number, month_prefix, next_sequence
from marketplace.order.order import Order, OrderStatus, PaymentStatus


@marketplace.repository(part_of=Order)
class OrderRepository:
    def find_by_number(self, order_number: str) -> Order:
        try:
            return self.find_by(order_number=order_number)
        except ObjectNotFoundError as exc:
            raise NotFound(f"Order {order_number} does not exist") from exc

    def for_user(self, user_id) -> list[Order]:
        orders = self.query.filter(user_id=str(user_id)).limit(None).all().items
        return sorted(orders, key=lambda order: order.created_at, reverse=True)

    def next_order_number(self, prefix: str, now: datetime) -> str:
        numbers = [
            order.order_number
            for order in self.query.filter(order_number__startswith=month_prefix(prefix, now)).limit(None).all().items
        ]
        return format_order_number(prefix, now, next_sequence(numbers, prefix, now))

    def stats_for_user(self, user_id) -> dict:
        """Order counters shown on a customer's account page."""
        orders = self.for_user(user_id)
        paid = [order for order in orders if order.payment_status == PaymentStatus.PAID.value]
        total_spent = sum(order.total_amount for order in paid)

        return {
            "total_orders": len(orders),
            "pending_orders": sum(1 for order in orders if order.status == OrderStatus.PENDING.value),
            "delivered_orders": sum(1 for order in orders if order.status == OrderStatus.DELIVERED.value),
            "cancelled_orders": sum(1 for order in orders if order.status == OrderStatus.CANCELLED.value),
            "total_spent": total_spent,
            "average_order_value": round(total_spent / len(paid)) if paid else 0,
            "last_order_date": orders[0].created_at if orders else None,
        }
