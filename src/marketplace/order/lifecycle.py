"""Order status changes requested by customers, admins and the system.

Customers may only cancel their own orders. Admin and system actors may
apply any transition the state machine allows. Cancelling puts the stock of
every tracked item back, in the same unit of work as the status change; this
is the only place stock is restored.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.actor import ActorRole, is_privileged
from marketplace.domain import marketplace
from marketplace.exceptions import Unauthorized
from marketplace.inventory import ledger
from marketplace.order.order import Order, OrderStatus

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class TransitionOrder:
    order_id = Identifier(required=True)
    target_status = String(required=True, choices=OrderStatus)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, choices=ActorRole)
    tracking_number = String(max_length=100)
    reason = Text()
    admin_notes = Text()


def _authorize(order: Order, target: OrderStatus, actor_id: str, actor_role: str) -> None:
    if is_privileged(actor_role):
        return
    if target != OrderStatus.CANCELLED:
        raise Unauthorized(f"Customers cannot move orders to {target.value}")
    if str(order.user_id) != str(actor_id):
        raise Unauthorized(f"Actor {actor_id} cannot cancel order {order.order_number}")


@marketplace.command_handler(part_of=Order)
class OrderLifecycleHandler:
    @handle(TransitionOrder)
    def transition_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        target = OrderStatus(command.target_status)

        _authorize(order, target, command.actor_id, command.actor_role)

        previous = order.status
        order.transition(
            target,
            actor_id=command.actor_id,
            tracking_number=command.tracking_number,
            reason=command.reason,
            admin_notes=command.admin_notes if is_privileged(command.actor_role) else None,
        )
        repo.add(order)

        if target == OrderStatus.CANCELLED:
            for item in order.items:
                ledger.increment(item.product_id, item.quantity)

        logger.info(
            "Order status changed",
            order_id=str(order.id),
            order_number=order.order_number,
            previous_status=previous,
            new_status=order.status,
            actor_id=command.actor_id,
        )
        return order.status
