"""Payment reconciliation: applying what we learn about a payment.

Three sources can settle a payment: the provider's signed callback, a status
poll, and an admin confirming an offline payment. All of them go through
``settle_payment`` so they share one idempotency guard: a payment already in a
terminal status is acknowledged as ``already_processed`` and nothing else
changes. Two overlapping callbacks for the same bill conflict on the payment
version at commit; the retried one then sees the terminal status.

A completed payment marks its order paid (confirming a pending order) or
activates its pending subscription, in the same unit of work.
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Dict, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.actor import SYSTEM_ACTOR, ActorRole, require_owner_or_privileged, require_privileged
from marketplace.domain import marketplace
from marketplace.exceptions import IllegalTransition, SignatureMismatch
from marketplace.gateway import get_gateway
from marketplace.order.order import Order
from marketplace.payment.payment import Payment, PaymentStatus
from marketplace.payment.status_map import map_provider_status
from marketplace.subscription.lifecycle import retire_current_subscription
from marketplace.subscription.subscription import Subscription, SubscriptionStatus

logger = structlog.get_logger(__name__)

PROCESSED = "processed"
ALREADY_PROCESSED = "already_processed"
IGNORED = "ignored"

REQUIRED_CALLBACK_FIELDS = ("bill_id", "status", "amount")


def _parse_paid_at(value) -> datetime | None:
    if not value:
        return None
    try:
        paid_at = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return paid_at if paid_at.tzinfo else paid_at.replace(tzinfo=UTC)


def _on_completed(payment: Payment, actor_id: str) -> None:
    if payment.order_id:
        repo = current_domain.repository_for(Order)
        order = repo.get(payment.order_id)
        if not order.mark_paid(paid_at=payment.paid_at, actor_id=actor_id):
            logger.warning(
                "Payment needs manual reconciliation",
                payment_id=str(payment.id),
                reference=payment.reference,
                order_id=str(order.id),
                order_status=order.status,
            )
        repo.add(order)

    if payment.subscription_id:
        repo = current_domain.repository_for(Subscription)
        subscription = repo.get(payment.subscription_id)
        if subscription.status == SubscriptionStatus.PENDING.value:
            retire_current_subscription(subscription.user_id, actor_id, keep_id=subscription.id)
            subscription.activate()
            repo.add(subscription)


def _on_failed(payment: Payment) -> None:
    if payment.order_id:
        repo = current_domain.repository_for(Order)
        order = repo.get(payment.order_id)
        order.mark_payment_failed()
        repo.add(order)


def settle_payment(
    payment: Payment,
    target: PaymentStatus | None,
    transaction_id=None,
    paid_at=None,
    failure_reason=None,
    response: dict | None = None,
    actor_id: str = SYSTEM_ACTOR,
) -> str:
    """Apply ``target`` to ``payment`` and its order or subscription.

    Returns ``already_processed`` for terminal payments, ``ignored`` when
    the provider status carries no news, ``processed`` otherwise.
    """
    if payment.is_terminal:
        logger.info(
            "Payment already settled",
            payment_id=str(payment.id),
            reference=payment.reference,
            status=payment.status,
        )
        return ALREADY_PROCESSED

    if target is None or target.value == payment.status or target == PaymentStatus.PENDING:
        payment.record_gateway_response(response)
        current_domain.repository_for(Payment).add(payment)
        return IGNORED

    payment.record_gateway_response(response)
    if target == PaymentStatus.COMPLETED:
        payment.complete(transaction_id=transaction_id, paid_at=paid_at)
        _on_completed(payment, actor_id)
    elif target == PaymentStatus.FAILED:
        payment.fail(failure_reason or "Payment failed")
        _on_failed(payment)
    elif target == PaymentStatus.PROCESSING:
        payment.start_processing()
    else:
        raise IllegalTransition("payment", payment.status, target.value)

    current_domain.repository_for(Payment).add(payment)
    logger.info(
        "Payment settled",
        payment_id=str(payment.id),
        reference=payment.reference,
        bill_id=payment.bill_id,
        status=payment.status,
        actor_id=actor_id,
    )
    return PROCESSED


def validate_callback_payload(payload: dict) -> None:
    missing = [field for field in REQUIRED_CALLBACK_FIELDS if payload.get(field) in (None, "")]
    if missing:
        raise ValidationError({field: ["This field is required"] for field in missing})

    try:
        amount = float(payload["amount"])
    except (TypeError, ValueError) as exc:
        raise ValidationError({"amount": ["Amount must be a number"]}) from exc
    if amount <= 0:
        raise ValidationError({"amount": ["Amount must be positive"]})


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@marketplace.command(part_of="Payment")
class ApplyGatewayCallback:
    """A callback received from the e-billing provider, as sent."""

    callback = Dict(required=True)


@marketplace.command(part_of="Payment")
class CheckPaymentStatus:
    payment_id = Identifier(required=True)


@marketplace.command(part_of="Payment")
class ConfirmPayment:
    payment_id = Identifier(required=True)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, choices=ActorRole)
    notes = Text()
    transaction_id = String(max_length=255)


@marketplace.command(part_of="Payment")
class CancelPayment:
    payment_id = Identifier(required=True)
    reason = Text()
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, choices=ActorRole)


@marketplace.command(part_of="Payment")
class MarkPaymentRefunded:
    payment_id = Identifier(required=True)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, choices=ActorRole)


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------
@marketplace.command_handler(part_of=Payment)
class PaymentReconciliationHandler:
    @handle(ApplyGatewayCallback)
    def apply_callback(self, command):
        payload = dict(command.callback)
        validate_callback_payload(payload)

        if not get_gateway().verify_callback_signature(payload):
            raise SignatureMismatch(payload.get("bill_id"))

        payment = current_domain.repository_for(Payment).find_by_bill_id(payload["bill_id"])

        if float(payload["amount"]) != float(payment.amount):
            logger.warning(
                "Callback amount differs from payment amount",
                payment_id=str(payment.id),
                bill_id=payment.bill_id,
                callback_amount=payload["amount"],
                payment_amount=payment.amount,
            )

        return settle_payment(
            payment,
            map_provider_status(payload["status"]),
            transaction_id=payload.get("transaction_ref") or payload.get("transaction_id"),
            paid_at=_parse_paid_at(payload.get("paid_at")),
            failure_reason=payload.get("failure_reason") or f"Provider reported {payload['status']}",
            response={"callback": {key: value for key, value in payload.items() if key != "signature"}},
        )

    @handle(CheckPaymentStatus)
    def check_status(self, command):
        payment = current_domain.repository_for(Payment).get(command.payment_id)
        if payment.is_terminal:
            return ALREADY_PROCESSED
        if not payment.bill_id:
            return IGNORED

        result = get_gateway().check_status(payment.bill_id)
        if not result.success:
            logger.warning(
                "Status check failed",
                payment_id=str(payment.id),
                bill_id=payment.bill_id,
                error=result.error,
            )
            return IGNORED

        return settle_payment(
            payment,
            map_provider_status(result.status),
            transaction_id=result.transaction_ref,
            paid_at=_parse_paid_at(result.paid_at),
            failure_reason=f"Provider reported {result.status}",
            response={"status_check": (result.response or {}).get("data", {})},
        )

    @handle(ConfirmPayment)
    def confirm_payment(self, command):
        require_privileged(command.actor_id, command.actor_role, "confirm payments")

        payment = current_domain.repository_for(Payment).get(command.payment_id)
        if payment.is_terminal:
            return ALREADY_PROCESSED

        payment.confirm_manually(command.actor_id, notes=command.notes, transaction_id=command.transaction_id)
        _on_completed(payment, command.actor_id)
        current_domain.repository_for(Payment).add(payment)

        logger.info(
            "Payment confirmed manually",
            payment_id=str(payment.id),
            reference=payment.reference,
            confirmed_by=command.actor_id,
        )
        return PROCESSED

    @handle(CancelPayment)
    def cancel_payment(self, command):
        repo = current_domain.repository_for(Payment)
        payment = repo.get(command.payment_id)
        require_owner_or_privileged(payment.user_id, command.actor_id, command.actor_role, "cancel this payment")

        payment.cancel(command.reason, command.actor_id)
        repo.add(payment)

        logger.info(
            "Payment cancelled",
            payment_id=str(payment.id),
            reference=payment.reference,
            cancelled_by=command.actor_id,
        )
        return payment.status

    @handle(MarkPaymentRefunded)
    def mark_refunded(self, command):
        require_privileged(command.actor_id, command.actor_role, "refund payments")

        repo = current_domain.repository_for(Payment)
        payment = repo.get(command.payment_id)
        payment.refund()
        repo.add(payment)

        if payment.order_id:
            order_repo = current_domain.repository_for(Order)
            order = order_repo.get(payment.order_id)
            order.mark_refunded()
            order_repo.add(order)

        logger.info("Payment refunded", payment_id=str(payment.id), reference=payment.reference)
        return payment.status
