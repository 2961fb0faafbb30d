"""Payment initiation: command and handler.

Provider-backed methods (mobile money, cards) get a bill from the e-billing
gateway before anything is stored: if the provider cannot issue the bill,
``GatewayError`` is raised and no payment exists. Mobile-money payments also
trigger a USSD push on the payer's phone. Bank transfers and cash are
recorded as pending manual payments awaiting an admin confirmation.
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.actor import ActorRole, require_owner_or_privileged
from marketplace.domain import marketplace
from marketplace.exceptions import GatewayError
from marketplace.gateway import get_gateway
from marketplace.gateway.methods import PaymentMethod, PaymentProvider, config_for, validate_phone_for_method
from marketplace.gateway.port import BillRequest
from marketplace.order.order import Order
from marketplace.payment.payment import Payment, PayerInfo
from marketplace.subscription.subscription import Subscription, SubscriptionStatus
from marketplace.utils.references import generate_reference

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Payment")
class InitiatePayment:
    """Start paying for an order or a subscription."""

    order_id = Identifier()
    subscription_id = Identifier()
    method = String(required=True, choices=PaymentMethod)
    payer_name = String(max_length=255)
    payer_email = String(max_length=255)
    payer_phone = String(max_length=30)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, choices=ActorRole)


def validate_payer(method: PaymentMethod, payer: PayerInfo | None) -> None:
    errors = {}
    if payer is None or not payer.name:
        errors["payer_name"] = ["Payer name is required"]
    if payer is None or not payer.phone:
        errors["payer_phone"] = ["Payer phone is required"]
    elif not validate_phone_for_method(payer.phone, method):
        config = config_for(method)
        errors["payer_phone"] = [
            f"{config.display_name} numbers start with {config.phone_prefix} and have {config.phone_length} digits"
        ]
    if errors:
        raise ValidationError(errors)


def start_payment(
    user_id,
    amount: int,
    currency: str,
    description: str,
    method: PaymentMethod,
    payer: PayerInfo,
    metadata: dict,
    order_id=None,
    subscription_id=None,
) -> Payment:
    """Create a payment (and its provider bill) inside the current unit of work."""
    validate_payer(method, payer)
    config = config_for(method)
    now = datetime.now(UTC)
    reference = generate_reference(str(current_domain.PAYMENT_ID_PREFIX), now)

    attributes = {"order_id": order_id, "subscription_id": subscription_id}
    if config.provider == PaymentProvider.EBILLING:
        gateway = get_gateway()
        bill = gateway.create_bill(
            BillRequest(
                amount=amount,
                currency=currency,
                description=description,
                payment_method=method.value,
                payer_name=payer.name,
                payer_phone=payer.phone,
                payer_email=payer.email,
                metadata={**metadata, "payment_reference": reference},
            )
        )
        if not bill.success:
            logger.error(
                "Bill creation failed",
                reference=reference,
                order_id=str(order_id) if order_id else None,
                subscription_id=str(subscription_id) if subscription_id else None,
                error=bill.error,
            )
            raise GatewayError(bill.error or "Bill creation failed", reference=reference)

        attributes.update(
            bill_id=bill.bill_id,
            external_reference=bill.external_reference,
            payment_url=bill.payment_url,
            gateway_response=bill.response or {},
        )

    payment = Payment.initiate(
        reference=reference,
        user_id=user_id,
        amount=amount,
        currency=currency,
        method=method,
        provider=config.provider,
        payer=payer,
        **attributes,
    )

    if config.is_mobile_money:
        push = get_gateway().send_ussd_push(payment.bill_id, payer.phone, method.value)
        if push.success:
            payment.start_processing()
        else:
            logger.warning("USSD push not sent", reference=reference, bill_id=payment.bill_id, error=push.error)

    current_domain.repository_for(Payment).add(payment)
    logger.info(
        "Payment initiated",
        payment_id=str(payment.id),
        reference=reference,
        method=method.value,
        amount=amount,
        bill_id=payment.bill_id,
        status=payment.status,
    )
    return payment


@marketplace.command_handler(part_of=Payment)
class InitiatePaymentHandler:
    @handle(InitiatePayment)
    def initiate_payment(self, command):
        if bool(command.order_id) == bool(command.subscription_id):
            raise ValidationError({"payment": ["Pay for exactly one order or one subscription"]})

        method = PaymentMethod(command.method)
        payer = None
        if command.payer_name:
            payer = PayerInfo(name=command.payer_name, email=command.payer_email, phone=command.payer_phone)

        if command.order_id:
            order = current_domain.repository_for(Order).get(command.order_id)
            require_owner_or_privileged(order.user_id, command.actor_id, command.actor_role, "pay this order")
            if not order.is_payable:
                raise ValidationError({"order_id": [f"Order {order.order_number} cannot be paid"]})

            payment = start_payment(
                user_id=order.user_id,
                amount=order.total_amount,
                currency=order.currency,
                description=f"Order #{order.order_number}",
                method=method,
                payer=payer,
                metadata={
                    "order_id": str(order.id),
                    "order_number": order.order_number,
                    "customer_id": str(order.user_id),
                },
                order_id=str(order.id),
            )
        else:
            subscription = current_domain.repository_for(Subscription).get(command.subscription_id)
            require_owner_or_privileged(
                subscription.user_id, command.actor_id, command.actor_role, "pay this subscription"
            )
            if subscription.status != SubscriptionStatus.PENDING.value:
                raise ValidationError(
                    {"subscription_id": [f"Subscription {subscription.reference} is not awaiting payment"]}
                )

            payment = start_payment(
                user_id=subscription.user_id,
                amount=subscription.amount,
                currency=subscription.currency,
                description=f"Subscription {subscription.reference}",
                method=method,
                payer=payer,
                metadata={
                    "subscription_id": str(subscription.id),
                    "subscription_reference": subscription.reference,
                    "customer_id": str(subscription.user_id),
                },
                subscription_id=str(subscription.id),
            )

        return str(payment.id)
