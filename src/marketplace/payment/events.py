"""Domain events raised by the Payment aggregate."""

from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text

from marketplace.domain import marketplace


@marketplace.event(part_of="Payment")
class PaymentInitiated:
    __version__ = 1

    payment_id = Identifier(required=True)
    reference = String(required=True)
    order_id = Identifier()
    subscription_id = Identifier()
    user_id = Identifier(required=True)
    amount = Integer(required=True)
    currency = String(required=True)
    method = String(required=True)
    provider = String(required=True)
    bill_id = String()
    initiated_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentCompleted:
    """Money was received, from a provider callback, a status poll or an admin."""

    __version__ = 1

    payment_id = Identifier(required=True)
    reference = String(required=True)
    order_id = Identifier()
    subscription_id = Identifier()
    user_id = Identifier(required=True)
    amount = Integer(required=True)
    currency = String(required=True)
    method = String(required=True)
    transaction_id = String()
    manual = Boolean(default=False)
    paid_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentFailed:
    __version__ = 1

    payment_id = Identifier(required=True)
    reference = String(required=True)
    order_id = Identifier()
    subscription_id = Identifier()
    user_id = Identifier(required=True)
    reason = Text()
    failed_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentCancelled:
    __version__ = 1

    payment_id = Identifier(required=True)
    reference = String(required=True)
    user_id = Identifier(required=True)
    reason = Text()
    cancelled_by = String()
    cancelled_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentRefunded:
    __version__ = 1

    payment_id = Identifier(required=True)
    reference = String(required=True)
    order_id = Identifier()
    user_id = Identifier(required=True)
    amount = Integer(required=True)
    refunded_at = DateTime(required=True)
