"""Payment aggregate: one attempt to collect money for an order or a subscription.

State machine:
    pending → processing → completed → refunded
    pending, processing → failed | cancelled

completed, failed, cancelled and refunded are terminal for reconciliation:
once a payment reaches one of them, further callbacks, status polls and
manual confirmations are acknowledged without side effects.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Dict, Identifier, Integer, String, Text, ValueObject

from marketplace.domain import marketplace
from marketplace.exceptions import IllegalTransition
from marketplace.gateway.methods import PaymentMethod, PaymentProvider
from marketplace.payment.events import (
    PaymentCancelled,
    PaymentCompleted,
    PaymentFailed,
    PaymentInitiated,
    PaymentRefunded,
)


class PaymentStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


_VALID_TRANSITIONS = {
    PaymentStatus.PENDING: {
        PaymentStatus.PROCESSING,
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.PROCESSING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.CANCELLED: set(),
    PaymentStatus.REFUNDED: set(),
}

TERMINAL_STATUSES = {
    PaymentStatus.COMPLETED,
    PaymentStatus.FAILED,
    PaymentStatus.CANCELLED,
    PaymentStatus.REFUNDED,
}


@marketplace.value_object(part_of="Payment")
class PayerInfo:
    name = String(required=True, max_length=255)
    email = String(max_length=255)
    phone = String(max_length=30)


@marketplace.value_object(part_of="Payment")
class ManualConfirmation:
    """Who confirmed an offline payment, and when."""

    confirmed_by = String(required=True, max_length=255)
    confirmed_at = DateTime(required=True)
    notes = Text()


@marketplace.aggregate
class Payment:
    reference = String(required=True, max_length=30, unique=True)  # PAY-YYYYMMDD-XXXXXXXX
    order_id = Identifier()
    subscription_id = Identifier()
    user_id = Identifier(required=True)
    bill_id = String(max_length=100)
    external_reference = String(max_length=255)
    transaction_id = String(max_length=255)
    amount = Integer(required=True, min_value=1)
    currency = String(max_length=3, default="XAF")
    method = String(required=True, choices=PaymentMethod)
    provider = String(required=True, choices=PaymentProvider)
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    payer = ValueObject(PayerInfo)
    gateway_response = Dict()
    payment_url = String(max_length=500)
    paid_at = DateTime()
    failed_at = DateTime()
    failure_reason = Text()
    manual_confirmation = ValueObject(ManualConfirmation)
    cancelled_by = String(max_length=255)
    cancellation_reason = Text()
    cancelled_at = DateTime()
    refunded_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def payment_must_have_a_purpose(self):
        if not self.order_id and not self.subscription_id:
            raise ValidationError({"payment": ["A payment must be for an order or a subscription"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def initiate(cls, reference, user_id, amount, currency, method, provider, payer, **attributes):
        now = datetime.now(UTC)
        payment = cls(
            reference=reference,
            user_id=user_id,
            amount=amount,
            currency=currency,
            method=method.value,
            provider=provider.value,
            payer=payer,
            status=PaymentStatus.PENDING.value,
            created_at=now,
            updated_at=now,
            **attributes,
        )
        payment.raise_(
            PaymentInitiated(
                payment_id=str(payment.id),
                reference=reference,
                order_id=payment.order_id,
                subscription_id=payment.subscription_id,
                user_id=str(user_id),
                amount=amount,
                currency=currency,
                method=method.value,
                provider=provider.value,
                bill_id=payment.bill_id,
                initiated_at=now,
            )
        )
        return payment

    # -------------------------------------------------------------------
    # State helpers
    # -------------------------------------------------------------------
    @property
    def is_terminal(self) -> bool:
        return PaymentStatus(self.status) in TERMINAL_STATUSES

    def _assert_can_transition(self, target: PaymentStatus) -> None:
        if target not in _VALID_TRANSITIONS.get(PaymentStatus(self.status), set()):
            raise IllegalTransition("payment", self.status, target.value)

    def record_gateway_response(self, data: dict | None) -> None:
        """Merge provider data into the stored response, newest keys winning."""
        if data:
            self.gateway_response = {**(self.gateway_response or {}), **data}

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def start_processing(self) -> None:
        self._assert_can_transition(PaymentStatus.PROCESSING)
        self.status = PaymentStatus.PROCESSING.value
        self.updated_at = datetime.now(UTC)

    def complete(self, transaction_id=None, paid_at=None, manual=False) -> None:
        self._assert_can_transition(PaymentStatus.COMPLETED)

        now = datetime.now(UTC)
        self.status = PaymentStatus.COMPLETED.value
        self.paid_at = paid_at or now
        if transaction_id:
            self.transaction_id = transaction_id
        self.updated_at = now

        self.raise_(
            PaymentCompleted(
                payment_id=str(self.id),
                reference=self.reference,
                order_id=self.order_id,
                subscription_id=self.subscription_id,
                user_id=str(self.user_id),
                amount=self.amount,
                currency=self.currency,
                method=self.method,
                transaction_id=self.transaction_id,
                manual=manual,
                paid_at=self.paid_at,
            )
        )

    def confirm_manually(self, actor_id, notes=None, transaction_id=None) -> None:
        now = datetime.now(UTC)
        self.manual_confirmation = ManualConfirmation(confirmed_by=str(actor_id), confirmed_at=now, notes=notes)
        self.complete(transaction_id=transaction_id, paid_at=now, manual=True)

    def fail(self, reason: str) -> None:
        self._assert_can_transition(PaymentStatus.FAILED)

        now = datetime.now(UTC)
        self.status = PaymentStatus.FAILED.value
        self.failed_at = now
        self.failure_reason = reason
        self.updated_at = now

        self.raise_(
            PaymentFailed(
                payment_id=str(self.id),
                reference=self.reference,
                order_id=self.order_id,
                subscription_id=self.subscription_id,
                user_id=str(self.user_id),
                reason=reason,
                failed_at=now,
            )
        )

    def cancel(self, reason: str | None, actor_id) -> None:
        self._assert_can_transition(PaymentStatus.CANCELLED)

        now = datetime.now(UTC)
        self.status = PaymentStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_by = str(actor_id)
        self.cancelled_at = now
        self.updated_at = now

        self.raise_(
            PaymentCancelled(
                payment_id=str(self.id),
                reference=self.reference,
                user_id=str(self.user_id),
                reason=reason,
                cancelled_by=str(actor_id),
                cancelled_at=now,
            )
        )

    def refund(self) -> None:
        self._assert_can_transition(PaymentStatus.REFUNDED)

        now = datetime.now(UTC)
        self.status = PaymentStatus.REFUNDED.value
        self.refunded_at = now
        self.updated_at = now

        self.raise_(
            PaymentRefunded(
                payment_id=str(self.id),
                reference=self.reference,
                order_id=self.order_id,
                user_id=str(self.user_id),
                amount=self.amount,
                refunded_at=now,
            )
        )
