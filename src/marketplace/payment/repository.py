from datetime import datetime

from protean.exceptions import ObjectNotFoundError

from marketplace.domain import marketplace
from marketplace.exceptions import NotFound
from marketplace.gateway.methods import PaymentProvider
from marketplace.payment.payment import Payment, PaymentStatus


@marketplace.repository(part_of=Payment)
class PaymentRepository:
    def find_by_bill_id(self, bill_id: str) -> Payment:
        try:
            return self.find_by(bill_id=bill_id)
        except ObjectNotFoundError as exc:
            raise NotFound(f"No payment for bill {bill_id}") from exc

    def for_order(self, order_id) -> list[Payment]:
        return self.query.filter(order_id=str(order_id)).limit(None).all().items

    def last_completed_for_user(self, user_id) -> Payment | None:
        completed = (
            self.query.filter(user_id=str(user_id), status=PaymentStatus.COMPLETED.value).limit(None).all().items
        )
        return max(completed, key=lambda payment: payment.paid_at, default=None)

    def unsettled_ebilling_between(self, oldest: datetime, newest: datetime) -> list[Payment]:
        """Pending or processing provider payments created in ``[oldest, newest]``."""
        pending = (
            self.query.filter(
                provider=PaymentProvider.EBILLING.value,
                status__in=[PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value],
            )
            .limit(None)
            .all()
            .items
        )
        return [payment for payment in pending if payment.bill_id and oldest <= payment.created_at <= newest]
