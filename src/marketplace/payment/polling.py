"""Pending payment polling.

Meant to be triggered periodically (cron, the maintenance endpoint). Provider
payments that are still open after a few minutes, but younger than a day, are
re-checked with the provider. Each payment is checked in its own unit of work
so one failure does not hold back the others.
"""

from datetime import UTC, datetime, timedelta

import structlog
from protean.exceptions import ProteanException
from protean.utils.globals import current_domain

from marketplace.payment.payment import Payment
from marketplace.payment.reconciliation import PROCESSED, CheckPaymentStatus

logger = structlog.get_logger(__name__)


def poll_pending_payments(now: datetime | None = None) -> dict:
    now = now or datetime.now(UTC)
    if now.tzinfo is None:  # Naive times are read as UTC
        now = now.replace(tzinfo=UTC)
    min_age = timedelta(minutes=int(current_domain.PENDING_PAYMENT_MIN_AGE_MINUTES))
    max_age = timedelta(hours=int(current_domain.PENDING_PAYMENT_MAX_AGE_HOURS))

    payments = current_domain.repository_for(Payment).unsettled_ebilling_between(now - max_age, now - min_age)
    summary = {"checked": 0, "updated": 0, "errors": 0}

    for payment in payments:
        summary["checked"] += 1
        try:
            outcome = current_domain.process(CheckPaymentStatus(payment_id=str(payment.id)), asynchronous=False)
        except ProteanException as exc:
            summary["errors"] += 1
            logger.error(
                "Payment status poll failed",
                payment_id=str(payment.id),
                bill_id=payment.bill_id,
                error=str(exc),
            )
            continue
        if outcome == PROCESSED:
            summary["updated"] += 1

    logger.info("Pending payment poll complete", **summary)
    return summary
