"""Subscription expiry sweep and auto-renewal.

``process_expiring_subscriptions`` is meant to be triggered daily. It first
tries to renew active auto-renew subscriptions whose period ends within the
renewal window, then expires every active subscription already past its end.
Each subscription is handled by its own command, so each one commits or fails
on its own.
"""

from datetime import UTC, datetime, timedelta

import structlog
from protean import handle
from protean.exceptions import ProteanException, ValidationError
from protean.fields import Boolean, DateTime, Identifier
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.exceptions import GatewayError
from marketplace.gateway.methods import PaymentMethod
from marketplace.payment.initiation import start_payment
from marketplace.payment.payment import Payment
from marketplace.subscription.lifecycle import plan_for_renewal
from marketplace.subscription.subscription import Subscription, SubscriptionStatus

logger = structlog.get_logger(__name__)

RENEWED = "renewed"
EXPIRED = "expired"
SKIPPED = "skipped"


@marketplace.command(part_of="Subscription")
class AttemptAutoRenewal:
    subscription_id = Identifier(required=True)


@marketplace.command(part_of="Subscription")
class ExpireSubscription:
    subscription_id = Identifier(required=True)
    auto_renewal_failed = Boolean(default=False)
    as_of = DateTime()  # Optional: defaults to now


def _charge_renewal(subscription: Subscription, plan) -> Payment | None:
    """Bill the next period with the payer details of the user's last payment."""
    last_payment = current_domain.repository_for(Payment).last_completed_for_user(subscription.user_id)
    if last_payment is None:
        logger.info("No previous payment to renew with", subscription_id=str(subscription.id))
        return None

    try:
        return start_payment(
            user_id=subscription.user_id,
            amount=plan.final_price(),
            currency=subscription.currency,
            description=f"Renewal of subscription {subscription.reference}",
            method=PaymentMethod(last_payment.method),
            payer=last_payment.payer,
            metadata={
                "subscription_id": str(subscription.id),
                "subscription_reference": subscription.reference,
                "renewal": True,
            },
            subscription_id=str(subscription.id),
        )
    except (GatewayError, ValidationError) as exc:
        logger.warning(
            "Renewal payment could not be started",
            subscription_id=str(subscription.id),
            error=str(exc),
        )
        return None


@marketplace.command_handler(part_of=Subscription)
class SubscriptionExpiryHandler:
    @handle(AttemptAutoRenewal)
    def attempt_auto_renewal(self, command):
        repo = current_domain.repository_for(Subscription)
        subscription = repo.get(command.subscription_id)
        if subscription.status != SubscriptionStatus.ACTIVE.value or not subscription.auto_renew:
            return SKIPPED

        plan = plan_for_renewal(subscription)
        payment = _charge_renewal(subscription, plan)
        if payment is None:
            subscription.expire(auto_renewal_failed=True)
            repo.add(subscription)
            logger.info("Auto-renewal failed, subscription expired", subscription_id=str(subscription.id))
            return EXPIRED

        subscription.renew(plan)
        repo.add(subscription)
        logger.info(
            "Subscription auto-renewed",
            subscription_id=str(subscription.id),
            payment_id=str(payment.id),
            ends_at=subscription.ends_at.isoformat(),
        )
        return RENEWED

    @handle(ExpireSubscription)
    def expire_subscription(self, command):
        repo = current_domain.repository_for(Subscription)
        subscription = repo.get(command.subscription_id)
        if subscription.status != SubscriptionStatus.ACTIVE.value:
            return SKIPPED

        subscription.expire(auto_renewal_failed=command.auto_renewal_failed, now=command.as_of)
        repo.add(subscription)
        logger.info("Subscription expired", subscription_id=str(subscription.id), reference=subscription.reference)
        return EXPIRED


def process_expiring_subscriptions(now: datetime | None = None) -> dict:
    now = now or datetime.now(UTC)
    if now.tzinfo is None:  # Naive times are read as UTC
        now = now.replace(tzinfo=UTC)
    window = timedelta(hours=int(current_domain.RENEWAL_WINDOW_HOURS))
    repo = current_domain.repository_for(Subscription)
    summary = {"processed": 0, "renewed": 0, "expired": 0, "errors": 0}

    for subscription in repo.active_with_auto_renew_ending_between(now, now + window):
        summary["processed"] += 1
        try:
            outcome = current_domain.process(
                AttemptAutoRenewal(subscription_id=str(subscription.id)),
                asynchronous=False,
            )
        except ProteanException as exc:
            summary["errors"] += 1
            logger.error("Auto-renewal errored", subscription_id=str(subscription.id), error=str(exc))
            continue
        if outcome == RENEWED:
            summary["renewed"] += 1
        elif outcome == EXPIRED:
            summary["expired"] += 1

    for subscription in repo.active_ended_before(now):
        summary["processed"] += 1
        try:
            outcome = current_domain.process(
                ExpireSubscription(subscription_id=str(subscription.id), as_of=now),
                asynchronous=False,
            )
        except ProteanException as exc:
            summary["errors"] += 1
            logger.error("Expiry errored", subscription_id=str(subscription.id), error=str(exc))
            continue
        if outcome == EXPIRED:
            summary["expired"] += 1

    logger.info("Subscription expiry sweep complete", **summary)
    return summary
