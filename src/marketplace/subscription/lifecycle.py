"""Subscription lifecycle commands.

Customers may create, change and cancel their own subscriptions. Activation,
renewal, suspension and resumption are reserved for admins and the system
(payments and the expiry sweep act as the system).
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.actor import ActorRole, require_owner_or_privileged, require_privileged
from marketplace.domain import marketplace
from marketplace.subscription.plan import Plan
from marketplace.subscription.proration import prorated_charge
from marketplace.subscription.subscription import Subscription, SubscriptionStatus

logger = structlog.get_logger(__name__)

REPLACED_REASON = "Replaced by new subscription"


def retire_current_subscription(user_id, actor_id, keep_id=None, now=None) -> Subscription | None:
    """Cancel the user's active subscription so a new one can take its place."""
    repo = current_domain.repository_for(Subscription)
    current = repo.current_for_user(user_id)
    if current is None or str(current.id) == str(keep_id):
        return None

    current.cancel(actor_id, reason=REPLACED_REASON, immediately=True, now=now)
    repo.add(current)
    logger.info(
        "Subscription replaced",
        subscription_id=str(current.id),
        reference=current.reference,
        user_id=str(user_id),
    )
    return current


def plan_for_renewal(subscription: Subscription) -> Plan:
    """The plan the next period is charged at, honouring a deferred change."""
    plan_repo = current_domain.repository_for(Plan)
    if subscription.pending_plan_change is not None:
        return plan_repo.get(subscription.pending_plan_change.plan_id)
    return plan_repo.get(subscription.plan_id)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@marketplace.command(part_of="Subscription")
class CreateSubscription:
    user_id = Identifier(required=True)
    plan_id = Identifier(required=True)
    trial_days = Integer(default=0, min_value=0)
    auto_renew = Boolean(default=True)
    starts_at = DateTime()
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, choices=ActorRole)


@marketplace.command(part_of="Subscription")
class ActivateSubscription:
    subscription_id = Identifier(required=True)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, choices=ActorRole)


@marketplace.command(part_of="Subscription")
class RenewSubscription:
    subscription_id = Identifier(required=True)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, choices=ActorRole)


@marketplace.command(part_of="Subscription")
class ChangeSubscriptionPlan:
    subscription_id = Identifier(required=True)
    plan_id = Identifier(required=True)
    immediately = Boolean(default=True)
    prorate = Boolean(default=True)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, choices=ActorRole)
    as_of = DateTime()  # Optional: defaults to now


@marketplace.command(part_of="Subscription")
class CancelSubscription:
    subscription_id = Identifier(required=True)
    immediately = Boolean(default=True)
    reason = Text()
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, choices=ActorRole)


@marketplace.command(part_of="Subscription")
class SuspendSubscription:
    subscription_id = Identifier(required=True)
    reason = Text()
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, choices=ActorRole)


@marketplace.command(part_of="Subscription")
class ResumeSubscription:
    subscription_id = Identifier(required=True)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, choices=ActorRole)


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------
@marketplace.command_handler(part_of=Subscription)
class SubscriptionLifecycleHandler:
    @handle(CreateSubscription)
    def create_subscription(self, command):
        require_owner_or_privileged(command.user_id, command.actor_id, command.actor_role, "create subscriptions")

        plan = current_domain.repository_for(Plan).get(command.plan_id)
        if not plan.is_active:
            raise ValidationError({"plan_id": [f"Plan {plan.name} is not available"]})

        now = datetime.now(UTC)
        retire_current_subscription(command.user_id, command.actor_id, now=now)

        repo = current_domain.repository_for(Subscription)
        subscription = Subscription.start(
            reference=repo.next_reference(str(current_domain.SUBSCRIPTION_ID_PREFIX), now),
            user_id=command.user_id,
            plan=plan,
            starts_at=command.starts_at or now,
            trial_days=command.trial_days or 0,
            auto_renew=command.auto_renew,
            now=now,
        )
        repo.add(subscription)

        logger.info(
            "Subscription created",
            subscription_id=str(subscription.id),
            reference=subscription.reference,
            user_id=str(command.user_id),
            plan_id=str(plan.id),
            status=subscription.status,
        )
        return str(subscription.id)

    @handle(ActivateSubscription)
    def activate_subscription(self, command):
        require_privileged(command.actor_id, command.actor_role, "activate subscriptions")

        repo = current_domain.repository_for(Subscription)
        subscription = repo.get(command.subscription_id)
        retire_current_subscription(subscription.user_id, command.actor_id, keep_id=subscription.id)
        subscription.activate()
        repo.add(subscription)

        logger.info("Subscription activated", subscription_id=str(subscription.id), reference=subscription.reference)
        return subscription.status

    @handle(RenewSubscription)
    def renew_subscription(self, command):
        require_privileged(command.actor_id, command.actor_role, "renew subscriptions")

        repo = current_domain.repository_for(Subscription)
        subscription = repo.get(command.subscription_id)
        if subscription.status != SubscriptionStatus.ACTIVE.value:
            retire_current_subscription(subscription.user_id, command.actor_id, keep_id=subscription.id)
        subscription.renew(plan_for_renewal(subscription))
        repo.add(subscription)

        logger.info(
            "Subscription renewed",
            subscription_id=str(subscription.id),
            reference=subscription.reference,
            renewal_count=subscription.renewal_count,
            ends_at=subscription.ends_at.isoformat(),
        )
        return subscription.status

    @handle(ChangeSubscriptionPlan)
    def change_plan(self, command):
        repo = current_domain.repository_for(Subscription)
        subscription = repo.get(command.subscription_id)
        require_owner_or_privileged(subscription.user_id, command.actor_id, command.actor_role, "change plans")

        if subscription.status != SubscriptionStatus.ACTIVE.value:
            raise ValidationError({"status": ["Only active subscriptions can change plan"]})
        if str(subscription.plan_id) == str(command.plan_id):
            raise ValidationError({"plan_id": ["Subscription is already on this plan"]})

        plan = current_domain.repository_for(Plan).get(command.plan_id)
        if not plan.is_active:
            raise ValidationError({"plan_id": [f"Plan {plan.name} is not available"]})

        now = command.as_of or datetime.now(UTC)
        if not command.immediately:
            subscription.schedule_plan_change(plan, now=now)
            repo.add(subscription)
            logger.info(
                "Plan change scheduled",
                subscription_id=str(subscription.id),
                new_plan_id=str(plan.id),
                effective_at=subscription.ends_at.isoformat(),
            )
            return None

        new_price = plan.final_price(now)
        if command.prorate:
            amount = prorated_charge(
                current_amount=subscription.amount,
                starts_at=subscription.starts_at,
                ends_at=subscription.ends_at,
                new_price=new_price,
                new_duration_days=plan.duration_days,
                now=now,
            )
        else:
            amount = new_price

        subscription.change_plan_now(plan, amount, now=now)
        repo.add(subscription)

        logger.info(
            "Plan changed",
            subscription_id=str(subscription.id),
            previous_plan_id=str(subscription.previous_plan_id),
            new_plan_id=str(plan.id),
            amount=amount,
            prorated=command.prorate,
        )
        return amount

    @handle(CancelSubscription)
    def cancel_subscription(self, command):
        repo = current_domain.repository_for(Subscription)
        subscription = repo.get(command.subscription_id)
        require_owner_or_privileged(subscription.user_id, command.actor_id, command.actor_role, "cancel subscriptions")

        subscription.cancel(command.actor_id, reason=command.reason, immediately=command.immediately)
        repo.add(subscription)

        logger.info(
            "Subscription cancelled",
            subscription_id=str(subscription.id),
            immediately=command.immediately,
            actor_id=command.actor_id,
        )
        return subscription.status

    @handle(SuspendSubscription)
    def suspend_subscription(self, command):
        require_privileged(command.actor_id, command.actor_role, "suspend subscriptions")

        repo = current_domain.repository_for(Subscription)
        subscription = repo.get(command.subscription_id)
        subscription.suspend(reason=command.reason)
        repo.add(subscription)

        logger.info("Subscription suspended", subscription_id=str(subscription.id), reason=command.reason)
        return subscription.status

    @handle(ResumeSubscription)
    def resume_subscription(self, command):
        require_privileged(command.actor_id, command.actor_role, "resume subscriptions")

        repo = current_domain.repository_for(Subscription)
        subscription = repo.get(command.subscription_id)
        subscription.resume()
        retire_current_subscription(subscription.user_id, command.actor_id, keep_id=subscription.id)
        repo.add(subscription)

        logger.info("Subscription resumed", subscription_id=str(subscription.id))
        return subscription.status
