"""Subscription aggregate: a seller's paid access to a plan for a period.

State machine:
    pending → active → suspended → active (resume)
    pending, active, suspended → cancelled
    active, suspended → expired → active (renewal)

A user holds at most one active subscription; creating a new one cancels the
current one first. The amount charged and the plan features are captured on
the subscription when it is created, changed or renewed.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, List, String, Text, ValueObject

from marketplace.domain import marketplace
from marketplace.exceptions import IllegalTransition
from marketplace.subscription.events import (
    SubscriptionActivated,
    SubscriptionCancelled,
    SubscriptionCreated,
    SubscriptionExpired,
    SubscriptionPlanChanged,
    SubscriptionRenewed,
    SubscriptionResumed,
    SubscriptionSuspended,
)


class SubscriptionStatus(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


_VALID_TRANSITIONS = {
    SubscriptionStatus.PENDING: {SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED},
    SubscriptionStatus.ACTIVE: {
        SubscriptionStatus.SUSPENDED,
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.EXPIRED,
    },
    SubscriptionStatus.SUSPENDED: {
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.EXPIRED,
    },
    SubscriptionStatus.EXPIRED: {SubscriptionStatus.ACTIVE},  # Renewal
    SubscriptionStatus.CANCELLED: set(),  # Terminal
}


@marketplace.value_object(part_of="Subscription")
class PendingPlanChange:
    """A plan change deferred to the end of the current period."""

    plan_id = Identifier(required=True)
    plan_name = String(required=True, max_length=100)
    effective_at = DateTime(required=True)
    requested_at = DateTime(required=True)


@marketplace.aggregate
class Subscription:
    reference = String(required=True, max_length=20, unique=True)  # SUB-YYYY-NNNNNN
    user_id = Identifier(required=True)
    plan_id = Identifier(required=True)
    status = String(choices=SubscriptionStatus, default=SubscriptionStatus.PENDING.value)
    starts_at = DateTime(required=True)
    ends_at = DateTime(required=True)
    trial_ends_at = DateTime()
    amount = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="XAF")
    auto_renew = Boolean(default=True)
    features_snapshot = List(String(max_length=100))
    renewal_count = Integer(default=0)
    pending_plan_change = ValueObject(PendingPlanChange)
    previous_plan_id = Identifier()
    auto_renewal_failed = Boolean(default=False)
    activated_at = DateTime()
    cancelled_at = DateTime()
    cancellation_reason = Text()
    cancelled_by = String(max_length=255)
    suspended_at = DateTime()
    suspension_reason = Text()
    expired_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def period_must_not_end_before_it_starts(self):
        if self.starts_at and self.ends_at and self.ends_at < self.starts_at:
            raise ValidationError({"ends_at": ["Subscription cannot end before it starts"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def start(cls, reference, user_id, plan, starts_at, trial_days=0, auto_renew=True, now=None):
        """Open a subscription for ``plan``.

        With a trial the subscription is active straight away; otherwise it
        waits for its first payment in ``pending``.
        """
        now = now or datetime.now(UTC)
        on_trial = bool(trial_days and trial_days > 0)
        status = SubscriptionStatus.ACTIVE if on_trial else SubscriptionStatus.PENDING

        subscription = cls(
            reference=reference,
            user_id=user_id,
            plan_id=str(plan.id),
            status=status.value,
            starts_at=starts_at,
            ends_at=starts_at + timedelta(days=plan.duration_days),
            trial_ends_at=starts_at + timedelta(days=trial_days) if on_trial else None,
            amount=plan.final_price(now),
            currency=plan.currency,
            auto_renew=auto_renew,
            features_snapshot=list(plan.features or []),
            activated_at=now if on_trial else None,
            created_at=now,
            updated_at=now,
        )
        subscription.raise_(
            SubscriptionCreated(
                subscription_id=str(subscription.id),
                reference=reference,
                user_id=str(user_id),
                plan_id=str(plan.id),
                status=status.value,
                amount=subscription.amount,
                starts_at=subscription.starts_at,
                ends_at=subscription.ends_at,
                trial_ends_at=subscription.trial_ends_at,
            )
        )
        return subscription

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def is_active(self, now=None) -> bool:
        now = now or datetime.now(UTC)
        return self.status == SubscriptionStatus.ACTIVE.value and self.starts_at <= now < self.ends_at

    def is_in_trial(self, now=None) -> bool:
        now = now or datetime.now(UTC)
        return self.trial_ends_at is not None and now < self.trial_ends_at

    def days_remaining(self, now=None) -> int:
        now = now or datetime.now(UTC)
        return max(0, (self.ends_at - now).days)

    def has_feature(self, feature: str) -> bool:
        return feature in (self.features_snapshot or [])

    @property
    def period(self) -> timedelta:
        return self.ends_at - self.starts_at

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target: SubscriptionStatus) -> None:
        if target not in _VALID_TRANSITIONS.get(SubscriptionStatus(self.status), set()):
            raise IllegalTransition("subscription", self.status, target.value)

    def activate(self, now=None) -> None:
        """First payment received: the period restarts now with the same length."""
        self._assert_can_transition(SubscriptionStatus.ACTIVE)
        now = now or datetime.now(UTC)
        period = self.period

        with atomic_change(self):
            self.status = SubscriptionStatus.ACTIVE.value
            self.starts_at = now
            self.ends_at = now + period
            self.activated_at = now
            self.updated_at = now

        self.raise_(
            SubscriptionActivated(
                subscription_id=str(self.id),
                reference=self.reference,
                user_id=str(self.user_id),
                starts_at=self.starts_at,
                ends_at=self.ends_at,
            )
        )

    def renew(self, plan, now=None) -> None:
        """Start the next period where the current one ends.

        ``plan`` is the plan the next period is charged at; a deferred plan
        change is consumed here.
        """
        if self.status != SubscriptionStatus.ACTIVE.value:
            self._assert_can_transition(SubscriptionStatus.ACTIVE)
        now = now or datetime.now(UTC)

        with atomic_change(self):
            if str(plan.id) != str(self.plan_id):
                self.previous_plan_id = self.plan_id
                self.plan_id = str(plan.id)
                self.features_snapshot = list(plan.features or [])
            self.pending_plan_change = None
            self.starts_at = self.ends_at
            self.ends_at = self.ends_at + timedelta(days=plan.duration_days)
            self.amount = plan.final_price(now)
            self.renewal_count = (self.renewal_count or 0) + 1
            self.status = SubscriptionStatus.ACTIVE.value
            self.auto_renewal_failed = False
            self.updated_at = now

        self.raise_(
            SubscriptionRenewed(
                subscription_id=str(self.id),
                reference=self.reference,
                user_id=str(self.user_id),
                plan_id=str(self.plan_id),
                amount=self.amount,
                renewal_count=self.renewal_count,
                starts_at=self.starts_at,
                ends_at=self.ends_at,
            )
        )

    def change_plan_now(self, plan, amount: int, now=None) -> None:
        now = now or datetime.now(UTC)
        previous_plan_id = self.plan_id

        with atomic_change(self):
            self.previous_plan_id = previous_plan_id
            self.plan_id = str(plan.id)
            self.amount = amount
            self.features_snapshot = list(plan.features or [])
            self.pending_plan_change = None
            self.ends_at = now + timedelta(days=plan.duration_days)
            if self.starts_at > now:
                self.starts_at = now
            self.updated_at = now

        self.raise_(
            SubscriptionPlanChanged(
                subscription_id=str(self.id),
                reference=self.reference,
                user_id=str(self.user_id),
                previous_plan_id=str(previous_plan_id),
                new_plan_id=str(plan.id),
                amount=amount,
                immediate=True,
                effective_at=now,
            )
        )

    def schedule_plan_change(self, plan, now=None) -> None:
        now = now or datetime.now(UTC)
        self.pending_plan_change = PendingPlanChange(
            plan_id=str(plan.id),
            plan_name=plan.name,
            effective_at=self.ends_at,
            requested_at=now,
        )
        self.updated_at = now

        self.raise_(
            SubscriptionPlanChanged(
                subscription_id=str(self.id),
                reference=self.reference,
                user_id=str(self.user_id),
                previous_plan_id=str(self.plan_id),
                new_plan_id=str(plan.id),
                immediate=False,
                effective_at=self.ends_at,
            )
        )

    def cancel(self, actor_id, reason=None, immediately=True, now=None) -> None:
        """Cancel now, or stop auto-renewal and let the period run out."""
        # Deferred cancellation is also refused once the subscription has ended.
        self._assert_can_transition(SubscriptionStatus.CANCELLED)
        now = now or datetime.now(UTC)

        with atomic_change(self):
            if immediately:
                self.status = SubscriptionStatus.CANCELLED.value
                self.ends_at = max(now, self.starts_at)
            self.auto_renew = False
            self.cancelled_at = now
            self.cancellation_reason = reason
            self.cancelled_by = str(actor_id)
            self.updated_at = now

        self.raise_(
            SubscriptionCancelled(
                subscription_id=str(self.id),
                reference=self.reference,
                user_id=str(self.user_id),
                immediate=immediately,
                reason=reason,
                cancelled_by=str(actor_id),
                cancelled_at=now,
            )
        )

    def suspend(self, reason=None, now=None) -> None:
        self._assert_can_transition(SubscriptionStatus.SUSPENDED)
        now = now or datetime.now(UTC)

        self.status = SubscriptionStatus.SUSPENDED.value
        self.suspended_at = now
        self.suspension_reason = reason
        self.updated_at = now

        self.raise_(
            SubscriptionSuspended(
                subscription_id=str(self.id),
                reference=self.reference,
                user_id=str(self.user_id),
                reason=reason,
                suspended_at=now,
            )
        )

    def resume(self, now=None) -> None:
        if self.status != SubscriptionStatus.SUSPENDED.value:
            raise IllegalTransition("subscription", self.status, SubscriptionStatus.ACTIVE.value)
        now = now or datetime.now(UTC)

        self.status = SubscriptionStatus.ACTIVE.value
        self.suspended_at = None
        self.suspension_reason = None
        self.updated_at = now

        self.raise_(
            SubscriptionResumed(
                subscription_id=str(self.id),
                reference=self.reference,
                user_id=str(self.user_id),
                resumed_at=now,
            )
        )

    def expire(self, auto_renewal_failed=False, now=None) -> None:
        self._assert_can_transition(SubscriptionStatus.EXPIRED)
        now = now or datetime.now(UTC)

        self.status = SubscriptionStatus.EXPIRED.value
        self.expired_at = now
        self.auto_renewal_failed = auto_renewal_failed
        self.updated_at = now

        self.raise_(
            SubscriptionExpired(
                subscription_id=str(self.id),
                reference=self.reference,
                user_id=str(self.user_id),
                auto_renewal_failed=auto_renewal_failed,
                expired_at=now,
            )
        )
