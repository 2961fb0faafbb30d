"""Domain events raised by the Subscription aggregate."""

from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text

from marketplace.domain import marketplace


@marketplace.event(part_of="Subscription")
class SubscriptionCreated:
    __version__ = 1

    subscription_id = Identifier(required=True)
    reference = String(required=True)
    user_id = Identifier(required=True)
    plan_id = Identifier(required=True)
    status = String(required=True)
    amount = Integer(required=True)
    starts_at = DateTime(required=True)
    ends_at = DateTime(required=True)
    trial_ends_at = DateTime()


@marketplace.event(part_of="Subscription")
class SubscriptionActivated:
    __version__ = 1

    subscription_id = Identifier(required=True)
    reference = String(required=True)
    user_id = Identifier(required=True)
    starts_at = DateTime(required=True)
    ends_at = DateTime(required=True)


@marketplace.event(part_of="Subscription")
class SubscriptionRenewed:
    __version__ = 1

    subscription_id = Identifier(required=True)
    reference = String(required=True)
    user_id = Identifier(required=True)
    plan_id = Identifier(required=True)
    amount = Integer(required=True)
    renewal_count = Integer(required=True)
    starts_at = DateTime(required=True)
    ends_at = DateTime(required=True)


@marketplace.event(part_of="Subscription")
class SubscriptionPlanChanged:
    __version__ = 1

    subscription_id = Identifier(required=True)
    reference = String(required=True)
    user_id = Identifier(required=True)
    previous_plan_id = Identifier(required=True)
    new_plan_id = Identifier(required=True)
    amount = Integer()
    immediate = Boolean(required=True)
    effective_at = DateTime(required=True)


@marketplace.event(part_of="Subscription")
class SubscriptionCancelled:
    __version__ = 1

    subscription_id = Identifier(required=True)
    reference = String(required=True)
    user_id = Identifier(required=True)
    immediate = Boolean(required=True)
    reason = Text()
    cancelled_by = String()
    cancelled_at = DateTime(required=True)


@marketplace.event(part_of="Subscription")
class SubscriptionSuspended:
    __version__ = 1

    subscription_id = Identifier(required=True)
    reference = String(required=True)
    user_id = Identifier(required=True)
    reason = Text()
    suspended_at = DateTime(required=True)


@marketplace.event(part_of="Subscription")
class SubscriptionResumed:
    __version__ = 1

    subscription_id = Identifier(required=True)
    reference = String(required=True)
    user_id = Identifier(required=True)
    resumed_at = DateTime(required=True)


@marketplace.event(part_of="Subscription")
class SubscriptionExpired:
    __version__ = 1

    subscription_id = Identifier(required=True)
    reference = String(required=True)
    user_id = Identifier(required=True)
    auto_renewal_failed = Boolean(default=False)
    expired_at = DateTime(required=True)
