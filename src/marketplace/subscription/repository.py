from datetime import datetime

from marketplace.domain import marketplace
from marketplace.subscription.subscription import Subscription, SubscriptionStatus


@marketplace.repository(part_of=Subscription)
class SubscriptionRepository:
    def current_for_user(self, user_id) -> Subscription | None:
        """The user's active subscription, if any."""
        return (
            self.query.filter(user_id=str(user_id), status=SubscriptionStatus.ACTIVE.value).limit(None).all().first
        )

    def for_user(self, user_id) -> list[Subscription]:
        subscriptions = self.query.filter(user_id=str(user_id)).limit(None).all().items
        return sorted(subscriptions, key=lambda subscription: subscription.created_at, reverse=True)

    def next_reference(self, prefix: str, now: datetime) -> str:
        """``<PREFIX>-YYYY-NNNNNN``, numbered within the calendar year."""
        start = f"{prefix}-{now:%Y}-"
        used = [
            int(subscription.reference[len(start) :])
            for subscription in self.query.filter(reference__startswith=start).limit(None).all().items
        ]
        return f"{start}{max(used, default=0) + 1:06d}"

    def active_with_auto_renew_ending_between(self, start: datetime, end: datetime) -> list[Subscription]:
        candidates = self.query.filter(status=SubscriptionStatus.ACTIVE.value, auto_renew=True).limit(None).all().items
        return [subscription for subscription in candidates if start <= subscription.ends_at <= end]

    def active_ended_before(self, moment: datetime) -> list[Subscription]:
        active = self.query.filter(status=SubscriptionStatus.ACTIVE.value).limit(None).all().items
        return [subscription for subscription in active if subscription.ends_at < moment]
