"""Subscription plans sold to sellers.

A plan's features gate seller capabilities; ``max_products`` of 0 means
unlimited. A percentage discount applies until ``discount_expires_at``.
"""

from datetime import UTC, datetime

from protean.fields import Boolean, DateTime, Float, Integer, List, String, Text

from marketplace.domain import marketplace


@marketplace.aggregate
class Plan:
    name = String(required=True, max_length=100)
    slug = String(required=True, max_length=100, unique=True)
    description = Text()
    price = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="XAF")
    duration_days = Integer(default=30, min_value=1)
    features = List(String(max_length=100))
    max_products = Integer(default=0, min_value=0)
    discount_percentage = Float(min_value=0.0, max_value=100.0)
    discount_expires_at = DateTime()
    is_active = Boolean(default=True)
    created_at = DateTime()

    @classmethod
    def publish(cls, **attributes):
        return cls(created_at=datetime.now(UTC), **attributes)

    def has_active_discount(self, now=None) -> bool:
        now = now or datetime.now(UTC)
        if not self.discount_percentage:
            return False
        return self.discount_expires_at is None or self.discount_expires_at > now

    def final_price(self, now=None) -> int:
        if not self.has_active_discount(now):
            return self.price
        return round(self.price * (1 - self.discount_percentage / 100))

    def has_feature(self, feature: str) -> bool:
        return feature in (self.features or [])

    @property
    def is_unlimited(self) -> bool:
        return not self.max_products
