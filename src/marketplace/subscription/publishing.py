"""Publishing subscription plans."""

from protean import handle
from protean.fields import Boolean, DateTime, Float, Integer, List, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.subscription.plan import Plan


@marketplace.command(part_of="Plan")
class PublishPlan:
    name = String(required=True, max_length=100)
    slug = String(required=True, max_length=100)
    description = Text()
    price = Integer(required=True, min_value=0)
    currency = String(max_length=3)
    duration_days = Integer(default=30, min_value=1)
    features = List(String(max_length=100))
    max_products = Integer(default=0, min_value=0)
    discount_percentage = Float(min_value=0.0, max_value=100.0)
    discount_expires_at = DateTime()
    is_active = Boolean(default=True)


@marketplace.command_handler(part_of=Plan)
class PlanPublishingHandler:
    @handle(PublishPlan)
    def publish_plan(self, command):
        plan = Plan.publish(
            name=command.name,
            slug=command.slug,
            description=command.description,
            price=command.price,
            currency=command.currency or current_domain.CURRENCY,
            duration_days=command.duration_days,
            features=command.features or [],
            max_products=command.max_products,
            discount_percentage=command.discount_percentage,
            discount_expires_at=command.discount_expires_at,
            is_active=command.is_active,
        )
        current_domain.repository_for(Plan).add(plan)
        return str(plan.id)
