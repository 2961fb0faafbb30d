"""Pydantic request/response schemas for the Marketplace API.

These are external contracts, kept apart from the Protean commands they are
translated into. Authentication is handled upstream; callers pass the acting
user explicitly.
"""

from pydantic import AwareDatetime, BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class ActorSchema(BaseModel):
    actor_id: str
    actor_role: str = "customer"  # customer, admin, system


class AddressSchema(BaseModel):
    full_name: str
    phone: str | None = None
    street: str
    city: str
    region: str | None = None
    postal_code: str | None = None
    country: str = "GA"


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    user_id: str | None = None
    session_id: str | None = None
    product_id: str
    quantity: int = Field(ge=1)
    options: dict = Field(default_factory=dict)


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(ge=1)


class MergeCartRequest(BaseModel):
    user_id: str
    session_id: str


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class CheckoutRequest(BaseModel):
    user_id: str
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    shipping_method: str = "standard"
    customer_email: str | None = None
    customer_phone: str | None = None
    notes: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": "usr-001",
                    "shipping_address": {
                        "full_name": "Awa Ndong",
                        "phone": "077123456",
                        "street": "12 Boulevard Triomphal",
                        "city": "Libreville",
                    },
                    "customer_email": "awa@example.com",
                }
            ]
        }
    }


class TransitionOrderRequest(ActorSchema):
    target_status: str  # confirmed, processing, shipped, delivered, cancelled, refunded
    tracking_number: str | None = None
    reason: str | None = None
    admin_notes: str | None = None


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class InitiatePaymentRequest(ActorSchema):
    order_id: str | None = None
    subscription_id: str | None = None
    method: str  # airtel_money, moov_money, visa_mastercard, bank_transfer, cash
    payer_name: str | None = None
    payer_email: str | None = None
    payer_phone: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "order_id": "0b6f9c1e-3e55-4a36-8f4c-6d1c7a2b9e10",
                    "method": "airtel_money",
                    "payer_name": "Awa Ndong",
                    "payer_phone": "077123456",
                    "actor_id": "usr-001",
                    "actor_role": "customer",
                }
            ]
        }
    }


class ConfirmPaymentRequest(ActorSchema):
    notes: str | None = None
    transaction_id: str | None = None


class CancelPaymentRequest(ActorSchema):
    reason: str | None = None


class PaymentResponse(BaseModel):
    payment_id: str
    reference: str
    status: str
    amount: int
    currency: str
    method: str
    bill_id: str | None = None
    payment_url: str | None = None


class OutcomeResponse(BaseModel):
    status: str


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------
class CreateSubscriptionRequest(ActorSchema):
    user_id: str
    plan_id: str
    trial_days: int = Field(default=0, ge=0)
    auto_renew: bool = True


class ChangePlanRequest(ActorSchema):
    plan_id: str
    immediately: bool = True
    prorate: bool = True


class CancelSubscriptionRequest(ActorSchema):
    immediately: bool = True
    reason: str | None = None


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------
class SweepRequest(BaseModel):
    now: AwareDatetime | None = None


class PollSummary(BaseModel):
    checked: int
    updated: int
    errors: int


class ExpirySummary(BaseModel):
    processed: int
    renewed: int
    expired: int
    errors: int
