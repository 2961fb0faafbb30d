"""FastAPI routes for the Marketplace domain.

Thin translation of HTTP requests into commands. Protean exceptions raised by
the handlers are mapped to status codes by the app's exception handlers; the
e-billing callback maps its own errors because the provider only understands
200/400/404/500.
"""

import os
from dataclasses import asdict

import structlog
from fastapi import APIRouter, HTTPException, Request
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.integrations.logging import log_security_event
from protean.utils.globals import current_domain

from marketplace.api.schemas import (
    AddToCartRequest,
    CancelPaymentRequest,
    CancelSubscriptionRequest,
    ChangePlanRequest,
    CheckoutRequest,
    ConfirmPaymentRequest,
    CreateSubscriptionRequest,
    ExpirySummary,
    InitiatePaymentRequest,
    MergeCartRequest,
    OutcomeResponse,
    PaymentResponse,
    PollSummary,
    SweepRequest,
    TransitionOrderRequest,
    UpdateCartItemRequest,
)
from marketplace.cart.engine import calculate_totals, load_cart, validate_cart
from marketplace.cart.items import AddToCart, ClearCart, RemoveCartItem, UpdateCartItemQuantity
from marketplace.cart.merging import MergeCart
from marketplace.cart.pricing import PricingPolicy
from marketplace.exceptions import SignatureMismatch
from marketplace.gateway import get_gateway
from marketplace.gateway.fake_adapter import FakeGateway
from marketplace.gateway.methods import available_methods
from marketplace.order.creation import PlaceOrder
from marketplace.order.lifecycle import TransitionOrder
from marketplace.order.order import Order
from marketplace.payment.initiation import InitiatePayment
from marketplace.payment.payment import Payment
from marketplace.payment.polling import poll_pending_payments
from marketplace.payment.reconciliation import (
    ApplyGatewayCallback,
    CancelPayment,
    CheckPaymentStatus,
    ConfirmPayment,
)
from marketplace.subscription.expiry import process_expiring_subscriptions
from marketplace.subscription.lifecycle import (
    CancelSubscription,
    ChangeSubscriptionPlan,
    CreateSubscription,
)

logger = structlog.get_logger(__name__)


def _payment_response(payment: Payment) -> PaymentResponse:
    return PaymentResponse(
        payment_id=str(payment.id),
        reference=payment.reference,
        status=payment.status,
        amount=payment.amount,
        currency=payment.currency,
        method=payment.method,
        bill_id=payment.bill_id,
        payment_url=payment.payment_url,
    )


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.get("")
async def get_cart(user_id: str | None = None, session_id: str | None = None) -> dict:
    """Current cart lines with live totals and availability warnings."""
    items, products = load_cart(user_id=user_id, session_id=session_id)
    totals = calculate_totals(items, products, PricingPolicy.from_domain(current_domain))
    return {
        "items": [
            {
                "id": str(item.id),
                "product_id": str(item.product_id),
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "options": item.options or {},
                "line_total": item.line_total,
            }
            for item in items
        ],
        "totals": asdict(totals),
        "issues": validate_cart(items, products),
    }


@cart_router.post("/items", status_code=201)
async def add_to_cart(body: AddToCartRequest) -> dict:
    command = AddToCart(
        user_id=body.user_id,
        session_id=body.session_id,
        product_id=body.product_id,
        quantity=body.quantity,
        options=body.options,
    )
    cart_item_id = current_domain.process(command, asynchronous=False)
    return {"cart_item_id": cart_item_id}


@cart_router.put("/items/{cart_item_id}", response_model=OutcomeResponse)
async def update_cart_item(cart_item_id: str, body: UpdateCartItemRequest) -> OutcomeResponse:
    current_domain.process(
        UpdateCartItemQuantity(cart_item_id=cart_item_id, quantity=body.quantity),
        asynchronous=False,
    )
    return OutcomeResponse(status="updated")


@cart_router.delete("/items/{cart_item_id}", response_model=OutcomeResponse)
async def remove_cart_item(cart_item_id: str) -> OutcomeResponse:
    current_domain.process(RemoveCartItem(cart_item_id=cart_item_id), asynchronous=False)
    return OutcomeResponse(status="removed")


@cart_router.delete("", response_model=OutcomeResponse)
async def clear_cart(user_id: str | None = None, session_id: str | None = None) -> OutcomeResponse:
    current_domain.process(ClearCart(user_id=user_id, session_id=session_id), asynchronous=False)
    return OutcomeResponse(status="cleared")


@cart_router.post("/merge", response_model=OutcomeResponse)
async def merge_cart(body: MergeCartRequest) -> OutcomeResponse:
    """Move a guest session's lines into the user's cart after login."""
    current_domain.process(MergeCart(user_id=body.user_id, session_id=body.session_id), asynchronous=False)
    return OutcomeResponse(status="merged")


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("/checkout", status_code=201)
async def checkout(body: CheckoutRequest) -> dict:
    """Create an order from the user's cart."""
    details = body.model_dump(exclude_none=True, exclude={"user_id", "shipping_address", "billing_address"})
    if body.billing_address:
        details["billing_address"] = body.billing_address.model_dump()
    command = PlaceOrder(user_id=body.user_id, shipping_address=body.shipping_address.model_dump(), **details)
    order_id = current_domain.process(command, asynchronous=False)
    order = current_domain.repository_for(Order).get(order_id)
    return {
        "order_id": order_id,
        "order_number": order.order_number,
        "status": order.status,
        "total_amount": order.total_amount,
        "currency": order.currency,
    }


@order_router.post("/{order_id}/transition")
async def transition_order(order_id: str, body: TransitionOrderRequest) -> dict:
    command = TransitionOrder(
        order_id=order_id,
        target_status=body.target_status,
        actor_id=body.actor_id,
        actor_role=body.actor_role,
        tracking_number=body.tracking_number,
        reason=body.reason,
        admin_notes=body.admin_notes,
    )
    current_domain.process(command, asynchronous=False)
    order = current_domain.repository_for(Order).get(order_id)
    return {"order_id": order_id, "status": order.status, "payment_status": order.payment_status}


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.get("/methods")
async def list_payment_methods() -> list[dict]:
    return available_methods()


@payment_router.post("", status_code=201, response_model=PaymentResponse)
async def initiate_payment(body: InitiatePaymentRequest) -> PaymentResponse:
    """Initiate a payment for an order or a subscription."""
    command = InitiatePayment(
        order_id=body.order_id,
        subscription_id=body.subscription_id,
        method=body.method,
        payer_name=body.payer_name,
        payer_email=body.payer_email,
        payer_phone=body.payer_phone,
        actor_id=body.actor_id,
        actor_role=body.actor_role,
    )
    payment_id = current_domain.process(command, asynchronous=False)
    return _payment_response(current_domain.repository_for(Payment).get(payment_id))


@payment_router.post("/ebilling/callback", response_model=OutcomeResponse)
async def ebilling_callback(request: Request) -> OutcomeResponse:
    """Receive a payment notification from the e-billing provider.

    Safe to repeat: a callback for an already settled payment is acknowledged
    with ``already_processed``.
    """
    try:
        payload = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Malformed callback body") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Malformed callback body")

    try:
        outcome = current_domain.process(ApplyGatewayCallback(callback=payload), asynchronous=False)
    except SignatureMismatch as exc:
        client_ip = request.client.host if request.client else None
        logger.warning(
            "Webhook signature mismatch",
            security_event=True,
            bill_id=exc.bill_id,
            client_ip=client_ip,
        )
        log_security_event("webhook_signature_mismatch", bill_id=exc.bill_id, client_ip=client_ip)
        raise HTTPException(status_code=400, detail="Invalid signature") from exc
    except ValidationError as exc:
        logger.warning("Invalid callback payload", errors=exc.messages, bill_id=payload.get("bill_id"))
        raise HTTPException(status_code=400, detail=exc.messages) from exc
    except ObjectNotFoundError as exc:
        logger.warning("Callback for unknown bill", bill_id=payload.get("bill_id"))
        raise HTTPException(status_code=404, detail="Payment not found") from exc
    except Exception as exc:
        logger.exception("Callback processing failed", bill_id=payload.get("bill_id"))
        raise HTTPException(status_code=500, detail="Internal error") from exc

    return OutcomeResponse(status=outcome)


@payment_router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(payment_id: str) -> PaymentResponse:
    return _payment_response(current_domain.repository_for(Payment).get(payment_id))


@payment_router.post("/{payment_id}/check-status", response_model=OutcomeResponse)
async def check_payment_status(payment_id: str) -> OutcomeResponse:
    """Ask the provider for the latest status of a payment."""
    outcome = current_domain.process(CheckPaymentStatus(payment_id=payment_id), asynchronous=False)
    return OutcomeResponse(status=outcome)


@payment_router.post("/{payment_id}/confirm", response_model=OutcomeResponse)
async def confirm_payment(payment_id: str, body: ConfirmPaymentRequest) -> OutcomeResponse:
    """Confirm an offline payment (bank transfer, cash). Admins only."""
    command = ConfirmPayment(
        payment_id=payment_id,
        actor_id=body.actor_id,
        actor_role=body.actor_role,
        notes=body.notes,
        transaction_id=body.transaction_id,
    )
    outcome = current_domain.process(command, asynchronous=False)
    return OutcomeResponse(status=outcome)


@payment_router.post("/{payment_id}/cancel", response_model=OutcomeResponse)
async def cancel_payment(payment_id: str, body: CancelPaymentRequest) -> OutcomeResponse:
    command = CancelPayment(
        payment_id=payment_id,
        reason=body.reason,
        actor_id=body.actor_id,
        actor_role=body.actor_role,
    )
    status = current_domain.process(command, asynchronous=False)
    return OutcomeResponse(status=status)


@payment_router.post("/gateway/configure")
async def configure_gateway(should_succeed: bool = True, ussd_should_succeed: bool = True) -> dict:
    """Configure the FakeGateway behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(should_succeed=should_succeed, ussd_should_succeed=ussd_should_succeed)
    return {
        "gateway": type(gateway).__name__,
        "should_succeed": gateway.should_succeed,
        "ussd_should_succeed": gateway.ussd_should_succeed,
    }


# ---------------------------------------------------------------------------
# Subscription Router
# ---------------------------------------------------------------------------
subscription_router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@subscription_router.post("", status_code=201)
async def create_subscription(body: CreateSubscriptionRequest) -> dict:
    command = CreateSubscription(
        user_id=body.user_id,
        plan_id=body.plan_id,
        trial_days=body.trial_days,
        auto_renew=body.auto_renew,
        actor_id=body.actor_id,
        actor_role=body.actor_role,
    )
    return {"subscription_id": current_domain.process(command, asynchronous=False)}


@subscription_router.post("/{subscription_id}/change-plan")
async def change_plan(subscription_id: str, body: ChangePlanRequest) -> dict:
    """Switch plans now (with proration) or at the end of the period."""
    command = ChangeSubscriptionPlan(
        subscription_id=subscription_id,
        plan_id=body.plan_id,
        immediately=body.immediately,
        prorate=body.prorate,
        actor_id=body.actor_id,
        actor_role=body.actor_role,
    )
    return {"prorated_amount": current_domain.process(command, asynchronous=False)}


@subscription_router.post("/{subscription_id}/cancel", response_model=OutcomeResponse)
async def cancel_subscription(subscription_id: str, body: CancelSubscriptionRequest) -> OutcomeResponse:
    command = CancelSubscription(
        subscription_id=subscription_id,
        immediately=body.immediately,
        reason=body.reason,
        actor_id=body.actor_id,
        actor_role=body.actor_role,
    )
    status = current_domain.process(command, asynchronous=False)
    return OutcomeResponse(status=status)


# ---------------------------------------------------------------------------
# Maintenance Router
# ---------------------------------------------------------------------------
# Triggered by an external scheduler (cron, Kubernetes CronJob).
maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@maintenance_router.post("/payments/poll", response_model=PollSummary)
async def poll_payments(body: SweepRequest | None = None) -> PollSummary:
    return PollSummary(**poll_pending_payments(now=body.now if body else None))


@maintenance_router.post("/subscriptions/expire", response_model=ExpirySummary)
async def expire_subscriptions(body: SweepRequest | None = None) -> ExpirySummary:
    return ExpirySummary(**process_expiring_subscriptions(now=body.now if body else None))
