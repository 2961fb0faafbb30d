import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def marketplace_bed():
    from marketplace.domain import marketplace

    bed = DomainFixture(marketplace)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(marketplace_bed):
    with marketplace_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def _adapters():
    """Fresh fake gateway and an in-memory notifier for every test."""
    from marketplace.gateway import reset_gateway
    from marketplace.notification.port import RecordingNotifier, reset_notifier, set_notifier

    reset_gateway()
    set_notifier(RecordingNotifier())
    yield
    reset_gateway()
    reset_notifier()


@pytest.fixture
def gateway():
    from marketplace.gateway import get_gateway

    return get_gateway()


@pytest.fixture
def notifier():
    from marketplace.notification.port import get_notifier

    return get_notifier()


_sku_counter = 0


@pytest.fixture
def make_product():
    """Register a product through the catalogue command and return it."""
    from marketplace.catalogue.management import RegisterProduct
    from marketplace.catalogue.product import Product
    from protean import current_domain

    def _make(**overrides):
        global _sku_counter
        _sku_counter += 1
        attributes = {
            "name": f"Product {_sku_counter}",
            "sku": f"SKU-{_sku_counter:05d}",
            "price": 10000,
            "stock_quantity": 5,
            "track_inventory": True,
            "allow_backorder": False,
            "weight": 0.5,
            "category": "crafts",
        }
        attributes.update(overrides)
        product_id = current_domain.process(RegisterProduct(**attributes), asynchronous=False)
        return current_domain.repository_for(Product).get(product_id)

    return _make


@pytest.fixture
def add_to_cart():
    from marketplace.cart.items import AddToCart
    from protean import current_domain

    def _add(product, quantity=1, user_id="usr-001", session_id=None, options=None):
        owner = {"session_id": session_id} if session_id else {"user_id": user_id}
        return current_domain.process(
            AddToCart(product_id=str(product.id), quantity=quantity, options=options or {}, **owner),
            asynchronous=False,
        )

    return _add


SHIPPING_ADDRESS = {
    "full_name": "Awa Ndong",
    "phone": "077123456",
    "street": "12 Boulevard Triomphal",
    "city": "Libreville",
    "region": "Estuaire",
}


@pytest.fixture
def checkout():
    """Place an order from the user's cart and return it."""
    from marketplace.order.creation import PlaceOrder
    from marketplace.order.order import Order
    from protean import current_domain

    def _checkout(user_id="usr-001", **details):
        order_id = current_domain.process(
            PlaceOrder(user_id=user_id, shipping_address=dict(SHIPPING_ADDRESS), **details),
            asynchronous=False,
        )
        return current_domain.repository_for(Order).get(order_id)

    return _checkout


@pytest.fixture
def placed_order(make_product, add_to_cart, checkout):
    """A pending order for 2 x 10000 (total 26100)."""
    product = make_product(price=10000, stock_quantity=5)
    add_to_cart(product, quantity=2)
    return checkout()


@pytest.fixture
def pay_order():
    """Initiate a payment for an order as its owner and return it."""
    from marketplace.payment.initiation import InitiatePayment
    from marketplace.payment.payment import Payment
    from protean import current_domain

    def _pay(order, method="airtel_money", payer_phone="077123456"):
        payment_id = current_domain.process(
            InitiatePayment(
                order_id=str(order.id),
                method=method,
                payer_name="Awa Ndong",
                payer_email="awa@example.com",
                payer_phone=payer_phone,
                actor_id=str(order.user_id),
                actor_role="customer",
            ),
            asynchronous=False,
        )
        return current_domain.repository_for(Payment).get(payment_id)

    return _pay


_plan_counter = 0


@pytest.fixture
def make_plan():
    from marketplace.subscription.plan import Plan
    from marketplace.subscription.publishing import PublishPlan
    from protean import current_domain

    def _make(**overrides):
        global _plan_counter
        _plan_counter += 1
        attributes = {
            "name": f"Plan {_plan_counter}",
            "slug": f"plan-{_plan_counter}",
            "price": 30000,
            "duration_days": 30,
            "features": ["storefront", "analytics"],
            "max_products": 50,
        }
        attributes.update(overrides)
        plan_id = current_domain.process(PublishPlan(**attributes), asynchronous=False)
        return current_domain.repository_for(Plan).get(plan_id)

    return _make


@pytest.fixture
def subscribe():
    from marketplace.subscription.lifecycle import CreateSubscription
    from marketplace.subscription.subscription import Subscription
    from protean import current_domain

    def _subscribe(plan, user_id="seller-001", **options):
        subscription_id = current_domain.process(
            CreateSubscription(
                user_id=user_id,
                plan_id=str(plan.id),
                actor_id=user_id,
                actor_role="customer",
                **options,
            ),
            asynchronous=False,
        )
        return current_domain.repository_for(Subscription).get(subscription_id)

    return _subscribe
