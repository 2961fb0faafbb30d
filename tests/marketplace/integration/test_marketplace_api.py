"""Integration tests for the cart, order, subscription and maintenance endpoints."""

from datetime import UTC, datetime, timedelta

from marketplace.order.order import Order
from protean import current_domain

ADDRESS = {
    "full_name": "Awa Ndong",
    "phone": "077123456",
    "street": "12 Boulevard Triomphal",
    "city": "Libreville",
}


def _add(client, product, quantity=1, **owner):
    owner = owner or {"user_id": "usr-001"}
    return client.post("/cart/items", json={"product_id": str(product.id), "quantity": quantity, **owner})


class TestCartAPI:
    def test_add_and_view(self, client, make_product):
        product = make_product(price=10000)
        response = _add(client, product, quantity=2)
        assert response.status_code == 201

        cart = client.get("/cart", params={"user_id": "usr-001"}).json()

        assert len(cart["items"]) == 1
        assert cart["items"][0]["line_total"] == 20000
        assert cart["totals"]["total_amount"] == 26100
        assert cart["issues"] == []

    def test_insufficient_stock(self, client, make_product):
        response = _add(client, make_product(stock_quantity=1), quantity=3)
        assert response.status_code == 400

    def test_zero_quantity_is_rejected(self, client, make_product):
        response = _add(client, make_product(), quantity=0)
        assert response.status_code == 422

    def test_update_and_remove(self, client, make_product):
        line_id = _add(client, make_product()).json()["cart_item_id"]

        assert client.put(f"/cart/items/{line_id}", json={"quantity": 2}).json() == {"status": "updated"}
        assert client.delete(f"/cart/items/{line_id}").json() == {"status": "removed"}
        assert client.get("/cart", params={"user_id": "usr-001"}).json()["items"] == []

    def test_merge_guest_cart(self, client, make_product):
        _add(client, make_product(), session_id="sess-xyz")

        response = client.post("/cart/merge", json={"user_id": "usr-001", "session_id": "sess-xyz"})

        assert response.status_code == 200
        assert len(client.get("/cart", params={"user_id": "usr-001"}).json()["items"]) == 1


class TestOrderAPI:
    def test_checkout(self, client, make_product):
        _add(client, make_product(price=10000), quantity=2)

        response = client.post("/orders/checkout", json={"user_id": "usr-001", "shipping_address": ADDRESS})

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["total_amount"] == 26100
        assert data["order_number"].startswith("KEV-")
        order = current_domain.repository_for(Order).get(data["order_id"])
        assert order.billing_address.city == "Libreville"

    def test_checkout_with_separate_billing_address(self, client, make_product):
        _add(client, make_product())
        billing = {**ADDRESS, "street": "BP 2000", "city": "Port-Gentil"}

        response = client.post(
            "/orders/checkout",
            json={"user_id": "usr-001", "shipping_address": ADDRESS, "billing_address": billing, "notes": None},
        )

        assert response.status_code == 201
        order = current_domain.repository_for(Order).get(response.json()["order_id"])
        assert order.billing_address.city == "Port-Gentil"
        assert order.shipping_address.city == "Libreville"

    def test_checkout_of_empty_cart(self, client):
        response = client.post("/orders/checkout", json={"user_id": "usr-001", "shipping_address": ADDRESS})
        assert response.status_code == 400

    def test_transition(self, client, placed_order):
        response = client.post(
            f"/orders/{placed_order.id}/transition",
            json={"target_status": "confirmed", "actor_id": "admin-001", "actor_role": "admin"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"

    def test_illegal_transition(self, client, placed_order):
        response = client.post(
            f"/orders/{placed_order.id}/transition",
            json={"target_status": "delivered", "actor_id": "admin-001", "actor_role": "admin"},
        )
        assert response.status_code == 400

    def test_customer_cannot_ship(self, client, placed_order):
        response = client.post(
            f"/orders/{placed_order.id}/transition",
            json={"target_status": "shipped", "actor_id": "usr-001"},
        )
        assert response.status_code == 403


class TestSubscriptionAPI:
    def test_create_change_and_cancel(self, client, make_plan):
        starter = make_plan(price=30000)
        pro = make_plan(price=60000)

        response = client.post(
            "/subscriptions",
            json={"user_id": "seller-001", "plan_id": str(starter.id), "trial_days": 7, "actor_id": "seller-001"},
        )
        assert response.status_code == 201
        subscription_id = response.json()["subscription_id"]

        response = client.post(
            f"/subscriptions/{subscription_id}/change-plan",
            json={"plan_id": str(pro.id), "prorate": False, "actor_id": "seller-001"},
        )
        assert response.json() == {"prorated_amount": 60000}

        response = client.post(f"/subscriptions/{subscription_id}/cancel", json={"actor_id": "seller-001"})
        assert response.json() == {"status": "cancelled"}

    def test_unknown_plan(self, client):
        response = client.post(
            "/subscriptions",
            json={"user_id": "seller-001", "plan_id": "nope", "actor_id": "seller-001"},
        )
        assert response.status_code == 404


class TestMaintenanceAPI:
    def test_poll_payments(self, client, placed_order, pay_order, gateway):
        payment = pay_order(placed_order)
        gateway.set_status(payment.bill_id, "paid", amount=payment.amount)
        later = (datetime.now(UTC) + timedelta(minutes=10)).isoformat()

        response = client.post("/maintenance/payments/poll", json={"now": later})

        assert response.status_code == 200
        assert response.json() == {"checked": 1, "updated": 1, "errors": 0}

    def test_expire_subscriptions(self, client, make_plan, subscribe):
        subscription = subscribe(make_plan(), trial_days=7, auto_renew=False)
        later = (subscription.ends_at + timedelta(days=1)).isoformat()

        response = client.post("/maintenance/subscriptions/expire", json={"now": later})

        assert response.json() == {"processed": 1, "renewed": 0, "expired": 1, "errors": 0}

    def test_sweeps_without_body(self, client):
        response = client.post("/maintenance/subscriptions/expire")
        assert response.status_code == 200
        assert response.json()["processed"] == 0

    def test_sweep_time_needs_a_timezone(self, client):
        response = client.post("/maintenance/payments/poll", json={"now": "2030-01-01T10:00:00"})
        assert response.status_code == 422

        response = client.post("/maintenance/subscriptions/expire", json={"now": "2030-01-01T10:00:00+01:00"})
        assert response.status_code == 200
