"""Integration tests for the payment endpoints and the e-billing webhook."""

from marketplace.payment.payment import Payment
from protean import current_domain


def _signed(gateway, bill_id, status="paid", amount=26100, **extra):
    return {
        "bill_id": bill_id,
        "status": status,
        "amount": amount,
        "signature": gateway.sign_callback(bill_id, status, amount),
        **extra,
    }


def _initiate(client, order, method="airtel_money", **overrides):
    body = {
        "order_id": str(order.id),
        "method": method,
        "payer_name": "Awa Ndong",
        "payer_phone": "077123456",
        "actor_id": str(order.user_id),
        "actor_role": "customer",
    }
    body.update(overrides)
    return client.post("/payments", json=body)


class TestInitiatePaymentAPI:
    def test_returns_created_payment(self, client, placed_order):
        response = _initiate(client, placed_order)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "processing"
        assert data["amount"] == 26100
        assert data["currency"] == "XAF"
        assert data["reference"].startswith("PAY-")
        assert data["payment_url"].endswith(data["bill_id"])

    def test_invalid_phone(self, client, placed_order):
        response = _initiate(client, placed_order, method="moov_money")
        assert response.status_code == 400

    def test_unknown_method(self, client, placed_order):
        response = _initiate(client, placed_order, method="bitcoin")
        assert response.status_code == 400

    def test_gateway_outage(self, client, placed_order, gateway):
        gateway.configure(should_succeed=False)
        response = _initiate(client, placed_order)

        assert response.status_code == 503
        assert response.json()["reference"].startswith("PAY-")

    def test_someone_elses_order(self, client, placed_order):
        response = _initiate(client, placed_order, actor_id="usr-999")
        assert response.status_code == 403

    def test_get_payment(self, client, placed_order):
        payment_id = _initiate(client, placed_order).json()["payment_id"]
        response = client.get(f"/payments/{payment_id}")
        assert response.status_code == 200
        assert response.json()["method"] == "airtel_money"

    def test_unknown_payment(self, client):
        assert client.get("/payments/does-not-exist").status_code == 404

    def test_methods(self, client):
        response = client.get("/payments/methods")
        assert response.status_code == 200
        assert {method["key"] for method in response.json()} >= {"airtel_money", "cash"}


class TestEbillingWebhook:
    def test_paid_callback(self, client, placed_order, gateway):
        bill_id = _initiate(client, placed_order).json()["bill_id"]

        response = client.post("/payments/ebilling/callback", json=_signed(gateway, bill_id))

        assert response.status_code == 200
        assert response.json() == {"status": "processed"}
        payment = current_domain.repository_for(Payment).find_by_bill_id(bill_id)
        assert payment.status == "completed"

    def test_replayed_callback_is_acknowledged(self, client, placed_order, gateway):
        bill_id = _initiate(client, placed_order).json()["bill_id"]
        client.post("/payments/ebilling/callback", json=_signed(gateway, bill_id))

        response = client.post("/payments/ebilling/callback", json=_signed(gateway, bill_id))

        assert response.status_code == 200
        assert response.json() == {"status": "already_processed"}

    def test_bad_signature(self, client, placed_order, gateway):
        bill_id = _initiate(client, placed_order).json()["bill_id"]
        payload = _signed(gateway, bill_id)
        payload["amount"] = 1

        response = client.post("/payments/ebilling/callback", json=payload)

        assert response.status_code == 400
        assert current_domain.repository_for(Payment).find_by_bill_id(bill_id).status == "processing"

    def test_missing_fields(self, client):
        response = client.post("/payments/ebilling/callback", json={"status": "paid"})
        assert response.status_code == 400

    def test_malformed_body(self, client):
        response = client.post(
            "/payments/ebilling/callback",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400

    def test_non_object_body(self, client):
        response = client.post("/payments/ebilling/callback", json=["paid"])
        assert response.status_code == 400

    def test_unknown_bill(self, client, gateway):
        response = client.post("/payments/ebilling/callback", json=_signed(gateway, "KEVA-20260101-UNKNOWN1"))
        assert response.status_code == 404


class TestPaymentAdministrationAPI:
    def test_confirm_requires_admin(self, client, placed_order):
        payment_id = _initiate(client, placed_order, method="bank_transfer").json()["payment_id"]

        response = client.post(
            f"/payments/{payment_id}/confirm",
            json={"actor_id": "usr-001", "actor_role": "customer"},
        )
        assert response.status_code == 403

        response = client.post(
            f"/payments/{payment_id}/confirm",
            json={"actor_id": "admin-001", "actor_role": "admin", "notes": "Transfer received"},
        )
        assert response.status_code == 200
        assert response.json() == {"status": "processed"}

    def test_cancel(self, client, placed_order):
        payment_id = _initiate(client, placed_order, method="cash").json()["payment_id"]
        response = client.post(
            f"/payments/{payment_id}/cancel",
            json={"actor_id": "usr-001", "reason": "Changed my mind"},
        )
        assert response.status_code == 200
        assert response.json() == {"status": "cancelled"}

    def test_check_status(self, client, placed_order, gateway):
        created = _initiate(client, placed_order).json()
        gateway.set_status(created["bill_id"], "failed")

        response = client.post(f"/payments/{created['payment_id']}/check-status")

        assert response.status_code == 200
        assert response.json() == {"status": "processed"}
        assert client.get(f"/payments/{created['payment_id']}").json()["status"] == "failed"

    def test_configure_fake_gateway(self, client, gateway):
        response = client.post("/payments/gateway/configure", params={"should_succeed": False})
        assert response.status_code == 200
        assert gateway.should_succeed is False
