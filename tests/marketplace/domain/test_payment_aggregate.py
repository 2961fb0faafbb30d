"""Tests for the Payment aggregate and the provider status table."""

import pytest
from marketplace.exceptions import IllegalTransition
from marketplace.gateway.methods import PaymentMethod, PaymentProvider
from marketplace.payment.events import PaymentCompleted, PaymentFailed, PaymentInitiated
from marketplace.payment.payment import Payment, PayerInfo, PaymentStatus
from marketplace.payment.status_map import map_provider_status
from protean.exceptions import ValidationError


def _payment(**overrides):
    defaults = {
        "reference": "PAY-20260714-ABCD1234",
        "user_id": "usr-001",
        "amount": 50000,
        "currency": "XAF",
        "method": PaymentMethod.AIRTEL_MONEY,
        "provider": PaymentProvider.EBILLING,
        "payer": PayerInfo(name="Awa Ndong", phone="077123456"),
        "order_id": "ord-001",
        "bill_id": "KEVA-20260714-ZXCV0987",
    }
    defaults.update(overrides)
    return Payment.initiate(**defaults)


class TestPaymentCreation:
    def test_initiated_payment_is_pending(self):
        payment = _payment()
        assert payment.status == PaymentStatus.PENDING.value
        assert payment.method == "airtel_money"
        assert payment.provider == "ebilling"
        assert payment.payer.name == "Awa Ndong"

    def test_raises_initiated_event(self):
        payment = _payment()
        initiated = [event for event in payment._events if isinstance(event, PaymentInitiated)]
        assert initiated[0].reference == "PAY-20260714-ABCD1234"
        assert initiated[0].payment_id == str(payment.id)

    def test_payment_needs_an_order_or_a_subscription(self):
        with pytest.raises(ValidationError):
            _payment(order_id=None)

    def test_subscription_payment(self):
        payment = _payment(order_id=None, subscription_id="sub-001")
        assert str(payment.subscription_id) == "sub-001"

    def test_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            _payment(amount=0)


class TestPaymentTransitions:
    def test_complete_stamps_paid_at(self):
        payment = _payment()
        payment.complete(transaction_id="TX-1")
        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.paid_at is not None
        assert payment.transaction_id == "TX-1"
        assert payment.is_terminal

    def test_complete_from_processing(self):
        payment = _payment()
        payment.start_processing()
        payment.complete()
        assert payment.status == PaymentStatus.COMPLETED.value

    def test_completed_event(self):
        payment = _payment()
        payment.complete()
        completed = [event for event in payment._events if isinstance(event, PaymentCompleted)]
        assert completed[0].amount == 50000
        assert completed[0].manual is False

    def test_fail_records_reason(self):
        payment = _payment()
        payment.fail("Provider reported expired")
        assert payment.status == PaymentStatus.FAILED.value
        assert payment.failed_at is not None
        assert payment.failure_reason == "Provider reported expired"
        assert any(isinstance(event, PaymentFailed) for event in payment._events)

    def test_manual_confirmation(self):
        payment = _payment(method=PaymentMethod.BANK_TRANSFER, provider=PaymentProvider.MANUAL, bill_id=None)
        payment.confirm_manually("admin-001", notes="Seen on statement", transaction_id="VIR-99")

        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.manual_confirmation.confirmed_by == "admin-001"
        assert payment.manual_confirmation.notes == "Seen on statement"
        assert payment.manual_confirmation.confirmed_at is not None
        assert payment.transaction_id == "VIR-99"

    def test_cancel(self):
        payment = _payment()
        payment.cancel("Changed method", "usr-001")
        assert payment.status == PaymentStatus.CANCELLED.value
        assert payment.cancelled_by == "usr-001"

    def test_cannot_cancel_completed_payment(self):
        payment = _payment()
        payment.complete()
        with pytest.raises(IllegalTransition):
            payment.cancel(None, "usr-001")

    def test_refund_only_after_completion(self):
        payment = _payment()
        with pytest.raises(IllegalTransition):
            payment.refund()
        payment.complete()
        payment.refund()
        assert payment.status == PaymentStatus.REFUNDED.value
        assert payment.refunded_at is not None

    @pytest.mark.parametrize("status", ["completed", "failed", "cancelled", "refunded"])
    def test_terminal_statuses(self, status):
        payment = _payment()
        payment.status = status
        assert payment.is_terminal

    def test_gateway_response_is_merged(self):
        payment = _payment()
        payment.record_gateway_response({"bill": {"id": 1}})
        payment.record_gateway_response({"callback": {"status": "paid"}})
        assert set(payment.gateway_response) == {"bill", "callback"}


class TestProviderStatusMap:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("paid", PaymentStatus.COMPLETED),
            ("PAID", PaymentStatus.COMPLETED),
            ("pending", PaymentStatus.PENDING),
            ("processing", PaymentStatus.PROCESSING),
            ("failed", PaymentStatus.FAILED),
            ("expired", PaymentStatus.FAILED),
            ("cancelled", PaymentStatus.FAILED),
        ],
    )
    def test_known_statuses(self, raw, expected):
        assert map_provider_status(raw) == expected

    def test_unknown_status_is_ignored(self):
        assert map_provider_status("on_hold") is None
        assert map_provider_status(None) is None
