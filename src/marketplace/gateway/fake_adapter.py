"""Configurable fake e-billing gateway for development and testing.

Simulates the provider without network calls. Bills are "issued" locally,
USSD pushes and status checks answer as configured, and callbacks are signed
and verified with the configured shared key exactly like the live adapter,
so webhook payloads can be produced with ``sign_callback``.
"""

from dataclasses import replace
from datetime import UTC, datetime

from marketplace.gateway.methods import config_for, validate_phone_for_method
from marketplace.gateway.port import BillRequest, BillResult, PaymentGateway, StatusResult, UssdResult
from marketplace.gateway.settings import EbillingSettings
from marketplace.gateway.signing import callback_signature, verify_callback_signature
from marketplace.utils.references import generate_reference


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, settings: EbillingSettings | None = None) -> None:
        settings = settings or EbillingSettings()
        if not settings.shared_key:
            settings = replace(settings, shared_key="fake-shared-key")
        self.settings = settings
        self.should_succeed: bool = True
        self.ussd_should_succeed: bool = True
        self.failure_reason: str = "Provider unavailable"
        self.statuses: dict[str, dict] = {}
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Provider unavailable",
        ussd_should_succeed: bool = True,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.ussd_should_succeed = ussd_should_succeed

    def set_status(self, bill_id: str, status: str, amount: int | None = None, transaction_ref: str | None = None):
        """Answer future ``check_status`` calls for ``bill_id`` with this status."""
        self.statuses[bill_id] = {
            "status": status,
            "amount": amount,
            "paid_at": datetime.now(UTC).isoformat() if status == "paid" else None,
            "transaction_ref": transaction_ref,
        }

    def sign_callback(self, bill_id: str, status: str, amount) -> str:
        return callback_signature(bill_id, status, amount, self.settings.shared_key)

    def create_bill(self, request: BillRequest) -> BillResult:
        self.calls.append({"method": "create_bill", "request": request})

        if not self.should_succeed:
            return BillResult(success=False, error=self.failure_reason)

        bill_id = generate_reference(self.settings.bill_id_prefix, datetime.now(UTC))
        return BillResult(
            success=True,
            bill_id=bill_id,
            payment_url=f"https://fake-ebilling.local/pay/{bill_id}",
            external_reference=f"REF-{bill_id}",
            response={"data": {"bill_id": bill_id}},
        )

    def send_ussd_push(self, bill_id: str, phone: str, method: str) -> UssdResult:
        self.calls.append({"method": "send_ussd_push", "bill_id": bill_id, "phone": phone, "payment_method": method})

        if not config_for(method).is_mobile_money or not validate_phone_for_method(phone, method):
            return UssdResult(success=False, error="Invalid phone number for payment method")
        if not self.ussd_should_succeed:
            return UssdResult(success=False, error=self.failure_reason)
        return UssdResult(success=True, message="USSD push sent")

    def check_status(self, bill_id: str) -> StatusResult:
        self.calls.append({"method": "check_status", "bill_id": bill_id})

        if not self.should_succeed:
            return StatusResult(success=False, error=self.failure_reason)
        status = self.statuses.get(bill_id, {"status": "pending"})
        return StatusResult(success=True, response={"data": status}, **status)

    def verify_callback_signature(self, payload: dict) -> bool:
        return verify_callback_signature(payload, self.settings.shared_key)
