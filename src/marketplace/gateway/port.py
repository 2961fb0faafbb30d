"""Payment gateway port (abstract interface).

Adapters never raise on provider or network failures: they return a result
with ``success=False`` and an ``error`` message, and the caller decides
whether that is fatal. Swapping the fake adapter for the live e-billing one
changes no domain code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class BillRequest:
    """Everything the provider needs to issue a bill."""

    amount: int
    currency: str
    description: str
    payment_method: str
    payer_name: str
    payer_phone: str
    payer_email: str | None = None
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class BillResult:
    success: bool
    bill_id: str | None = None
    payment_url: str | None = None
    external_reference: str | None = None
    response: dict | None = None
    error: str | None = None


@dataclass(frozen=True)
class UssdResult:
    success: bool
    message: str | None = None
    response: dict | None = None
    error: str | None = None


@dataclass(frozen=True)
class StatusResult:
    """Bill status as reported by the provider (raw provider vocabulary)."""

    success: bool
    status: str | None = None
    amount: int | None = None
    paid_at: str | None = None
    transaction_ref: str | None = None
    response: dict | None = None
    error: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_bill(self, request: BillRequest) -> BillResult:
        """Issue a bill the payer settles with the chosen method."""
        ...

    @abstractmethod
    def send_ussd_push(self, bill_id: str, phone: str, method: str) -> UssdResult:
        """Ask the mobile-money operator to prompt the payer's phone."""
        ...

    @abstractmethod
    def check_status(self, bill_id: str) -> StatusResult:
        ...

    @abstractmethod
    def verify_callback_signature(self, payload: dict) -> bool:
        """Verify that a callback payload was sent by the provider."""
        ...
