"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations. The default
adapter follows ``[custom.EBILLING] mode``:
- ``fake``: FakeGateway, for development and testing
- ``live``: EbillingGateway talking to the provider over HTTP
"""

from protean.utils.globals import current_domain

from marketplace.gateway.ebilling import EbillingGateway
from marketplace.gateway.fake_adapter import FakeGateway
from marketplace.gateway.port import PaymentGateway
from marketplace.gateway.settings import EbillingSettings

_current_gateway: PaymentGateway | None = None


def ebilling_settings() -> EbillingSettings:
    return EbillingSettings.from_config(getattr(current_domain, "EBILLING", None))


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway, building the configured one on first use."""
    global _current_gateway
    if _current_gateway is None:
        settings = ebilling_settings()
        if settings.mode == "live":
            _current_gateway = EbillingGateway(settings)
        else:
            _current_gateway = FakeGateway(settings)
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to the configured default gateway."""
    global _current_gateway
    _current_gateway = None
