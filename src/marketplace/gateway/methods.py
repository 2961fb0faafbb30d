"""Payment methods accepted by the marketplace and how the provider names them.

Mobile-money methods carry the operator prefix and national number length
used to reject malformed phone numbers before any network call.
"""

import re
from dataclasses import dataclass
from enum import Enum


class PaymentMethod(Enum):
    AIRTEL_MONEY = "airtel_money"
    MOOV_MONEY = "moov_money"
    VISA_MASTERCARD = "visa_mastercard"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"


class PaymentProvider(Enum):
    EBILLING = "ebilling"
    MANUAL = "manual"


@dataclass(frozen=True)
class MethodConfig:
    provider: PaymentProvider
    display_name: str
    provider_code: str | None = None
    phone_prefix: str | None = None
    phone_length: int | None = None

    @property
    def is_mobile_money(self) -> bool:
        return self.phone_prefix is not None


METHODS = {
    PaymentMethod.AIRTEL_MONEY: MethodConfig(
        provider=PaymentProvider.EBILLING,
        display_name="Airtel Money",
        provider_code="airtelmoney",
        phone_prefix="07",
        phone_length=9,
    ),
    PaymentMethod.MOOV_MONEY: MethodConfig(
        provider=PaymentProvider.EBILLING,
        display_name="Moov Money",
        provider_code="moovmoney4",
        phone_prefix="06",
        phone_length=9,
    ),
    PaymentMethod.VISA_MASTERCARD: MethodConfig(
        provider=PaymentProvider.EBILLING,
        display_name="Visa/Mastercard",
        provider_code="ORABANK_NG",
    ),
    PaymentMethod.BANK_TRANSFER: MethodConfig(provider=PaymentProvider.MANUAL, display_name="Bank transfer"),
    PaymentMethod.CASH: MethodConfig(provider=PaymentProvider.MANUAL, display_name="Cash"),
}


def config_for(method: PaymentMethod | str) -> MethodConfig:
    return METHODS[PaymentMethod(method)]


def digits_only(phone: str) -> str:
    return re.sub(r"[^0-9]", "", phone or "")


def validate_phone_for_method(phone: str, method: PaymentMethod | str) -> bool:
    """True when ``phone`` is a plausible number for the method's operator.

    Methods without an operator prefix accept any number.
    """
    config = config_for(method)
    if not config.is_mobile_money:
        return True
    clean = digits_only(phone)
    return clean.startswith(config.phone_prefix) and len(clean) == config.phone_length


def format_phone_number(phone: str) -> str:
    """International format expected by the provider (``241`` + national number).

    Numbers in an unknown shape are passed through with only the digits kept.
    """
    if (phone or "").startswith("+241"):
        return digits_only(phone)

    clean = digits_only(phone)
    if len(clean) == 8:
        return f"241{clean}"
    return clean


def available_methods() -> list[dict]:
    return [
        {
            "key": method.value,
            "name": config.provider_code or method.value,
            "display_name": config.display_name,
            "provider": config.provider.value,
        }
        for method, config in METHODS.items()
    ]
