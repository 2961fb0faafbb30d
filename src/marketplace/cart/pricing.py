"""Pricing policy applied to carts and orders.

All amounts are integers in the smallest unit of the operating currency.
The values are read from ``[custom]`` in domain.toml so that a deployment can
change tax and shipping without code changes.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class PricingPolicy:
    currency: str = "XAF"
    tax_rate_percent: int = 18
    shipping_flat_fee: int = 2500
    free_shipping_threshold: int = 50000
    heavy_parcel_weight_kg: float = 5.0
    heavy_parcel_surcharge: int = 1000

    @classmethod
    def from_domain(cls, domain) -> "PricingPolicy":
        return cls(
            currency=str(domain.CURRENCY),
            tax_rate_percent=int(domain.TAX_RATE_PERCENT),
            shipping_flat_fee=int(domain.SHIPPING_FLAT_FEE),
            free_shipping_threshold=int(domain.FREE_SHIPPING_THRESHOLD),
            heavy_parcel_weight_kg=float(domain.HEAVY_PARCEL_WEIGHT_KG),
            heavy_parcel_surcharge=int(domain.HEAVY_PARCEL_SURCHARGE),
        )

    def tax_for(self, subtotal: int) -> int:
        return round(subtotal * self.tax_rate_percent / 100)

    def shipping_for(self, subtotal: int, total_weight: float) -> int:
        if subtotal >= self.free_shipping_threshold:
            return 0
        shipping = self.shipping_flat_fee
        if total_weight > self.heavy_parcel_weight_kg:
            shipping += self.heavy_parcel_surcharge
        return shipping
