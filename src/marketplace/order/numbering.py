"""Human-readable order numbers: ``<PREFIX>-YYYYMM-NNNN``.

The sequence restarts every month. Numbers are unique; a collision under
concurrent checkouts is rejected by the unique constraint on
``Order.order_number`` and surfaces as a validation error.
"""

from datetime import datetime


def month_prefix(prefix: str, now: datetime) -> str:
    return f"{prefix}-{now:%Y%m}-"


def format_order_number(prefix: str, now: datetime, sequence: int) -> str:
    return f"{month_prefix(prefix, now)}{sequence:04d}"


def next_sequence(existing_numbers: list[str], prefix: str, now: datetime) -> int:
    """One more than the highest sequence already used this month."""
    start = month_prefix(prefix, now)
    used = [int(number[len(start) :]) for number in existing_numbers if number.startswith(start)]
    return max(used, default=0) + 1
