"""Proration of an immediate plan change.

The customer pays the new plan's daily rate for the days left in the current
period, minus what those days were worth on the current subscription. The
difference is floored to a whole currency unit and never negative. When the
period has already run out, the full price of the new plan is due.
"""

import math
from datetime import datetime
from fractions import Fraction


def remaining_days(ends_at: datetime, now: datetime) -> int:
    return (ends_at - now).days


def prorated_charge(
    current_amount: int,
    starts_at: datetime,
    ends_at: datetime,
    new_price: int,
    new_duration_days: int,
    now: datetime,
) -> int:
    remaining = remaining_days(ends_at, now)
    if remaining <= 0:
        return new_price

    total_days = (ends_at - starts_at).days
    new_value = Fraction(remaining * new_price, new_duration_days)
    unused_value = Fraction(remaining * current_amount, total_days) if total_days > 0 else Fraction(0)

    return max(0, math.floor(new_value - unused_value))
