"""Cart lines: one row per (owner, product, options).

A cart is not an aggregate of its own: each line is persisted independently
and owned either by a signed-in user or by an anonymous session, never both.
The unit price is captured when the line is created so later price changes
can be detected at checkout.
"""

import json
from datetime import UTC, datetime

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Dict, Identifier, Integer, String

from marketplace.domain import marketplace


def options_key(options: dict | None) -> str:
    """Canonical representation of a line's options, used to find equivalent lines."""
    return json.dumps(options or {}, sort_keys=True, separators=(",", ":"))


@marketplace.aggregate
class CartItem:
    user_id = Identifier()
    session_id = String(max_length=255)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)
    options = Dict()
    options_key = String(max_length=1000, default="{}")
    added_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def line_has_exactly_one_owner(self):
        if bool(self.user_id) == bool(self.session_id):
            raise ValidationError({"owner": ["A cart line belongs to either a user or a session"]})

    @classmethod
    def create(cls, product_id, quantity, unit_price, options=None, user_id=None, session_id=None):
        now = datetime.now(UTC)
        return cls(
            user_id=user_id,
            session_id=session_id,
            product_id=product_id,
            quantity=quantity,
            unit_price=unit_price,
            options=options or {},
            options_key=options_key(options),
            added_at=now,
            updated_at=now,
        )

    @property
    def line_total(self) -> int:
        return self.quantity * self.unit_price

    def change_quantity(self, quantity: int) -> None:
        self.quantity = quantity
        self.updated_at = datetime.now(UTC)

    def assign_to_user(self, user_id) -> None:
        """Hand a session line over to a signed-in user."""
        with atomic_change(self):
            self.user_id = user_id
            self.session_id = None
        self.updated_at = datetime.now(UTC)
