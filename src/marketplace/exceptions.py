"""Error taxonomy of the marketplace core.

Business-rule rejections extend Protean's ``ValidationError`` so they surface
as 400s through ``register_exception_handlers`` and roll back the enclosing
UnitOfWork like any other validation failure.
"""

from protean.exceptions import (
    InvalidOperationError,
    ObjectNotFoundError,
    ProteanException,
    ValidationError,
)


class InsufficientStock(ValidationError):
    """Requested quantity exceeds tracked inventory and backorders are off."""

    def __init__(self, product_id: str, requested: int, available: int) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            {"stock": [f"Insufficient stock for product {product_id}: requested {requested}, available {available}"]}
        )


class OutOfStock(InsufficientStock):
    """Raised by the stock ledger when a decrement would go below zero."""


class IllegalTransition(ValidationError):
    def __init__(self, entity: str, current: str, target: str) -> None:
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__({"status": [f"Cannot transition {entity} from {current} to {target}"]})


class GatewayError(ProteanException):
    """The payment provider could not complete a request.

    The message is safe to show to end users; the provider's own error is
    kept in ``reason`` and logged by the caller.
    """

    def __init__(self, reason: str, reference: str | None = None) -> None:
        self.reason = reason
        self.reference = reference
        super().__init__("Payment provider unavailable, please try again later")


class SignatureMismatch(ProteanException):
    def __init__(self, bill_id: str | None) -> None:
        self.bill_id = bill_id
        super().__init__(f"Invalid callback signature for bill {bill_id}")


class NotFound(ObjectNotFoundError):
    pass


class Unauthorized(InvalidOperationError):
    pass
