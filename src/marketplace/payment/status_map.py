"""Provider status vocabulary → internal payment status.

Shared by callbacks and status polling so both paths agree on what a
provider status means. Unknown statuses map to ``None`` and are ignored.
"""

from marketplace.payment.payment import PaymentStatus

PROVIDER_STATUS_MAP = {
    "paid": PaymentStatus.COMPLETED,
    "completed": PaymentStatus.COMPLETED,
    "success": PaymentStatus.COMPLETED,
    "pending": PaymentStatus.PENDING,
    "processing": PaymentStatus.PROCESSING,
    "failed": PaymentStatus.FAILED,
    "error": PaymentStatus.FAILED,
    "expired": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
}


def map_provider_status(raw_status: str | None) -> PaymentStatus | None:
    if not raw_status:
        return None
    return PROVIDER_STATUS_MAP.get(str(raw_status).strip().lower())
