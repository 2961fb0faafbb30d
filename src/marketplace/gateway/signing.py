"""Signatures exchanged with the e-billing provider.

Both directions use SHA-256 over ``|``-joined fields with the shared key as
the last field. Outbound bills sign ``username|amount|currency|phone``;
inbound callbacks sign ``bill_id|status|amount``.
"""

import hashlib
import hmac


def _sha256(*parts) -> str:
    return hashlib.sha256("|".join(str(part) for part in parts).encode("utf-8")).hexdigest()


def amount_text(amount) -> str:
    """Render an amount the way the provider does: integral values without decimals."""
    if isinstance(amount, float) and amount.is_integer():
        return str(int(amount))
    return str(amount)


def bill_signature(username: str, amount, currency: str, payer_phone: str, shared_key: str) -> str:
    return _sha256(username, amount_text(amount), currency, payer_phone, shared_key)


def callback_signature(bill_id: str, status: str, amount, shared_key: str) -> str:
    return _sha256(bill_id, status, amount_text(amount), shared_key)


def verify_callback_signature(payload: dict, shared_key: str) -> bool:
    """Constant-time check of a callback's ``signature`` field.

    A missing signature or a missing signed field never verifies.
    """
    provided = payload.get("signature")
    if not provided or not shared_key:
        return False
    if any(payload.get(field) in (None, "") for field in ("bill_id", "status", "amount")):
        return False

    expected = callback_signature(payload["bill_id"], payload["status"], payload["amount"], shared_key)
    return hmac.compare_digest(expected, str(provided))

