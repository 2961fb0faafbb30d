"""Random, human-readable references: ``<PREFIX>-YYYYMMDD-XXXXXXXX``."""

import secrets
import string
from datetime import datetime

_ALPHABET = string.ascii_uppercase + string.digits


def generate_reference(prefix: str, now: datetime, length: int = 8) -> str:
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(length))
    return f"{prefix}-{now:%Y%m%d}-{suffix}"
