"""Actors attributed to lifecycle operations.

Commands carry the acting party explicitly (``actor_id`` + ``actor_role``);
aggregates record the id for audit and handlers check the role where an
operation is restricted.
"""

from enum import Enum

from marketplace.exceptions import Unauthorized

SYSTEM_ACTOR = "system"


class ActorRole(Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    SYSTEM = "system"


_PRIVILEGED_ROLES = {ActorRole.ADMIN, ActorRole.SYSTEM}


def is_privileged(actor_role: str | None) -> bool:
    return actor_role is not None and ActorRole(actor_role) in _PRIVILEGED_ROLES


def require_privileged(actor_id: str, actor_role: str | None, operation: str) -> None:
    """Raise ``Unauthorized`` unless the actor is an admin or the system."""
    if not is_privileged(actor_role):
        raise Unauthorized(f"Actor {actor_id} is not allowed to {operation}")


def require_owner_or_privileged(owner_id, actor_id: str, actor_role: str | None, operation: str) -> None:
    """Customers may act on their own records only."""
    if is_privileged(actor_role):
        return
    if str(owner_id) != str(actor_id):
        raise Unauthorized(f"Actor {actor_id} is not allowed to {operation}")
