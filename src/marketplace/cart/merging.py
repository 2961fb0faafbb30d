"""Guest cart merge at sign-in.

Session lines whose (product, options) already exist for the user are summed
into the user's line and deleted; the rest are reassigned to the user.
Running the merge again finds no session lines and changes nothing.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.cart.cart import CartItem
from marketplace.domain import marketplace

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="CartItem")
class MergeCart:
    user_id = Identifier(required=True)
    session_id = String(required=True, max_length=255)


@marketplace.command_handler(part_of=CartItem)
class MergeCartHandler:
    @handle(MergeCart)
    def merge_cart(self, command):
        repo = current_domain.repository_for(CartItem)
        session_lines = repo.for_owner(session_id=command.session_id)
        if not session_lines:
            return 0

        user_lines = {
            (str(line.product_id), line.options_key): line for line in repo.for_owner(user_id=command.user_id)
        }

        for line in session_lines:
            existing = user_lines.get((str(line.product_id), line.options_key))
            if existing is not None:
                existing.change_quantity(existing.quantity + line.quantity)
                repo.add(existing)
                repo.remove(line)
            else:
                line.assign_to_user(command.user_id)
                repo.add(line)
                user_lines[(str(line.product_id), line.options_key)] = line

        logger.info(
            "Merged guest cart",
            user_id=str(command.user_id),
            session_id=command.session_id,
            merged_lines=len(session_lines),
        )
        return len(session_lines)
