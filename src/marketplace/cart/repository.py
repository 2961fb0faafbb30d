from marketplace.cart.cart import CartItem, options_key
from marketplace.domain import marketplace


@marketplace.repository(part_of=CartItem)
class CartItemRepository:
    def for_owner(self, user_id=None, session_id=None) -> list[CartItem]:
        if user_id:
            query = self.query.filter(user_id=str(user_id))
        elif session_id:
            query = self.query.filter(session_id=session_id)
        else:
            return []
        return sorted(query.limit(None).all().items, key=lambda item: item.added_at)

    def find_line(self, product_id, options=None, user_id=None, session_id=None) -> CartItem | None:
        key = options_key(options)
        return next(
            (
                item
                for item in self.for_owner(user_id=user_id, session_id=session_id)
                if str(item.product_id) == str(product_id) and item.options_key == key
            ),
            None,
        )

    def remove(self, item: CartItem) -> None:
        self._dao.delete(item)
