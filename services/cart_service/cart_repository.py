"""
Cart Repository Module

Redis-based persistence for the cart aggregate. Every mutation is a
read-modify-write of one JSON document per user, executed inside a Redis
optimistic transaction (WATCH / MULTI / EXEC) so concurrent requests of the same
user cannot lose each other's updates: a transaction whose key changed since
WATCH is retried on a fresh read.

Key Features:
    - One document per user under "cart:{user_id}"
    - Lazy creation on the first add; carts are emptied, never deleted
    - Totals recomputed in the same transaction as the item change
    - Optional TTL for deployments that expire abandoned carts

Data Format (Redis):
    Key: "cart:65f1c0"
    Value: '{
        "user_id": "65f1c0",
        "items": [{"product_id": "PROD-8F2A", "quantity": 2, "price": 1000.0}],
        "subtotal": 2000.0, "shipping": 1500.0, "total": 3500.0,
        "created_at": "...", "updated_at": "..."
    }'

Example Usage:
    ```python
    repo = CartRepository(redis_client, ShippingPolicy())

    cart = repo.add_item("65f1c0", "PROD-8F2A", quantity=2, price=1000)
    cart.subtotal   # 2000
    cart = repo.add_item("65f1c0", "PROD-8F2A", quantity=3, price=1000)
    cart.items[0].quantity   # 5

    repo.update_item_quantity("65f1c0", "PROD-8F2A", 1)
    repo.remove_item("65f1c0", "PROD-8F2A")   # cart stays, empty, zero totals
    ```
"""

import logging
from typing import Callable, Optional, Tuple

import redis

from services.cart_service.cart import Cart, ShippingPolicy
from services.cart_service.errors import CartNotFoundError, InternalError

logger = logging.getLogger(__name__)


class CartRepository:
    """Repository for managing shopping carts in Redis."""

    CART_KEY_PREFIX = "cart:"

    def __init__(self, redis_client: redis.Redis, shipping_policy: ShippingPolicy, ttl: Optional[int] = None):
        """Initialize cart repository."""
        self.redis = redis_client
        self.shipping_policy = shipping_policy
        self.ttl = ttl

    def _key(self, user_id: str) -> str:
        return f"{self.CART_KEY_PREFIX}{user_id}"

    def get_cart(self, user_id: str) -> Optional[Cart]:
        """Get user's cart, None if it was never created."""
        cart_json = self.redis.get(self._key(user_id))
        if cart_json is None:
            return None
        return Cart.model_validate_json(cart_json)

    def add_item(self, user_id: str, product_id: str, quantity: int, price: float) -> Cart:
        """Add to the user's cart, creating it when absent. Merges into an existing line."""
        cart = self._mutate(
            user_id,
            lambda c: c.add_item(product_id, quantity, price),
            create=True,
            context={"product_id": product_id, "quantity": quantity, "price": price},
        )
        logger.info(f"Added {quantity} x {product_id} to cart for user {user_id}")
        return cart

    def update_item_quantity(self, user_id: str, product_id: str, quantity: int) -> Cart:
        """Set a line's quantity. Raises CartNotFoundError / CartItemNotFoundError."""
        cart = self._mutate(
            user_id,
            lambda c: c.set_quantity(product_id, quantity),
            context={"product_id": product_id, "quantity": quantity},
        )
        logger.info(f"Updated item {product_id} quantity to {quantity} for user {user_id}")
        return cart

    def remove_item(self, user_id: str, product_id: str) -> Tuple[Cart, bool]:
        """Pull a product from the cart. Absent products are a no-op; an absent cart is not.

        Returns the cart and whether a line was actually removed.
        """
        removed = []
        cart = self._mutate(
            user_id,
            lambda c: removed.append(c.remove_item(product_id)),
            context={"product_id": product_id},
        )
        if removed and removed[-1]:
            logger.info(f"Removed item {product_id} from cart for user {user_id}")
        else:
            logger.info(f"Product {product_id} not in cart for user {user_id}, nothing removed")
        return cart, bool(removed[-1])

    def clear_cart(self, user_id: str) -> Tuple[Cart, int]:
        """Remove every line, keeping the (now empty) cart. Returns the cart and how many lines went."""
        removed = []
        cart = self._mutate(user_id, lambda c: removed.append(c.clear()))
        logger.info(f"Cleared {removed[-1]} items from cart for user {user_id}")
        return cart, removed[-1]

    def _mutate(
        self,
        user_id: str,
        change: Callable[[Cart], object],
        create: bool = False,
        context: Optional[dict] = None,
    ) -> Cart:
        """Apply ``change`` and recompute totals inside one WATCHed transaction."""
        cart_key = self._key(user_id)

        def apply(pipe: redis.client.Pipeline) -> Cart:
            # Immediate-mode read while the key is WATCHed
            cart_json = pipe.get(cart_key)
            if cart_json is None:
                if not create:
                    raise CartNotFoundError(user_id)
                cart = Cart(user_id=user_id)
            else:
                cart = Cart.model_validate_json(cart_json)

            change(cart)
            cart.recalculate(self.shipping_policy)

            pipe.multi()
            pipe.set(cart_key, cart.model_dump_json(), ex=self.ttl)
            return cart

        try:
            return self.redis.transaction(apply, cart_key, value_from_callable=True)
        except redis.RedisError as e:
            logger.error(
                f"Failed to save cart for user {user_id}: {e}",
                extra={"user_id": user_id, **(context or {})},
                exc_info=True,
            )
            raise InternalError("Failed to save cart") from e
