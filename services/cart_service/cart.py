"""
cart.py - Cart Aggregate

The cart is the server-authoritative record of what a user intends to buy.
One cart per user, an ordered list of line items and three derived totals.

Invariants (held after every mutation, see CartRepository._mutate):
    - subtotal == sum(item.price * item.quantity)
    - total == subtotal + shipping
    - every line has quantity >= 1 and a non-negative captured price
    - at most one line per product

Line prices are captured when the product is first added and are never
re-synced with later catalog price changes. Adding a product that is already
in the cart only increments the existing line's quantity.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from services.cart_service.errors import CartItemNotFoundError, InvalidInputError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LineItem(BaseModel):
    """Cart line item."""

    product_id: str
    quantity: int
    price: float

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


class ShippingPolicy(BaseModel):
    """Flat cart shipping: free at or above the threshold, a fixed fee below it, nothing for an empty cart."""

    free_delivery_threshold: float = 50000
    flat_fee: float = 1500

    def fee_for(self, subtotal: float) -> float:
        if subtotal <= 0:
            return 0
        if subtotal >= self.free_delivery_threshold:
            return 0
        return self.flat_fee


class Cart(BaseModel):
    """Cart aggregate for a single user."""

    user_id: str
    items: List[LineItem] = Field(default_factory=list)
    subtotal: float = 0
    shipping: float = 0
    total: float = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find_item(self, product_id: str) -> Optional[LineItem]:
        return next((item for item in self.items if item.product_id == product_id), None)

    def add_item(self, product_id: str, quantity: int, price: float) -> LineItem:
        """Merge into the existing line for the product, or append a new one."""
        if quantity <= 0:
            raise InvalidInputError("Quantity must be a positive number")

        item = self.find_item(product_id)
        if item is not None:
            item.quantity += quantity
            return item

        if price < 0:
            raise InvalidInputError(f"Invalid price: {price}")
        item = LineItem(product_id=product_id, quantity=quantity, price=price)
        self.items.append(item)
        return item

    def set_quantity(self, product_id: str, quantity: int) -> LineItem:
        # Sub-1 quantities belong to remove_item
        if quantity < 1:
            raise InvalidInputError("Quantity must be at least 1")

        item = self.find_item(product_id)
        if item is None:
            raise CartItemNotFoundError(product_id)
        item.quantity = quantity
        return item

    def remove_item(self, product_id: str) -> bool:
        """Pull the product's line. Returns False when it was not in the cart."""
        remaining = [item for item in self.items if item.product_id != product_id]
        removed = len(remaining) != len(self.items)
        self.items = remaining
        return removed

    def clear(self) -> int:
        removed = len(self.items)
        self.items = []
        return removed

    def recalculate(self, policy: ShippingPolicy) -> None:
        """Recompute subtotal, shipping and total from the current lines."""
        self.subtotal = sum(item.line_total for item in self.items)
        self.shipping = policy.fee_for(self.subtotal)
        self.total = self.subtotal + self.shipping
        self.updated_at = _utcnow()
