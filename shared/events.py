"""
events.py - Kafka Event Schema Definitions

PURPOSE:
    Event schemas published by the cart service. Uses Pydantic for validation
    and serialization.

EVENTS:
    - cart.item_added: a line was created or merged
    - cart.item_updated: a line quantity was set
    - cart.item_removed: a line was pulled from the cart
    - cart.cleared: every line was removed

COMMON FIELDS (BaseEvent):
    - event_id: Unique identifier (UUID)
    - event_type: Event category and action
    - timestamp: UTC timestamp of event creation
    - correlation_id: Links events caused by the same request

Every cart event carries the reconciled totals so consumers never recompute them.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class BaseEvent(BaseModel):
    """Base event model for all Kafka events."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: str = Field(default_factory=lambda: str(uuid4()))


class CartTotalsMixin(BaseModel):
    """Totals snapshot taken right after the mutation committed."""

    subtotal: float
    shipping: float
    total: float


class CartItemAddedEvent(BaseEvent, CartTotalsMixin):
    """Published when a product is added to (or merged into) a cart."""

    event_type: str = "cart.item_added"
    user_id: str
    product_id: str
    quantity: int  # Units added by this request
    line_quantity: int  # Resulting quantity of the line
    price: float  # Captured unit price of the line


class CartItemUpdatedEvent(BaseEvent, CartTotalsMixin):
    """Published when a line quantity is set explicitly."""

    event_type: str = "cart.item_updated"
    user_id: str
    product_id: str
    quantity: int


class CartItemRemovedEvent(BaseEvent, CartTotalsMixin):
    """Published when a line is removed from a cart."""

    event_type: str = "cart.item_removed"
    user_id: str
    product_id: str


class CartClearedEvent(BaseEvent, CartTotalsMixin):
    """Published when every line of a cart is removed."""

    event_type: str = "cart.cleared"
    user_id: str
    removed_items: int
    reason: Optional[str] = None


# Event mapping for deserialization
EVENT_TYPE_MAP = {
    "cart.item_added": CartItemAddedEvent,
    "cart.item_updated": CartItemUpdatedEvent,
    "cart.item_removed": CartItemRemovedEvent,
    "cart.cleared": CartClearedEvent,
}

ALL_TOPICS = list(EVENT_TYPE_MAP)
