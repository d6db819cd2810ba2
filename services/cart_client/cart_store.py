"""
cart_store.py - Storefront Cart Mirror

Client-side copy of the buyer's cart. The server stays authoritative; this
store applies every change locally first so the UI reacts immediately, then
confirms with the server and rolls back when the server says no.

Optimistic protocol (add_item / set_quantity / remove_item):
    1. take the product's lock
    2. remember that product's current line (or its absence) and position
    3. apply the change locally, reset the shipping estimate
    4. call the server
    5. success: keep the local state
       failure: put back exactly the remembered line, record the error, re-raise

Only the affected product's line is rolled back, so a failed request never
undoes a concurrent change to another product. Changes to the same product
run one at a time.

Persisted state (JSON file, optional):
    {"version": 1, "items": [...], "user_id": "...", "buyer_city": "...", "shipping_cost": 0}
"""

import asyncio
import json
import logging
import os
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from services.cart_client.api_client import (
    CartApiError,
    Credentials,
    MarketplaceClient,
    MirrorItem,
    MirrorProduct,
    normalize_cart_payload,
)

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class CartSnapshot(BaseModel):
    """What survives a restart."""

    version: int = SNAPSHOT_VERSION
    items: List[MirrorItem] = Field(default_factory=list)
    user_id: Optional[str] = None
    buyer_city: str = ""
    shipping_cost: float = 0


class CartStore:
    """Optimistic cart mirror for one signed-in buyer."""

    def __init__(
        self,
        client: MarketplaceClient,
        credentials: Optional[Credentials] = None,
        user_id: Optional[str] = None,
        state_file: Optional[str] = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            client: HTTP client for the cart service
            credentials: Buyer's bearer token, sent with every cart call
            user_id: Signed-in buyer
            state_file: JSON file the mirror is persisted to. Nothing is persisted when omitted.
        """
        self.client = client
        self.credentials = credentials
        self.state_file = state_file

        self.items: List[MirrorItem] = []
        self.is_loading = False
        self.error: Optional[str] = None
        self.user_id = user_id
        self.buyer_city = ""
        self.shipping_cost: float = 0

        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._estimate_task: Optional[asyncio.Task] = None
        # Local changes and server fetches respectively
        self._cart_version = 0
        self._fetch_generation = 0

        self._load_state()

    # -- persistence -------------------------------------------------------

    def _load_state(self) -> None:
        if not self.state_file or not os.path.exists(self.state_file):
            return
        try:
            with open(self.state_file, "r") as f:
                snapshot = CartSnapshot(**json.load(f))
        except (json.JSONDecodeError, ValueError, TypeError) as e:
            logger.warning(f"Ignoring unreadable cart state in {self.state_file}: {e}")
            return

        if snapshot.version != SNAPSHOT_VERSION:
            logger.info(f"Discarding cart state version {snapshot.version}")
            return
        if self.user_id is not None and snapshot.user_id != self.user_id:
            # Another buyer's cart
            return

        self.items = snapshot.items
        self.user_id = snapshot.user_id
        self.buyer_city = snapshot.buyer_city
        self.shipping_cost = snapshot.shipping_cost

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(
            items=[item.model_copy(deep=True) for item in self.items],
            user_id=self.user_id,
            buyer_city=self.buyer_city,
            shipping_cost=self.shipping_cost,
        )

    def _save_state(self) -> None:
        if not self.state_file:
            return
        with open(self.state_file, "w") as f:
            json.dump(self.snapshot().model_dump(mode="json"), f)
        os.chmod(self.state_file, 0o600)

    # -- session -----------------------------------------------------------

    def sign_in(self, credentials: Credentials, user_id: str) -> None:
        """Switch to ``user_id``. A different buyer starts from an empty mirror."""
        if self.user_id is not None and self.user_id != user_id:
            self._reset()
        self.credentials = credentials
        self.user_id = user_id
        self._save_state()

    def sign_out(self) -> None:
        self.credentials = None
        self.user_id = None
        self._reset()
        self._save_state()

    def _reset(self) -> None:
        self.items = []
        self.shipping_cost = 0
        self.buyer_city = ""
        self.error = None

    def _require_credentials(self) -> Credentials:
        if self.credentials is None:
            self.error = "Please log in to manage your cart"
            raise CartApiError(self.error, 401)
        return self.credentials

    # -- local line helpers -------------------------------------------------

    def find_item(self, product_id: str) -> Optional[MirrorItem]:
        return next((item for item in self.items if item.product.id == product_id), None)

    def _capture_line(self, product_id: str) -> Tuple[int, Optional[MirrorItem]]:
        for index, item in enumerate(self.items):
            if item.product.id == product_id:
                return index, item.model_copy(deep=True)
        return len(self.items), None

    def _restore_line(self, product_id: str, index: int, previous: Optional[MirrorItem]) -> None:
        self.items = [item for item in self.items if item.product.id != product_id]
        if previous is not None:
            self.items.insert(min(index, len(self.items)), previous)

    def _invalidate_estimate(self) -> None:
        """The cart changed: drop the stored estimate and any estimate still in flight."""
        self._cart_version += 1
        self.shipping_cost = 0
        if self._estimate_task is not None and not self._estimate_task.done():
            self._estimate_task.cancel()
        self._estimate_task = None

    def _revert(self, product_id: str, index: int, previous: Optional[MirrorItem], generation: int) -> None:
        # A fetch since the change already replaced the line with the server's copy
        if generation == self._fetch_generation:
            self._restore_line(product_id, index, previous)
            self._invalidate_estimate()
        self._save_state()

    async def _optimistic(
        self,
        product_id: str,
        apply: Callable[[], None],
        request: Callable[[Credentials], Awaitable[object]],
        action: str,
    ) -> None:
        credentials = self._require_credentials()
        async with self._locks[product_id]:
            index, previous = self._capture_line(product_id)
            generation = self._fetch_generation
            apply()
            self._invalidate_estimate()
            self.error = None
            self._save_state()

            try:
                await request(credentials)
            except asyncio.CancelledError:
                self._revert(product_id, index, previous, generation)
                raise
            except CartApiError as e:
                logger.error(f"Error {action} {product_id}: {e.message}")
                self.error = e.message
                self._revert(product_id, index, previous, generation)
                raise

    # -- mutations ---------------------------------------------------------

    async def add_item(self, product: MirrorProduct, quantity: int = 1) -> None:
        """Add ``quantity`` of ``product``, merging into an existing line."""

        def apply() -> None:
            item = self.find_item(product.id)
            if item is not None:
                item.quantity += quantity
            else:
                self.items.append(MirrorItem(product=product.model_copy(), quantity=quantity))

        await self._optimistic(
            product.id,
            apply,
            lambda credentials: self.client.add_to_cart(credentials, product.id, quantity),
            "adding",
        )

    async def set_quantity(self, product_id: str, quantity: int) -> None:
        """Set a line's quantity. Anything below 1 removes the line."""
        if quantity < 1:
            await self.remove_item(product_id)
            return

        def apply() -> None:
            item = self.find_item(product_id)
            if item is not None:
                item.quantity = quantity

        await self._optimistic(
            product_id,
            apply,
            lambda credentials: self.client.update_cart(credentials, product_id, quantity),
            "updating",
        )

    async def remove_item(self, product_id: str) -> None:
        def apply() -> None:
            self.items = [item for item in self.items if item.product.id != product_id]

        await self._optimistic(
            product_id,
            apply,
            lambda credentials: self.client.remove_from_cart(credentials, product_id),
            "removing",
        )

    def clear(self) -> None:
        """Empty the local mirror. The server cart is untouched."""
        self.items = []
        self._invalidate_estimate()
        self._save_state()

    # -- server sync -------------------------------------------------------

    async def fetch_cart(self) -> List[MirrorItem]:
        """Replace the mirror with the server's cart. On failure the mirror is emptied and the error kept.

        Changes still in flight when the fetch lands are not rolled back onto
        the fetched lines if they later fail.
        """
        credentials = self._require_credentials()
        self.is_loading = True
        self.error = None
        try:
            payload = await self.client.get_cart(credentials)
            self.items = normalize_cart_payload(payload)
        except CartApiError as e:
            logger.error(f"Error fetching cart: {e.message}")
            self.items = []
            self.error = e.message
        finally:
            self.is_loading = False
            self._fetch_generation += 1

        self._save_state()
        return self.items

    # -- totals ------------------------------------------------------------

    def subtotal(self) -> float:
        return sum(item.product.price * item.quantity for item in self.items)

    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def total_estimate(self) -> float:
        return self.subtotal() + self.shipping_cost

    # -- shipping ----------------------------------------------------------

    def _seller_representatives(self) -> List[str]:
        """One product id per distinct seller; lines without a seller count as their own seller."""
        seen: Dict[str, str] = {}
        for item in self.items:
            seller = item.product.seller_id or item.product.id
            seen.setdefault(seller, item.product.id)
        return list(seen.values())

    async def _quote_all_sellers(self, product_ids: List[str], buyer_city: str) -> float:
        quotes = await asyncio.gather(
            *(self.client.calculate_shipping(product_id, buyer_city) for product_id in product_ids)
        )
        return sum(quote.fee for quote in quotes)

    async def estimate_shipping(self, buyer_city: str) -> Optional[float]:
        """Quote shipping to ``buyer_city`` for every seller in the cart and store the sum.

        Starting a new estimate cancels one still in flight; the superseded
        call returns None and leaves the stored estimate alone. A cart change
        while quotes are pending also cancels the estimate.
        """
        city = buyer_city.strip()
        if not city:
            self.error = "Please enter a delivery city"
            raise ValueError(self.error)

        if self._estimate_task is not None and not self._estimate_task.done():
            self._estimate_task.cancel()

        version = self._cart_version
        task = asyncio.ensure_future(self._quote_all_sellers(self._seller_representatives(), city))
        self._estimate_task = task
        self.error = None
        try:
            fee = await task
        except asyncio.CancelledError:
            if self._estimate_task is not task:
                logger.info(f"Shipping estimate to {city!r} superseded")
                return None
            raise
        except CartApiError as e:
            logger.error(f"Error calculating shipping to {city!r}: {e.message}")
            self.error = e.message
            raise
        finally:
            if self._estimate_task is task:
                self._estimate_task = None

        if version != self._cart_version:
            logger.info(f"Shipping estimate to {city!r} dropped, cart changed")
            return None

        self.buyer_city = city
        self.shipping_cost = fee
        self._save_state()
        return fee
