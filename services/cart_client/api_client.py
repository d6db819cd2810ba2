"""Storefront HTTP client for the cart service."""

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


class Credentials(BaseModel):
    """Bearer token of the signed-in buyer. Passed into each call, never kept on the HTTP client."""

    token: str

    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


class CartApiError(Exception):
    """A cart service call failed. ``status_code`` is None for transport failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class MirrorProduct(BaseModel):
    """Product attributes the storefront renders next to a cart line."""

    id: str
    name: str = ""
    description: str = ""
    price: float = 0
    image: str = ""
    category: str = ""
    stock: int = 0
    seller_id: Optional[str] = None


class MirrorItem(BaseModel):
    product: MirrorProduct
    quantity: int = 1


class ShippingEstimate(BaseModel):
    fee: int
    distance: float
    description: str = ""


class _WireProduct(BaseModel):
    id: str
    name: str = ""
    description: str = ""
    price: Optional[float] = None
    image: str = ""
    category: str = ""
    stock: int = 0
    sellerId: Optional[str] = None


class _WireItem(BaseModel):
    productId: str
    product: Optional[_WireProduct] = None
    quantity: int
    price: float


def normalize_cart_payload(payload: Optional[Dict[str, Any]]) -> List[MirrorItem]:
    """Convert a cart service response into mirror items.

    This is the only place wire shapes are read. Lines whose product is no
    longer in the catalog are dropped; a missing or null cart is an empty list.
    """
    cart = (payload or {}).get("cart")
    if not cart:
        return []

    items = []
    for raw in cart.get("items") or []:
        try:
            wire = _WireItem.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Skipping malformed cart line {raw!r}: {e}")
            continue
        if wire.product is None or not wire.product.id:
            continue

        product = wire.product
        items.append(
            MirrorItem(
                product=MirrorProduct(
                    id=product.id,
                    name=product.name,
                    description=product.description,
                    # Fall back to the captured line price when the catalog price is unusable
                    price=product.price if product.price is not None else wire.price,
                    image=product.image,
                    category=product.category,
                    stock=product.stock,
                    seller_id=product.sellerId,
                ),
                quantity=wire.quantity,
            )
        )
    return items


class MarketplaceClient:
    """Async client for the cart and shipping endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Cart service root, e.g. https://api.example.com/api/v1
            timeout: Request timeout in seconds
            transport: Injected transport (tests)
        """
        self.base_url = base_url
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def _request(
        self,
        method: str,
        path: str,
        credentials: Optional[Credentials] = None,
        json: Optional[Dict[str, Any]] = None,
        failure_message: str = "Request failed",
    ) -> Dict[str, Any]:
        headers = credentials.headers() if credentials else {}
        try:
            response = await self.client.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise CartApiError(
                f"Cannot connect to server. Make sure the backend is running on {self.base_url}"
            ) from e

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = body.get("detail") or body.get("message") if isinstance(body, dict) else None
            logger.warning(f"{method} {path} returned {response.status_code}: {message}")
            raise CartApiError(message or failure_message, response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise CartApiError(failure_message, response.status_code) from e

    async def add_to_cart(self, credentials: Credentials, product_id: str, quantity: int = 1) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/cart",
            credentials,
            json={"productId": product_id, "quantity": quantity},
            failure_message="Failed to add to cart",
        )

    async def update_cart(self, credentials: Credentials, product_id: str, quantity: int) -> Dict[str, Any]:
        return await self._request(
            "PUT",
            f"/cart/{product_id}",
            credentials,
            json={"quantity": quantity},
            failure_message="Failed to update cart",
        )

    async def remove_from_cart(self, credentials: Credentials, product_id: str) -> Dict[str, Any]:
        return await self._request(
            "DELETE", f"/cart/{product_id}", credentials, failure_message="Failed to remove from cart"
        )

    async def get_cart(self, credentials: Credentials) -> Dict[str, Any]:
        return await self._request("GET", "/cart", credentials, failure_message="Failed to get cart")

    async def calculate_shipping(self, product_id: str, buyer_city: str) -> ShippingEstimate:
        data = await self._request(
            "POST",
            "/order/calculate-shipping",
            json={"productId": product_id, "buyerCity": buyer_city},
            failure_message="Failed to calculate shipping",
        )
        return ShippingEstimate.model_validate(data)

    async def aclose(self) -> None:
        await self.client.aclose()
