from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Wire models use camelCase; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AddToCartRequest(CamelModel):
    """Request model for adding item to cart."""

    product_id: str
    quantity: int = 1


class UpdateQuantityRequest(CamelModel):
    """Request model for updating item quantity."""

    quantity: int


class CalculateShippingRequest(CamelModel):
    product_id: str
    buyer_city: str


class SellerLocationRequest(CamelModel):
    city: str = Field(min_length=1)
    address: str = ""
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class ProductSummary(CamelModel):
    """Catalog details populated into each cart line."""

    id: str
    name: str
    description: str = ""
    price: Optional[float] = None  # None when the catalog price is unusable
    image: str = ""
    category: str = ""
    stock: int = 0
    seller_id: Optional[str] = None


class CartItemResponse(CamelModel):
    product_id: str
    product: Optional[ProductSummary] = None  # None when the product left the catalog
    quantity: int
    price: float
    item_total: float


class CartResponse(CamelModel):
    user_id: str
    items: List[CartItemResponse]
    sub_total: float
    shipping: float
    total: float
    item_count: int


class CartEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    cart: Optional[CartResponse] = None


class ShippingQuoteResponse(CamelModel):
    fee: int
    distance: float
    description: str


class SellerLocationResponse(CamelModel):
    seller_id: str
    city: str
    address: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class SellerLocationEnvelope(CamelModel):
    success: bool = True
    location: SellerLocationResponse


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str
    service: str
    version: str
