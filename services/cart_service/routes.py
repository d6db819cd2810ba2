import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from services.cart_service.auth import get_current_user_id
from services.cart_service.cart import Cart
from services.cart_service.cart_repository import CartRepository
from services.cart_service.catalog_repository import CatalogRepository, has_valid_price, validate_product_id
from services.cart_service.dependencies import (
    get_cart_repository,
    get_catalog,
    get_event_producer,
    get_geocoder,
    get_quote_service,
)
from services.cart_service.errors import CartServiceError, InvalidInputError
from services.cart_service.geocoding import NominatimGeocoder
from services.cart_service.schemas import (
    AddToCartRequest,
    CalculateShippingRequest,
    CartEnvelope,
    CartItemResponse,
    CartResponse,
    ProductSummary,
    SellerLocationEnvelope,
    SellerLocationRequest,
    SellerLocationResponse,
    ShippingQuoteResponse,
    UpdateQuantityRequest,
)
from services.cart_service.shipping_quote import ShippingQuoteService
from shared.events import (
    BaseEvent,
    CartClearedEvent,
    CartItemAddedEvent,
    CartItemRemovedEvent,
    CartItemUpdatedEvent,
)
from shared.kafka_client import BaseKafkaProducer
from shared.shipping import Coordinates

logger = logging.getLogger(__name__)

cart_router = APIRouter(prefix="/cart", tags=["cart"])
order_router = APIRouter(prefix="/order", tags=["order"])
user_router = APIRouter(prefix="/users", tags=["users"])


def to_cart_response(cart: Cart, catalog: CatalogRepository) -> CartResponse:
    """Cart with every line's product details populated from the catalog."""
    products = catalog.get_products(item.product_id for item in cart.items)
    items = []
    for item in cart.items:
        product = products.get(item.product_id)
        summary = None
        if product is not None:
            summary = ProductSummary(
                id=product.product_id,
                name=product.name,
                description=product.description or "",
                price=product.price if has_valid_price(product) else None,
                image=product.image or "",
                category=product.category or "",
                stock=product.stock or 0,
                seller_id=product.seller_id,
            )
        items.append(
            CartItemResponse(
                product_id=item.product_id,
                product=summary,
                quantity=item.quantity,
                price=item.price,
                item_total=item.line_total,
            )
        )

    return CartResponse(
        user_id=cart.user_id,
        items=items,
        sub_total=cart.subtotal,
        shipping=cart.shipping,
        total=cart.total,
        item_count=len(items),
    )


def _http_error(e: CartServiceError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


def _server_error(action: str, e: Exception, user_id: str, product_id: Optional[str] = None) -> HTTPException:
    logger.error(
        f"Error {action}: {e}",
        extra={"user_id": user_id, "product_id": product_id},
        exc_info=True,
    )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server error")


def _publish(producer: Optional[BaseKafkaProducer], topic: str, event: BaseEvent, user_id: str) -> None:
    """Publish after commit. Failures are logged."""
    if producer is None:
        return
    try:
        producer.publish(topic, event, key=user_id)
    except Exception as e:
        logger.error(
            f"Cart saved but event {topic} was not published: {e}",
            extra={"user_id": user_id, "event_type": event.event_type},
        )


# Add product to cart at its current catalog price
@cart_router.post("", response_model=CartEnvelope)
async def add_to_cart(
    body: AddToCartRequest,
    user_id: str = Depends(get_current_user_id),
    catalog: CatalogRepository = Depends(get_catalog),
    carts: CartRepository = Depends(get_cart_repository),
    producer: Optional[BaseKafkaProducer] = Depends(get_event_producer),
) -> CartEnvelope:
    """Add item to cart and publish event."""
    try:
        validate_product_id(body.product_id)
        if body.quantity <= 0:
            raise InvalidInputError("Quantity must be a positive number")

        product = catalog.get_priced_product(body.product_id)
        cart = carts.add_item(user_id, product.product_id, body.quantity, float(product.price))
        response = to_cart_response(cart, catalog)
    except CartServiceError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("adding item to cart", e, user_id, body.product_id)

    line = cart.find_item(body.product_id)
    _publish(
        producer,
        "cart.item_added",
        CartItemAddedEvent(
            user_id=user_id,
            product_id=body.product_id,
            quantity=body.quantity,
            line_quantity=line.quantity,
            price=line.price,
            subtotal=cart.subtotal,
            shipping=cart.shipping,
            total=cart.total,
        ),
        user_id,
    )
    return CartEnvelope(message="Item added to cart", cart=response)


@cart_router.put("/{product_id}", response_model=CartEnvelope)
async def update_item_quantity(
    product_id: str,
    body: UpdateQuantityRequest,
    user_id: str = Depends(get_current_user_id),
    catalog: CatalogRepository = Depends(get_catalog),
    carts: CartRepository = Depends(get_cart_repository),
    producer: Optional[BaseKafkaProducer] = Depends(get_event_producer),
) -> CartEnvelope:
    """Set the quantity of a line. Quantities below 1 go through DELETE instead."""
    try:
        validate_product_id(product_id)
        cart = carts.update_item_quantity(user_id, product_id, body.quantity)
        response = to_cart_response(cart, catalog)
    except CartServiceError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("updating cart item", e, user_id, product_id)

    _publish(
        producer,
        "cart.item_updated",
        CartItemUpdatedEvent(
            user_id=user_id,
            product_id=product_id,
            quantity=body.quantity,
            subtotal=cart.subtotal,
            shipping=cart.shipping,
            total=cart.total,
        ),
        user_id,
    )
    return CartEnvelope(cart=response)


@cart_router.delete("/{product_id}", response_model=CartEnvelope)
async def remove_item(
    product_id: str,
    user_id: str = Depends(get_current_user_id),
    catalog: CatalogRepository = Depends(get_catalog),
    carts: CartRepository = Depends(get_cart_repository),
    producer: Optional[BaseKafkaProducer] = Depends(get_event_producer),
) -> CartEnvelope:
    """Remove item from cart. Removing a product that is not in the cart succeeds unchanged."""
    try:
        validate_product_id(product_id)
        cart, removed = carts.remove_item(user_id, product_id)
        response = to_cart_response(cart, catalog)
    except CartServiceError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("removing item from cart", e, user_id, product_id)

    if removed:
        _publish(
            producer,
            "cart.item_removed",
            CartItemRemovedEvent(
                user_id=user_id,
                product_id=product_id,
                subtotal=cart.subtotal,
                shipping=cart.shipping,
                total=cart.total,
            ),
            user_id,
        )
    return CartEnvelope(cart=response)


@cart_router.delete("", response_model=CartEnvelope)
async def clear_cart(
    user_id: str = Depends(get_current_user_id),
    catalog: CatalogRepository = Depends(get_catalog),
    carts: CartRepository = Depends(get_cart_repository),
    producer: Optional[BaseKafkaProducer] = Depends(get_event_producer),
) -> CartEnvelope:
    """Empty the cart. The cart itself is kept."""
    try:
        cart, removed = carts.clear_cart(user_id)
        response = to_cart_response(cart, catalog)
    except CartServiceError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("clearing cart", e, user_id)

    _publish(
        producer,
        "cart.cleared",
        CartClearedEvent(
            user_id=user_id,
            removed_items=removed,
            subtotal=cart.subtotal,
            shipping=cart.shipping,
            total=cart.total,
        ),
        user_id,
    )
    return CartEnvelope(message="Cart cleared", cart=response)


@cart_router.get("", response_model=CartEnvelope)
async def get_cart(
    user_id: str = Depends(get_current_user_id),
    catalog: CatalogRepository = Depends(get_catalog),
    carts: CartRepository = Depends(get_cart_repository),
) -> CartEnvelope:
    """Get user's cart. A missing or empty cart is reported as ``cart: null``."""
    try:
        cart = carts.get_cart(user_id)
        if cart is None or cart.is_empty:
            return CartEnvelope(cart=None, message="No items in cart")
        return CartEnvelope(cart=to_cart_response(cart, catalog))
    except Exception as e:
        raise _server_error("fetching cart items", e, user_id)


# Shipping quote for one seller/buyer pair
@order_router.post("/calculate-shipping", response_model=ShippingQuoteResponse)
async def calculate_shipping(
    body: CalculateShippingRequest,
    catalog: CatalogRepository = Depends(get_catalog),
    quotes: ShippingQuoteService = Depends(get_quote_service),
) -> ShippingQuoteResponse:
    """Distance-based shipping fee from the product's seller to the buyer's city."""
    try:
        validate_product_id(body.product_id)
        buyer_city = body.buyer_city.strip()
        if not buyer_city:
            raise InvalidInputError("Please enter a delivery city")

        product = catalog.get_product(body.product_id)
        if product is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

        seller = product.seller
        has_coords = seller is not None and seller.latitude is not None and seller.longitude is not None
        if seller is None or not (seller.city or has_coords):
            raise InvalidInputError("Seller location is not set")

        seller_coords = Coordinates(latitude=seller.latitude, longitude=seller.longitude) if has_coords else None
        quote = await quotes.get_shipping_quote(seller.city or "", buyer_city, seller_coords)
    except HTTPException:
        raise
    except CartServiceError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error calculating shipping: {e}", extra={"product_id": body.product_id}, exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server error")

    if quote is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Could not calculate shipping to {buyer_city}. Check the city name and try again.",
        )
    return ShippingQuoteResponse(fee=quote.fee, distance=quote.distance_km, description=quote.description)


@user_router.patch("/location", response_model=SellerLocationEnvelope)
async def update_seller_location(
    body: SellerLocationRequest,
    user_id: str = Depends(get_current_user_id),
    catalog: CatalogRepository = Depends(get_catalog),
    geocoder: NominatimGeocoder = Depends(get_geocoder),
) -> SellerLocationEnvelope:
    """Save where a seller ships from. Missing coordinates are geocoded once here, not on every quote."""
    city = body.city.strip()
    latitude, longitude = body.latitude, body.longitude
    try:
        if not city:
            raise InvalidInputError("City is required")
        if latitude is None or longitude is None:
            coords = await geocoder.geocode_city(city)
            if coords is not None:
                latitude, longitude = coords.latitude, coords.longitude

        seller = catalog.update_seller_location(user_id, city, body.address, latitude, longitude)
        catalog.db.commit()
    except CartServiceError as e:
        raise _http_error(e)
    except Exception as e:
        catalog.db.rollback()
        raise _server_error("updating seller location", e, user_id)

    return SellerLocationEnvelope(
        location=SellerLocationResponse(
            seller_id=seller.seller_id,
            city=seller.city,
            address=seller.address or "",
            latitude=seller.latitude,
            longitude=seller.longitude,
        )
    )
