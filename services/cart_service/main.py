"""
cart_service/main.py - Furniture Marketplace Cart Service

PURPOSE:
    Server-authoritative shopping cart and shipping quotes for the furniture
    marketplace storefront. Carts live in Redis, the product catalog in
    Postgres, cart events go to Kafka.

RESPONSIBILITIES:
    - Add / update / remove cart lines for the authenticated buyer
    - Keep subtotal, shipping and total reconciled on every mutation
    - Quote distance-based shipping between a product's seller and a buyer city
    - Store seller locations used by those quotes
    - Publish cart events for downstream consumers

API ENDPOINTS:
    POST   /cart                        - Add item to cart ({productId, quantity})
    PUT    /cart/{productId}            - Set item quantity ({quantity}, >= 1)
    DELETE /cart/{productId}            - Remove item from cart
    DELETE /cart                        - Empty the cart
    GET    /cart                        - View cart contents (cart: null when empty)
    POST   /order/calculate-shipping    - Shipping quote ({productId, buyerCity})
    PATCH  /users/location              - Save seller city/address/coordinates
    GET    /health                      - Health check endpoint

    Every /cart and /users route needs "Authorization: Bearer <token>"; the
    owner id is taken from the token, never from the body.

KAFKA EVENTS PUBLISHED:
    - cart.item_added, cart.item_updated, cart.item_removed, cart.cleared

DATA STORAGE:
    - Redis: "cart:{user_id}" JSON document; "geocode:{city}" cached coordinates
    - Postgres: products, sellers

TESTING COMMANDS:
    1. Health Check:
        curl http://localhost:8001/health

    2. Add Item to Cart:
        curl -X POST http://localhost:8001/cart \
          -H "Authorization: Bearer $TOKEN" -H "Content-Type: application/json" \
          -d '{"productId": "PROD-SOFA-001", "quantity": 2}'

    3. Change Quantity:
        curl -X PUT http://localhost:8001/cart/PROD-SOFA-001 \
          -H "Authorization: Bearer $TOKEN" -H "Content-Type: application/json" \
          -d '{"quantity": 1}'

    4. Quote Shipping:
        curl -X POST http://localhost:8001/order/calculate-shipping \
          -H "Content-Type: application/json" \
          -d '{"productId": "PROD-SOFA-001", "buyerCity": "Kisumu"}'

USAGE:
    uvicorn services.cart_service.main:app --port 8001
"""

import logging
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from services.cart_service import models  # noqa: F401  registers catalog tables before init_engine
from services.cart_service.cart import ShippingPolicy
from services.cart_service.cart_repository import CartRepository
from services.cart_service.config import get_settings
from services.cart_service.geocoding import GeocodeCache, NominatimGeocoder
from services.cart_service.routes import cart_router, order_router, user_router
from services.cart_service.schemas import HealthResponse
from services.cart_service.shipping_quote import ShippingQuoteService
from shared.database import SessionLocal, init_engine
from shared.kafka_client import BaseKafkaProducer
from shared.logging_config import setup_logging
from shared.shipping import FeeSchedule
from shared.topic_initializer import create_topics

settings = get_settings()

setup_logging(settings.service_name, level=settings.log_level, timezone=settings.log_timezone)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# Two phases:
# 1. Before yield: database, Redis, geocoder, Kafka topics and producer
# 2. After yield: close connections gracefully
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage app lifecycle."""
    logger.info("Starting Cart Service...")

    try:
        init_engine(settings.database_url)
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    if settings.seed_catalog:
        from services.cart_service.seed_data import seed_catalog

        db = SessionLocal()
        try:
            seed_catalog(db)
        except Exception as e:
            logger.error(f"Failed to seed catalog: {e}")
        finally:
            db.close()

    try:
        redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            decode_responses=True,
        )
        redis_client.ping()
        logger.info("Redis connected")
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        raise

    app.state.cart_repository = CartRepository(
        redis_client,
        ShippingPolicy(
            free_delivery_threshold=settings.free_delivery_threshold,
            flat_fee=settings.flat_shipping_fee,
        ),
        ttl=settings.cart_ttl_seconds,
    )
    app.state.geocoder = NominatimGeocoder(
        base_url=settings.geocoder_url,
        user_agent=settings.geocoder_user_agent,
        timeout=settings.geocoder_timeout,
        max_attempts=settings.geocoder_max_attempts,
        cache=GeocodeCache(redis_client, ttl=settings.geocode_cache_ttl),
    )
    app.state.quote_service = ShippingQuoteService(app.state.geocoder, FeeSchedule(settings.shipping_fee_tiers))

    app.state.producer = None
    if settings.kafka_enabled:
        try:
            create_topics(
                settings.kafka_bootstrap_servers,
                num_partitions=settings.kafka_topic_partitions,
                replication_factor=settings.kafka_replication_factor,
            )
            app.state.producer = BaseKafkaProducer(settings.kafka_bootstrap_servers, client_id="cart-producer")
            logger.info("Kafka producer initialized")
        except Exception as e:
            logger.error(f"Failed to initialize Kafka producer: {e}")
            raise

    yield  # Application is now ready to handle requests

    logger.info("Shutting down Cart Service...")
    await app.state.geocoder.aclose()
    redis_client.close()
    if app.state.producer:
        app.state.producer.close()


app = FastAPI(title="Cart Service", version=VERSION, lifespan=lifespan)
app.include_router(cart_router)
app.include_router(order_router)
app.include_router(user_router)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are a 400 with a readable message, like every other input error."""
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{field}: {error.get('msg')}" if field else error.get("msg", "Invalid request"))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "detail": "; ".join(messages) or "Invalid request"},
    )


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", service=settings.service_name, version=VERSION)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.cart_service_port)
