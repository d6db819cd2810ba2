import os
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings

from shared.database import build_database_url
from shared.shipping import DEFAULT_FEE_TIERS, FeeTier


class Settings(BaseSettings):
    """Application settings, read from environment variables."""

    service_name: str = "cart-service"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_timezone: str = "Africa/Nairobi"
    cart_service_port: int = int(os.getenv("CART_SERVICE_PORT", "8001"))

    # Carts and geocode cache
    redis_host: str = os.getenv("REDIS_HOST", "localhost")
    redis_port: int = int(os.getenv("REDIS_PORT", "6379"))
    cart_ttl_seconds: Optional[int] = None  # None keeps carts until emptied

    # Catalog read model
    database_url: str = os.getenv(
        "DATABASE_URL",
        build_database_url(
            os.getenv("POSTGRES_USER", "postgres"),
            os.getenv("POSTGRES_PASSWORD", "postgres"),
            os.getenv("POSTGRES_HOST", "localhost"),
            os.getenv("POSTGRES_PORT", "5432"),
            os.getenv("POSTGRES_DB", "furniture"),
        ),
    )
    seed_catalog: bool = False

    # Cart events
    kafka_enabled: bool = True
    kafka_bootstrap_servers: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    kafka_topic_partitions: int = 3
    kafka_replication_factor: int = 1

    # Bearer tokens issued by the auth service
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-only-secret-change-me-before-deploying")
    jwt_algorithm: str = "HS256"

    # Flat rule applied on every cart mutation
    free_delivery_threshold: float = 50000
    flat_shipping_fee: float = 1500

    # Distance-based quotes
    shipping_fee_tiers: List[FeeTier] = DEFAULT_FEE_TIERS
    geocoder_url: str = "https://nominatim.openstreetmap.org/search"
    geocoder_user_agent: str = "FurnitureApp/1.0"
    geocoder_timeout: float = 5.0
    geocoder_max_attempts: int = 1
    geocode_cache_ttl: int = 7 * 24 * 3600


@lru_cache
def get_settings() -> Settings:
    return Settings()
