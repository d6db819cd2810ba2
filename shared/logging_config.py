"""
logging_config.py - Centralized JSON Logging Configuration

PURPOSE:
    Structured JSON logging for the cart service, the shipping quote path and the
    client-side cart store, with timezone-aware timestamps and correlation tracking.

JSON LOG FIELDS:
    - timestamp: ISO 8601 in the configured timezone (default Africa/Nairobi)
    - level: INFO, WARNING, ERROR, ...
    - logger: Module that emitted the record (e.g. "services.cart_service.cart_repository")
    - message: The rendered log message
    - service_name: Injected by ServiceFilter
    - correlation_id / event_type: Present when passed through ``extra=``
    - user_id / product_id: Present when passed through ``extra=`` (cart diagnostics)
    - exception: Full stack trace for logger.exception / exc_info=True

USAGE:
    from shared.logging_config import setup_logging
    setup_logging("cart-service", level="INFO")

    logger = logging.getLogger(__name__)
    logger.info("Cart updated", extra={"user_id": "u1", "product_id": "PROD-1"})

EXAMPLE JSON OUTPUT:
    {
        "timestamp": "2026-10-18T10:48:51.001014+03:00",
        "level": "INFO",
        "logger": "services.cart_service.cart_repository",
        "message": "Added 2 x PROD-8F2A to cart for user 65f1c0",
        "service_name": "cart-service"
    }
"""

import json
import logging
import sys
from datetime import datetime
from zoneinfo import ZoneInfo
from typing import Any, Dict

# Context attributes copied from ``extra=``
CONTEXT_FIELDS = ("correlation_id", "service_name", "event_type", "user_id", "product_id")


class JsonFormatter(logging.Formatter):
    """Custom formatter that outputs JSON logs with correlation context."""

    def __init__(self, timezone: str = "Africa/Nairobi"):
        super().__init__()
        self.tz = ZoneInfo(timezone)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, self.tz).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ServiceFilter(logging.Filter):
    """Stamp every record with the owning service name."""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = self.service_name
        return True


def setup_logging(service_name: str, level: str = "INFO", timezone: str = "Africa/Nairobi") -> None:
    """Setup JSON logging for a service."""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Drop handlers from earlier setup calls
    for existing in list(logger.handlers):
        if isinstance(existing.formatter, JsonFormatter):
            logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(timezone))
    handler.addFilter(ServiceFilter(service_name))

    # Service filter on the handler
    logger.addHandler(handler)
