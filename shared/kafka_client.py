"""
kafka_client.py - Kafka Producer Wrapper

PURPOSE:
    Publishes cart events to Kafka with JSON serialization and delivery reports.

PRODUCER FEATURES:
    - Pydantic event serialization (model_dump_json)
    - Delivery acknowledgment from all replicas (acks=all)
    - Automatic retries (3) and snappy compression
    - Message key = user id, so every event of one cart lands on one partition
      and keeps its order

USAGE:
    producer = BaseKafkaProducer("localhost:9092", client_id="cart-producer")
    producer.publish("cart.item_added", event, key=user_id)
    producer.close()

ERROR HANDLING:
    publish() logs and re-raises; callers decide whether an event failure is fatal.
"""

import logging
from typing import Optional

from confluent_kafka import Producer
from confluent_kafka.error import KafkaError

from shared.events import BaseEvent

logger = logging.getLogger(__name__)


class BaseKafkaProducer:
    """Kafka producer with JSON serialization and delivery callbacks."""

    def __init__(self, bootstrap_servers: str, client_id: str = "producer", flush_timeout: float = 5.0):
        """
        Initialize Kafka producer.

        Args:
            bootstrap_servers: Comma-separated Kafka broker addresses
            client_id: Unique identifier for this producer instance
            flush_timeout: Seconds publish() waits for delivery
        """
        self.config = {
            "bootstrap.servers": bootstrap_servers,
            "client.id": client_id,
            "acks": "all",
            "retries": 3,
            "compression.type": "snappy",
        }
        self.flush_timeout = flush_timeout
        self.producer = Producer(self.config)

    def _delivery_report(self, err: Optional[KafkaError], msg) -> None:
        """Delivery report handler called by producer on message delivery."""
        if err is not None:
            logger.error(f"Message delivery failed: {err}")
        else:
            logger.debug(
                f"Message delivered to topic={msg.topic()}, "
                f"partition={msg.partition()}, offset={msg.offset()}"
            )

    def publish(self, topic: str, event: BaseEvent, key: Optional[str] = None) -> None:
        """Publish event to Kafka topic."""
        try:
            self.producer.produce(
                topic=topic,
                key=key.encode("utf-8") if key else None,
                value=event.model_dump_json().encode("utf-8"),
                callback=self._delivery_report,
            )
            self.producer.flush(self.flush_timeout)
            logger.info(
                f"Published event to {topic}",
                extra={"event_type": event.event_type, "correlation_id": event.correlation_id},
            )
        except Exception as e:
            logger.error(f"Error publishing event to {topic}: {e}")
            raise

    def flush(self) -> None:
        """Flush any pending messages."""
        self.producer.flush(self.flush_timeout)

    def close(self) -> None:
        """Deliver what is still queued before shutdown."""
        remaining = self.producer.flush(self.flush_timeout)
        if remaining:
            logger.warning(f"{remaining} Kafka messages were not delivered before shutdown")
