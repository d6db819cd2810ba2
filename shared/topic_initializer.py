"""
topic_initializer.py - Cart Event Topic Setup

PURPOSE:
    Makes sure every cart event topic exists before the producer starts.

TOPICS:
    - cart.item_added, cart.item_updated, cart.item_removed, cart.cleared

BEHAVIOR:
    - Topics that already exist count as created
    - The broker is often still starting when the service boots, so the whole
      request is repeated after ``retry_delay`` seconds until ``max_retries``
    - Any other per-topic failure is retried the same way; the last failure is raised
"""

import logging
import time
from typing import Iterable, List, Optional

from confluent_kafka import KafkaError, KafkaException
from confluent_kafka.admin import AdminClient, NewTopic

from shared.events import ALL_TOPICS

logger = logging.getLogger(__name__)


def _already_exists(error: Exception) -> bool:
    if isinstance(error, KafkaException) and error.args and isinstance(error.args[0], KafkaError):
        return error.args[0].code() == KafkaError.TOPIC_ALREADY_EXISTS
    return "TOPIC_ALREADY_EXISTS" in str(error)


def _create_missing(admin_client: AdminClient, new_topics: List[NewTopic], timeout: float) -> List[str]:
    """Submit the topics; returns the names that could not be created."""
    failed = []
    for name, future in admin_client.create_topics(new_topics, validate_only=False).items():
        try:
            future.result(timeout=timeout)
            logger.info(f"Created topic {name}")
        except Exception as e:
            if _already_exists(e):
                logger.debug(f"Topic {name} already exists")
            else:
                logger.warning(f"Could not create topic {name}: {e}")
                failed.append(name)
    return failed


def create_topics(
    bootstrap_servers: str,
    num_partitions: int = 3,
    replication_factor: int = 1,
    topics: Optional[Iterable[str]] = None,
    max_retries: int = 10,
    retry_delay: float = 3,
    admin_client: Optional[AdminClient] = None,
) -> None:
    """
    Create the cart event topics.

    Args:
        bootstrap_servers: Comma-separated Kafka broker addresses
        num_partitions: Partitions per topic (events are keyed by user id)
        replication_factor: Replicas per partition
        topics: Topic names, every cart topic when omitted
        max_retries: Attempts before giving up
        retry_delay: Seconds between attempts
        admin_client: Injected admin client (tests)
    """
    admin_client = admin_client or AdminClient({"bootstrap.servers": bootstrap_servers})
    pending = list(topics or ALL_TOPICS)

    for attempt in range(1, max_retries + 1):
        try:
            new_topics = [
                NewTopic(name, num_partitions=num_partitions, replication_factor=replication_factor)
                for name in pending
            ]
            pending = _create_missing(admin_client, new_topics, timeout=10)
            if not pending:
                logger.info("Cart event topics ready")
                return
            error: Exception = RuntimeError(f"Topics not created: {', '.join(pending)}")
        except Exception as e:
            error = e

        if attempt == max_retries:
            logger.error(f"Giving up on topic creation after {max_retries} attempts: {error}")
            raise error
        logger.warning(f"Topic creation attempt {attempt}/{max_retries} failed: {error}. Retrying in {retry_delay}s")
        time.sleep(retry_delay)
