"""
Publishes the notification outbox to Kafka.

Business transactions only insert OutboxEvent rows; this task moves them to
the notification topic, so a slow or broken broker never fails a booking or
a webhook.
"""
import asyncio
import logging

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaConnectionError, KafkaError
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .database import Database
from .models import OutboxEvent

logger = logging.getLogger("outbox_poller")


async def publish_pending_events(db: Session, producer: AIOKafkaProducer, batch_size: int = 100) -> int:
    """
    Publishes up to `batch_size` pending events, oldest first, and returns
    how many reached Kafka. Delivered rows are deleted in one commit; rows
    Kafka refused stay PENDING and are picked up by the next poll.
    """
    batch = db.scalars(
        select(OutboxEvent)
        .where(OutboxEvent.status == "PENDING")
        .order_by(OutboxEvent.id)
        .limit(batch_size)
        .with_for_update()
    ).all()
    if not batch:
        return 0

    delivered = []
    for outbox_event in batch:
        try:
            await producer.send_and_wait(outbox_event.topic, value=outbox_event.payload.encode("utf-8"))
        except KafkaError as e:
            logger.error(f"Outbox event {outbox_event.id} not delivered to {outbox_event.topic}: {e}")
            continue
        delivered.append(outbox_event)

    if not delivered:
        # Nothing to delete, just release the row locks
        db.rollback()
        return 0

    for outbox_event in delivered:
        db.delete(outbox_event)
    db.commit()
    logger.info(f"Published {len(delivered)}/{len(batch)} outbox events.")
    return len(delivered)


async def connect_producer(retry_delay: int = 5, max_retries: int = 5) -> AIOKafkaProducer | None:
    """
    Returns a started producer, or None once `max_retries` connection
    attempts have failed.
    """
    for attempt in range(1, max_retries + 1):
        producer = AIOKafkaProducer(bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS)
        try:
            await producer.start()
        except KafkaConnectionError as e:
            await producer.stop()
            logger.warning(f"Kafka not reachable (attempt {attempt}/{max_retries}): {e}")
            if attempt < max_retries:
                await asyncio.sleep(retry_delay)
            continue
        logger.info(f"Outbox producer connected to {settings.KAFKA_BOOTSTRAP_SERVERS}.")
        return producer

    logger.error("Giving up on Kafka, outbox events will stay pending.")
    return None


async def run_outbox_poller(database: Database, poll_interval: int | None = None):
    """Background task: publish the outbox every `poll_interval` seconds until cancelled."""
    poll_interval = poll_interval or settings.OUTBOX_POLL_INTERVAL_SECONDS

    producer = await connect_producer()
    if producer is None:
        return

    logger.info(f"Outbox poller running every {poll_interval}s.")
    try:
        while True:
            with database.session() as db:
                try:
                    await publish_pending_events(db, producer)
                except Exception as e:
                    logger.error(f"Outbox poll failed: {e}")
                    db.rollback()
            await asyncio.sleep(poll_interval)
    except asyncio.CancelledError:
        logger.info("Outbox poller cancelled.")
    finally:
        await producer.stop()
        logger.info("Outbox producer stopped.")
