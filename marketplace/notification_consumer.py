import json
import logging

from aiokafka import AIOKafkaConsumer

from .config import settings
from .email_sender import EmailDeliveryError, EmailSender, get_email_sender

logger = logging.getLogger("notification_consumer")

REQUIRED_FIELDS = ("to", "subject", "html", "text")


async def handle_message(raw: bytes, sender: EmailSender) -> bool:
    """
    Delivers one notification as an email. Returns False when the message
    was unreadable or the email API refused it; the offset moves on either way.
    """
    try:
        notification = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.error(f"Dropping undecodable notification: {raw!r}")
        return False

    if not isinstance(notification, dict) or not all(notification.get(f) for f in REQUIRED_FIELDS):
        logger.warning(f"Dropping notification without {', '.join(REQUIRED_FIELDS)}: {notification}")
        return False

    try:
        await sender.send(
            to=notification["to"],
            subject=notification["subject"],
            html=notification["html"],
            text=notification["text"],
        )
    except EmailDeliveryError as e:
        logger.error(f"Notification not delivered: {e}")
        return False
    return True


async def run_notification_consumer(sender: EmailSender | None = None):
    """Background task: turn every message on the notification topic into an email."""
    sender = sender or get_email_sender()
    consumer = AIOKafkaConsumer(
        settings.KAFKA_NOTIFICATION_TOPIC,
        bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
        group_id="notification_senders",
        auto_offset_reset="earliest",
    )

    await consumer.start()
    logger.info(f"Notification consumer subscribed to {settings.KAFKA_NOTIFICATION_TOPIC}.")
    try:
        async for record in consumer:
            await handle_message(record.value, sender)
    finally:
        await consumer.stop()
        logger.info("Notification consumer stopped.")
