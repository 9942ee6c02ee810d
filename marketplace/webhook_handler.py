"""Business logic for Stripe webhook events, separate from HTTP routing.

Every event id is recorded in `processed_webhook_events` in the same
transaction as the writes it causes, so a redelivered event is acknowledged
without touching payments or buyer totals a second time.
"""

import datetime
import logging
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import crud, models

logger = logging.getLogger("marketplace.webhooks")

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"


def _to_int(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class WebhookHandler:
    """Applies verified Stripe events to payments and buyer dashboards."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def is_event_already_processed(self, event_id: str) -> bool:
        return self._db.query(models.ProcessedWebhookEvent.id).filter(
            models.ProcessedWebhookEvent.event_id == event_id
        ).first() is not None

    def process(self, event: dict) -> str:
        """Process one event and return its result: success, duplicate or ignored.

        Raises whatever the database raises; the caller answers 500 so that
        Stripe redelivers.
        """
        event_id = event.get("id", "")
        event_type = event.get("type", "")

        if self.is_event_already_processed(event_id):
            logger.warning(f"Webhook event {event_type} ({event_id}) already processed, skipping")
            return "duplicate"

        intent = event.get("data", {}).get("object", {}) or {}
        if event_type == PAYMENT_SUCCEEDED:
            self._handle_payment_succeeded(intent)
            result = "success"
        elif event_type == PAYMENT_FAILED:
            self._handle_payment_failed(intent)
            result = "success"
        else:
            result = "ignored"

        self._db.add(models.ProcessedWebhookEvent(event_id=event_id, event_type=event_type))
        try:
            self._db.commit()
        except IntegrityError:
            # A concurrent delivery of the same event won the insert
            self._db.rollback()
            if self.is_event_already_processed(event_id):
                return "duplicate"
            raise

        logger.info(f"Webhook event {event_type} ({event_id}) result={result}")
        return result

    def _resolve_payment(self, intent: dict) -> models.Payment | None:
        metadata = intent.get("metadata") or {}
        payment_id = _to_int(metadata.get("paymentId"))
        if payment_id is not None:
            payment = self._db.get(models.Payment, payment_id)
            if payment is not None:
                return payment
        intent_id = intent.get("id")
        if intent_id:
            return self._db.query(models.Payment).filter(
                models.Payment.stripe_payment_intent_id == intent_id
            ).first()
        return None

    def _handle_payment_succeeded(self, intent: dict) -> None:
        metadata = intent.get("metadata") or {}
        amount = (Decimal(intent.get("amount_received") or 0) / Decimal(100)).quantize(Decimal("0.01"))
        created = intent.get("created")
        paid_at = (
            datetime.datetime.fromtimestamp(created, datetime.timezone.utc).replace(tzinfo=None)
            if created else datetime.datetime.utcnow()
        )
        receipt_email = intent.get("receipt_email")

        payment = self._resolve_payment(intent)
        if payment is None:
            payment = models.Payment()
            self._db.add(payment)
            logger.info(f"No pending payment for intent {intent.get('id')}, recording a new one")

        payment.stripe_payment_intent_id = intent.get("id")
        payment.amount = amount
        payment.payment_status = models.PaymentStatus.COMPLETED
        payment.payment_date = paid_at
        if receipt_email:
            payment.receipt_email = receipt_email

        user_id = _to_int(metadata.get("userId")) or payment.user_id
        if user_id is not None and crud.get_user(self._db, user_id) is not None:
            payment.user_id = user_id
            self._increment_dashboard(user_id, amount)
        else:
            logger.warning(f"Payment intent {intent.get('id')} has no known user, totals unchanged")

        recipient = receipt_email or payment.receipt_email
        if recipient:
            crud.queue_email(
                self._db,
                to=recipient,
                subject="Payment Successful",
                html="<h1>Your payment was successful!</h1>",
                text="Your payment was successful!",
            )

    def _handle_payment_failed(self, intent: dict) -> None:
        payment = self._resolve_payment(intent)
        if payment is None:
            logger.warning(f"payment_failed for unknown intent {intent.get('id')}")
            return
        if payment.payment_status == models.PaymentStatus.COMPLETED:
            logger.warning(f"Ignoring payment_failed for completed payment {payment.id}")
            return
        payment.stripe_payment_intent_id = intent.get("id")
        payment.payment_status = models.PaymentStatus.FAILED

    def _increment_dashboard(self, user_id: int, amount: Decimal) -> None:
        exists = self._db.query(models.BuyerDashboard.id).filter(
            models.BuyerDashboard.user_id == user_id
        ).first()
        if exists is None:
            self._db.add(models.BuyerDashboard(user_id=user_id, total_spent=0, total_bookings=0))
            self._db.flush()
        self._db.execute(
            update(models.BuyerDashboard)
            .where(models.BuyerDashboard.user_id == user_id)
            .values(
                total_spent=models.BuyerDashboard.total_spent + amount,
                total_bookings=models.BuyerDashboard.total_bookings + 1,
            )
        )
