"""Stripe integration: checkout sessions and webhook signature checks.

Uses the StripeClient pattern; keys come from settings.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache

import stripe
from stripe import StripeClient

from .config import settings

logger = logging.getLogger("marketplace.stripe")

CHECKOUT_SESSION_TTL_SECONDS = 1800


class StripeServiceError(Exception):
    """Raised when a Stripe operation fails."""

    def __init__(self, message: str, stripe_error_code: str | None = None) -> None:
        super().__init__(message)
        self.stripe_error_code = stripe_error_code


class StripeSignatureError(StripeServiceError):
    """Raised when a webhook payload fails signature verification."""


def to_cents(amount: Decimal) -> int:
    """Convert a major-unit amount to integer cents, rounding half up."""
    return int((amount * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripeService:
    """Thin wrapper around the Stripe SDK.

    Handles:
    - Checkout session creation for one-time payments
    - Webhook signature validation
    """

    def __init__(self, secret_key: str, webhook_secret: str, currency: str = "usd") -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._currency = currency
        self._client: StripeClient | None = None

    def _get_client(self) -> StripeClient:
        if self._client is None:
            self._client = StripeClient(self._secret_key)
            logger.info("Stripe client initialized")
        return self._client

    def create_checkout_session(
        self,
        *,
        payment_id: int,
        user_id: int,
        amount_cents: int,
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> dict:
        """Create a Stripe Checkout session for a one-time payment.

        The payment id doubles as the idempotency key, and both the session
        and its PaymentIntent carry `userId`/`paymentId` metadata so that
        webhook events can be matched back to the pending payment row.

        Returns:
            Dict with session_id, session_url and expires_at.

        Raises:
            StripeServiceError: If session creation fails.
        """
        client = self._get_client()
        metadata = {"userId": str(user_id), "paymentId": str(payment_id)}

        try:
            logger.info(
                "Creating Stripe checkout session for payment %s, amount %d cents",
                payment_id,
                amount_cents,
            )
            session = client.checkout.sessions.create(
                params={
                    "mode": "payment",
                    "payment_method_types": ["card"],
                    "line_items": [
                        {
                            "price_data": {
                                "currency": self._currency,
                                "unit_amount": amount_cents,
                                "product_data": {"name": "Marketplace booking"},
                            },
                            "quantity": 1,
                        }
                    ],
                    "success_url": success_url,
                    "cancel_url": cancel_url,
                    "customer_email": customer_email,
                    "metadata": metadata,
                    "payment_intent_data": {"metadata": metadata},
                    "expires_at": int(datetime.now(timezone.utc).timestamp()) + CHECKOUT_SESSION_TTL_SECONDS,
                },
                options={"idempotency_key": f"checkout_{payment_id}"},
            )
        except stripe.StripeError as e:
            error_code = getattr(e, "code", None)
            logger.error("Stripe checkout session creation failed: %s (code: %s)", e, error_code)
            raise StripeServiceError(f"Failed to create checkout session: {e}", stripe_error_code=error_code) from e

        logger.info("Checkout session %s created for payment %s", session.id, payment_id)
        return {
            "session_id": session.id,
            "session_url": session.url,
            "expires_at": datetime.fromtimestamp(session.expires_at, tz=timezone.utc),
        }

    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> dict:
        """Verify a webhook signature and parse the event.

        Args:
            payload: Raw request body bytes.
            signature: Stripe-Signature header value.

        Returns:
            The event as a plain dictionary.

        Raises:
            StripeSignatureError: If the header is missing, the signature is
                invalid or the body is not JSON.
        """
        if not signature:
            raise StripeSignatureError("Missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", e)
            raise StripeSignatureError("Invalid webhook signature") from e
        except ValueError as e:
            raise StripeSignatureError("Invalid webhook payload") from e

        event = json.loads(payload)
        logger.info("Webhook signature verified for event: %s", event.get("id"))
        return event


@lru_cache(maxsize=1)
def get_stripe_service() -> StripeService:
    """Shared StripeService built from settings."""
    return StripeService(
        secret_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        currency=settings.STRIPE_CURRENCY,
    )
