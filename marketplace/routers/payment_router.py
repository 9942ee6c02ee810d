import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from .. import schemas, crud, auth, models
from ..database import get_db
from ..exceptions import NotFoundError, PaymentProviderError, SignatureError, ValidationError
from ..limits import checkout_limit
from ..stripe_service import StripeService, StripeServiceError, StripeSignatureError, get_stripe_service, to_cents
from ..webhook_handler import WebhookHandler

logger = logging.getLogger("marketplace.payments")

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post(
    "/checkout-session",
    response_model=schemas.Envelope[schemas.CheckoutSessionRead],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(checkout_limit)],
)
def create_checkout_session(
        body: schemas.CheckoutSessionCreate,
        db: Session = Depends(get_db),
        current_user: models.User = Depends(auth.get_current_user),
        stripe_service: StripeService = Depends(get_stripe_service),
):
    """
    Start a Stripe Checkout session for a one-time payment and record it
    as a pending payment owned by the authenticated user.
    """
    if body.mode != "payment":
        raise ValidationError("Only 'payment' mode is supported")
    amount = crud.parse_amount(body.price_id)

    db_payment = crud.create_pending_payment(db, user_id=current_user.id, amount=amount,
                                             receipt_email=current_user.email)
    try:
        session = stripe_service.create_checkout_session(
            payment_id=db_payment.id,
            user_id=current_user.id,
            amount_cents=to_cents(amount),
            success_url=body.success_url,
            cancel_url=body.cancel_url,
            customer_email=current_user.email,
        )
    except StripeServiceError as e:
        db.rollback()
        raise PaymentProviderError("Failed to create payment session", provider_code=e.stripe_error_code) from e

    db_payment.stripe_session_id = session["session_id"]
    db.commit()

    return schemas.Envelope(
        message="Payment session created successfully",
        data=schemas.CheckoutSessionRead(
            session_id=session["session_id"],
            session_url=session["session_url"],
            payment_id=db_payment.id,
        ),
    )


@router.post("/webhook", response_model=schemas.Envelope[schemas.WebhookResult])
async def stripe_webhook(
        request: Request,
        db: Session = Depends(get_db),
        stripe_service: StripeService = Depends(get_stripe_service),
):
    """
    Receive Stripe events. 400 on a bad signature (Stripe will not retry),
    200 once applied or for a replay, 500 on anything else (Stripe retries).
    """
    payload = await request.body()
    try:
        event = stripe_service.verify_webhook_signature(payload, request.headers.get("stripe-signature"))
    except StripeSignatureError as e:
        raise SignatureError(f"Webhook Error: {e}") from e

    # Session work stays off the event loop shared with the outbox poller
    result = await run_in_threadpool(WebhookHandler(db).process, event)
    return schemas.Envelope(
        message="Webhook received",
        data=schemas.WebhookResult(
            event_id=event.get("id", ""),
            event_type=event.get("type", ""),
            processing_result=result,
        ),
    )


@router.get("/{payment_id}", response_model=schemas.Envelope[schemas.PaymentRead])
def read_payment(payment_id: int, db: Session = Depends(get_db)):
    db_payment = crud.get_payment(db, payment_id)
    if db_payment is None:
        raise NotFoundError("Payment not found")
    return schemas.Envelope(
        message="Payment fetched successfully",
        data=schemas.PaymentRead.model_validate(db_payment),
    )
