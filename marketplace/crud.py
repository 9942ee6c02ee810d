import datetime
import json
import math
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import auth, models, schemas
from .config import settings
from .exceptions import (
    AuthenticationError, ConflictError, ForbiddenError, NotFoundError,
    PaymentNotReadyError, ValidationError,
)


# --- Outbox ---

def queue_email(db: Session, to: str, subject: str, html: str, text: str) -> models.OutboxEvent:
    """
    Adds an email notification to the outbox.
    Note: Does NOT commit. It is sent only if the caller's transaction commits.
    """
    payload = {"to": to, "subject": subject, "html": html, "text": text}
    db_outbox_event = models.OutboxEvent(
        topic=settings.KAFKA_NOTIFICATION_TOPIC,
        payload=json.dumps(payload),
        status="PENDING"
    )
    db.add(db_outbox_event)
    return db_outbox_event


# --- Users ---

def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.get(models.User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(func.lower(models.User.email) == email.lower()).first()


def get_user_with_role(db: Session, user_id: int, role: models.UserRole) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id, models.User.role == role).first()


def create_user(db: Session, user: schemas.UserRegister) -> models.User:
    """
    Registers a user together with the profile rows for its role and
    queues the verification email.
    """
    if get_user_by_email(db, user.email):
        raise ConflictError("Email already registered")

    verification_token = auth.generate_token()
    db_user = models.User(
        email=user.email,
        hashed_password=auth.hash_password(user.password),
        role=user.role,
        email_verification_token=verification_token,
    )
    db.add(db_user)
    db.flush()

    if user.role == models.UserRole.BUYER:
        db.add(models.BuyerProfile(user_id=db_user.id, payment_details={}))
        db.add(models.BuyerDashboard(user_id=db_user.id, total_spent=0, total_bookings=0))
    else:
        db.add(models.VendorProfile(user_id=db_user.id))

    queue_email(
        db,
        to=db_user.email,
        subject="Verify your email",
        html=f"<p>Use the following token to verify your email: {verification_token}</p>",
        text=f"Use the following token to verify your email: {verification_token}",
    )
    db.commit()
    db.refresh(db_user)
    return db_user


def authenticate_user(db: Session, email: str, password: str) -> models.User:
    db_user = get_user_by_email(db, email)
    if db_user is None or not auth.verify_password(password, db_user.hashed_password):
        raise AuthenticationError("Incorrect email or password")
    return db_user


def start_password_recovery(db: Session, email: str) -> None:
    db_user = get_user_by_email(db, email)
    if db_user is None:
        raise NotFoundError("User not found")

    token = auth.generate_token()
    db_user.password_reset_token_hash = auth.hash_token(token)
    db_user.password_reset_expires_at = datetime.datetime.utcnow() + datetime.timedelta(
        minutes=settings.PASSWORD_RESET_TOKEN_TTL_MINUTES
    )
    queue_email(
        db,
        to=db_user.email,
        subject="Password Recovery",
        html=f"<p>Please use the following token to reset your password: {token}</p>",
        text=f"Please use the following token to reset your password: {token}",
    )
    db.commit()


def reset_password(db: Session, token: str, new_password: str) -> None:
    db_user = db.query(models.User).filter(
        models.User.password_reset_token_hash == auth.hash_token(token)
    ).first()
    if (
        db_user is None
        or db_user.password_reset_expires_at is None
        or db_user.password_reset_expires_at < datetime.datetime.utcnow()
    ):
        raise ValidationError("Invalid or expired reset token")

    db_user.hashed_password = auth.hash_password(new_password)
    db_user.password_reset_token_hash = None
    db_user.password_reset_expires_at = None
    db.commit()


def verify_email(db: Session, token: str) -> models.User:
    db_user = db.query(models.User).filter(models.User.email_verification_token == token).first()
    if db_user is None:
        raise ValidationError("Invalid token")

    db_user.email_verified = True
    db_user.email_verification_token = None
    db.commit()
    return db_user


# --- Profiles ---

def update_buyer_profile(db: Session, buyer_id: int, payment_details: dict) -> models.BuyerProfile:
    if get_user_with_role(db, buyer_id, models.UserRole.BUYER) is None:
        raise NotFoundError("Buyer not found")

    profile = db.query(models.BuyerProfile).filter(models.BuyerProfile.user_id == buyer_id).first()
    if profile is None:
        profile = models.BuyerProfile(user_id=buyer_id)
        db.add(profile)
    profile.payment_details = payment_details
    db.commit()
    db.refresh(profile)
    return profile


def update_vendor_profile(db: Session, vendor_id: int, data: schemas.VendorProfileUpdate) -> models.VendorProfile:
    if get_user_with_role(db, vendor_id, models.UserRole.VENDOR) is None:
        raise NotFoundError("Vendor not found")

    profile = db.query(models.VendorProfile).filter(models.VendorProfile.user_id == vendor_id).first()
    if profile is None:
        profile = models.VendorProfile(user_id=vendor_id)
        db.add(profile)
    profile.business_name = data.business_name
    profile.contact_info = data.contact_info
    profile.logo_url = data.logo_url
    db.commit()
    db.refresh(profile)
    return profile


def get_buyer_dashboard(db: Session, buyer_id: int) -> models.BuyerDashboard:
    if get_user_with_role(db, buyer_id, models.UserRole.BUYER) is None:
        raise NotFoundError("Buyer not found")
    dashboard = db.query(models.BuyerDashboard).filter(models.BuyerDashboard.user_id == buyer_id).first()
    if dashboard is None:
        # Buyers that never paid have no counters yet
        return models.BuyerDashboard(user_id=buyer_id, total_spent=Decimal("0"), total_bookings=0)
    return dashboard


# --- Listings ---

def _listing_fields(listing: schemas.ListingCreate) -> dict:
    return {
        "title": listing.title,
        "description": listing.description,
        "location": listing.location,
        "price": listing.price,
        "availability": [w.model_dump(mode="json", by_alias=True) for w in listing.availability],
        "amenities": listing.amenities,
        "images": listing.images,
    }


def create_listing(db: Session, listing: schemas.ListingCreate, vendor_id: int) -> models.Listing:
    db_listing = models.Listing(**_listing_fields(listing), vendor_id=vendor_id)
    db.add(db_listing)
    db.commit()
    db.refresh(db_listing)
    return db_listing


def get_listing(db: Session, listing_id: int) -> Optional[models.Listing]:
    return db.get(models.Listing, listing_id)


def get_listings(db: Session, skip: int = 0, limit: int = 100) -> List[models.Listing]:
    return db.query(models.Listing).order_by(models.Listing.id).offset(skip).limit(limit).all()


def get_listings_by_vendor(db: Session, vendor_id: int) -> List[models.Listing]:
    return db.query(models.Listing).filter(models.Listing.vendor_id == vendor_id).order_by(models.Listing.id).all()


def _get_owned_listing(db: Session, listing_id: int, vendor_id: int) -> models.Listing:
    db_listing = get_listing(db, listing_id)
    if db_listing is None:
        raise NotFoundError("Listing not found")
    if db_listing.vendor_id != vendor_id:
        raise ForbiddenError("Listing belongs to another vendor")
    return db_listing


def update_listing(db: Session, listing_id: int, listing: schemas.ListingUpdate, vendor_id: int) -> models.Listing:
    db_listing = _get_owned_listing(db, listing_id, vendor_id)
    for field, value in _listing_fields(listing).items():
        setattr(db_listing, field, value)
    db.commit()
    db.refresh(db_listing)
    return db_listing


def delete_listing(db: Session, listing_id: int, vendor_id: int) -> None:
    db_listing = _get_owned_listing(db, listing_id, vendor_id)
    has_bookings = db.query(models.Booking.id).filter(models.Booking.listing_id == listing_id).first()
    if has_bookings:
        raise ConflictError("Listing has bookings and cannot be deleted")
    db.delete(db_listing)
    db.commit()


def parse_price_range(price_range: str) -> Tuple[Decimal, Decimal]:
    """Parses "min-max" into an inclusive pair of bounds."""
    try:
        low, high = price_range.split("-", 1)
        min_price, max_price = Decimal(low.strip()), Decimal(high.strip())
    except (ValueError, InvalidOperation):
        raise ValidationError("priceRange must look like 'min-max'")
    if min_price > max_price:
        raise ValidationError("priceRange minimum is greater than its maximum")
    return min_price, max_price


def _covers(availability: list, start: datetime.datetime, end: datetime.datetime) -> bool:
    for window in availability or []:
        try:
            parsed = schemas.AvailabilityWindow.model_validate(window)
        except ValueError:
            continue
        if parsed.start_date <= start and parsed.end_date >= end:
            return True
    return False


def search_listings(
        db: Session,
        location: Optional[str] = None,
        start_date: Optional[datetime.datetime] = None,
        end_date: Optional[datetime.datetime] = None,
        price_range: Optional[str] = None,
        amenities: Optional[List[str]] = None,
        page: int = 1,
        page_size: int = 10,
) -> Tuple[List[models.Listing], int]:
    """
    Returns one page of matching listings and the total match count.

    Location and price are filtered in SQL. Availability containment and
    the amenities subset test run over the JSON columns in Python.
    """
    query = db.query(models.Listing)
    if location:
        query = query.filter(func.lower(models.Listing.location) == location.lower())
    if price_range:
        min_price, max_price = parse_price_range(price_range)
        query = query.filter(models.Listing.price >= min_price, models.Listing.price <= max_price)

    matches = query.order_by(models.Listing.id).all()

    if start_date and end_date:
        start_date, end_date = schemas.to_naive_utc(start_date), schemas.to_naive_utc(end_date)
        if end_date < start_date:
            raise ValidationError("endDate must not be before startDate")
        matches = [l for l in matches if _covers(l.availability, start_date, end_date)]
    if amenities:
        wanted = set(amenities)
        matches = [l for l in matches if wanted.issubset(set(l.amenities or []))]

    total = len(matches)
    offset = (page - 1) * page_size
    return matches[offset:offset + page_size], total


def total_pages(total: int, page_size: int) -> int:
    return max(1, math.ceil(total / page_size))


# --- Bookings ---

def check_booking_conflict(
        db: Session, listing_id: int, start_date: datetime.datetime, end_date: datetime.datetime
) -> bool:
    """
    Checks if a new booking for a given listing and date range conflicts
    with any existing bookings.

    Both bounds are inclusive, so a booking that starts on the day
    another ends is a conflict.
    Returns True if a conflict exists, False otherwise.
    """
    existing_booking = db.query(models.Booking).filter(
        models.Booking.listing_id == listing_id,
        models.Booking.start_date <= end_date,
        models.Booking.end_date >= start_date
    ).first()

    return existing_booking is not None


def create_booking(db: Session, booking: schemas.BookingCreate) -> models.Booking:
    """
    Validates and creates a booking plus its confirmation email in one
    transaction.

    The listing row is locked first, so concurrent requests for the same
    listing run the overlap check one at a time.
    """
    db_listing = db.query(models.Listing).filter(
        models.Listing.id == booking.listing_id
    ).with_for_update().first()
    db_user = get_user(db, booking.user_id)
    db_payment = db.get(models.Payment, booking.payment_id)

    try:
        if db_listing is None:
            raise NotFoundError("Listing not found")
        if db_user is None:
            raise NotFoundError("User not found")
        if db_payment is None or db_payment.payment_status != models.PaymentStatus.COMPLETED:
            raise PaymentNotReadyError()
        if db_payment.user_id != booking.user_id:
            raise ForbiddenError("Payment belongs to another user")

        payment_used = db.query(models.Booking.id).filter(models.Booking.payment_id == db_payment.id).first()
        if payment_used:
            raise ConflictError("Payment is already linked to a booking")

        if check_booking_conflict(db, booking.listing_id, booking.start_date, booking.end_date):
            raise ConflictError("Listing not available for the selected dates")
    except Exception:
        # Releases the listing lock
        db.rollback()
        raise

    db_booking = models.Booking(
        listing_id=booking.listing_id,
        user_id=booking.user_id,
        payment_id=booking.payment_id,
        start_date=booking.start_date,
        end_date=booking.end_date,
    )
    db.add(db_booking)

    start, end = booking.start_date.date().isoformat(), booking.end_date.date().isoformat()
    queue_email(
        db,
        to=db_user.email,
        subject="Booking Confirmation",
        html=(
            f"<h1>Booking Confirmed</h1><p>Your booking for {db_listing.title} "
            f"is confirmed from {start} to {end}.</p>"
        ),
        text=f"Booking Confirmed. Your booking for {db_listing.title} is confirmed from {start} to {end}.",
    )

    db.commit()
    db.refresh(db_booking)
    return db_booking


def get_booking(db: Session, booking_id: int) -> Optional[models.Booking]:
    return db.get(models.Booking, booking_id)


def get_bookings_by_user(db: Session, user_id: int, skip: int = 0, limit: int = 100) -> List[models.Booking]:
    return db.query(models.Booking).filter(
        models.Booking.user_id == user_id
    ).order_by(models.Booking.start_date).offset(skip).limit(limit).all()


def get_bookings_by_vendor(db: Session, vendor_id: int, skip: int = 0, limit: int = 100) -> List[models.Booking]:
    return db.query(models.Booking).join(models.Listing).filter(
        models.Listing.vendor_id == vendor_id
    ).order_by(models.Booking.start_date).offset(skip).limit(limit).all()


# --- Payments ---

MAX_AMOUNT = Decimal("99999999.99")


def parse_amount(price_id: str) -> Decimal:
    """Parses priceId into an amount in cents precision that fits the payments column."""
    try:
        amount = Decimal(str(price_id).strip())
        if not amount.is_finite():
            raise ValidationError("priceId must be a numeric amount")
        amount = amount.quantize(Decimal("0.01"))
    except InvalidOperation:
        raise ValidationError("priceId must be a numeric amount")
    if amount <= 0:
        raise ValidationError("priceId must be a positive amount")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"priceId must not exceed {MAX_AMOUNT}")
    return amount


def create_pending_payment(db: Session, user_id: int, amount: Decimal, receipt_email: str | None) -> models.Payment:
    """
    Adds a pending payment and flushes it to obtain its id.
    Note: Does NOT commit.
    """
    db_payment = models.Payment(
        user_id=user_id,
        amount=amount,
        payment_status=models.PaymentStatus.PENDING,
        receipt_email=receipt_email,
    )
    db.add(db_payment)
    db.flush()
    return db_payment


def get_payment(db: Session, payment_id: int) -> Optional[models.Payment]:
    return db.get(models.Payment, payment_id)
