import json

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from marketplace import models
from marketplace.config import settings

from conftest import make_listing, make_payment, make_user


def booking_payload(listing_id, user_id, payment_id, start="2025-01-10", end="2025-01-15"):
    return {
        "listingId": listing_id,
        "userId": user_id,
        "startDate": start,
        "endDate": end,
        "paymentId": payment_id,
    }


def test_create_booking_success(client: TestClient, db_session: Session, listing, buyer):
    """A completed payment and free dates produce a booking and a queued confirmation email."""
    payment = make_payment(db_session, buyer.id)

    response = client.post("/bookings", json=booking_payload(listing.id, buyer.id, payment.id))

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Booking created successfully"
    data = body["data"]
    assert data["bookingId"] is not None
    assert data["listingId"] == listing.id
    assert data["userId"] == buyer.id
    assert data["paymentId"] == payment.id
    assert data["startDate"].startswith("2025-01-10")

    # The confirmation email goes through the outbox, not the request
    outbox_event = db_session.query(models.OutboxEvent).one()
    assert outbox_event.status == "PENDING"
    assert outbox_event.topic == settings.KAFKA_NOTIFICATION_TOPIC
    payload = json.loads(outbox_event.payload)
    assert payload["to"] == buyer.email
    assert payload["subject"] == "Booking Confirmation"


def test_create_booking_missing_fields(client: TestClient):
    response = client.post("/bookings", json={"listingId": 1, "userId": 1})

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["message"] == "Missing required fields"


def test_create_booking_end_before_start(client: TestClient, listing, buyer, db_session: Session):
    payment = make_payment(db_session, buyer.id)
    response = client.post(
        "/bookings", json=booking_payload(listing.id, buyer.id, payment.id, start="2025-01-15", end="2025-01-10"))

    assert response.status_code == 400
    assert db_session.query(models.Booking).count() == 0


def test_create_booking_listing_not_found(client: TestClient, buyer, db_session: Session):
    payment = make_payment(db_session, buyer.id)
    response = client.post("/bookings", json=booking_payload(999, buyer.id, payment.id))

    assert response.status_code == 404
    assert response.json()["message"] == "Listing not found"


def test_create_booking_user_not_found(client: TestClient, listing, buyer, db_session: Session):
    payment = make_payment(db_session, buyer.id)
    response = client.post("/bookings", json=booking_payload(listing.id, 999, payment.id))

    assert response.status_code == 404
    assert response.json()["message"] == "User not found"


def test_create_booking_pending_payment_rejected(client: TestClient, listing, buyer, db_session: Session):
    payment = make_payment(db_session, buyer.id, status=models.PaymentStatus.PENDING)

    response = client.post("/bookings", json=booking_payload(listing.id, buyer.id, payment.id))

    assert response.status_code == 404
    assert response.json()["message"] == "Payment not found or not completed"
    assert db_session.query(models.Booking).count() == 0


def test_create_booking_missing_payment_rejected(client: TestClient, listing, buyer):
    response = client.post("/bookings", json=booking_payload(listing.id, buyer.id, 12345))
    assert response.status_code == 404


def test_create_booking_back_to_back_conflict(client: TestClient, listing, buyer, db_session: Session):
    """A stay starting on the last day of another one is rejected."""
    first = make_payment(db_session, buyer.id)
    second = make_payment(db_session, buyer.id)

    response = client.post("/bookings", json=booking_payload(listing.id, buyer.id, first.id))
    assert response.status_code == 201

    response = client.post(
        "/bookings",
        json=booking_payload(listing.id, buyer.id, second.id, start="2025-01-15", end="2025-01-20"),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Listing not available for the selected dates"
    assert db_session.query(models.Booking).count() == 1
    # Only the first booking's email was queued
    assert db_session.query(models.OutboxEvent).count() == 1


def test_create_booking_next_day_succeeds(client: TestClient, listing, buyer, db_session: Session):
    first = make_payment(db_session, buyer.id)
    second = make_payment(db_session, buyer.id)

    assert client.post("/bookings", json=booking_payload(listing.id, buyer.id, first.id)).status_code == 201
    response = client.post(
        "/bookings",
        json=booking_payload(listing.id, buyer.id, second.id, start="2025-01-16", end="2025-01-20"),
    )

    assert response.status_code == 201
    assert db_session.query(models.Booking).count() == 2


def test_create_booking_same_dates_other_listing(client: TestClient, listing, vendor, buyer, db_session: Session):
    other = make_listing(db_session, vendor.id, title="Mountain cabin")
    first = make_payment(db_session, buyer.id)
    second = make_payment(db_session, buyer.id)

    assert client.post("/bookings", json=booking_payload(listing.id, buyer.id, first.id)).status_code == 201
    assert client.post("/bookings", json=booking_payload(other.id, buyer.id, second.id)).status_code == 201


def test_create_booking_payment_reused(client: TestClient, listing, buyer, db_session: Session):
    payment = make_payment(db_session, buyer.id)

    assert client.post("/bookings", json=booking_payload(listing.id, buyer.id, payment.id)).status_code == 201
    response = client.post(
        "/bookings",
        json=booking_payload(listing.id, buyer.id, payment.id, start="2025-03-01", end="2025-03-05"),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Payment is already linked to a booking"


def test_create_booking_timezone_normalised(client: TestClient, listing, buyer, db_session: Session):
    """Offsets are converted to UTC before comparing."""
    first = make_payment(db_session, buyer.id)
    second = make_payment(db_session, buyer.id)

    response = client.post("/bookings", json=booking_payload(
        listing.id, buyer.id, first.id, start="2025-02-01T00:00:00Z", end="2025-02-03T00:00:00Z"))
    assert response.status_code == 201

    # 2025-02-03T01:00:00+02:00 is 2025-02-02T23:00:00Z, inside the first stay
    response = client.post("/bookings", json=booking_payload(
        listing.id, buyer.id, second.id, start="2025-02-03T01:00:00+02:00", end="2025-02-06T00:00:00+02:00"))
    assert response.status_code == 400


def test_read_booking(client: TestClient, listing, buyer, db_session: Session):
    payment = make_payment(db_session, buyer.id)
    created = client.post("/bookings", json=booking_payload(listing.id, buyer.id, payment.id)).json()["data"]

    response = client.get(f"/bookings/{created['bookingId']}")

    assert response.status_code == 200
    assert response.json()["data"]["listingId"] == listing.id
    assert client.get("/bookings/999").status_code == 404


def test_accepted_bookings_never_overlap(client: TestClient, listing, buyer, db_session: Session):
    """Whatever is requested, the stored bookings of one listing stay disjoint."""
    requests = [
        ("2025-05-01", "2025-05-05"),
        ("2025-05-05", "2025-05-08"),
        ("2025-05-03", "2025-05-04"),
        ("2025-05-06", "2025-05-10"),
        ("2025-04-25", "2025-05-01"),
        ("2025-04-20", "2025-04-30"),
        ("2025-05-11", "2025-05-11"),
    ]
    for start, end in requests:
        payment = make_payment(db_session, buyer.id)
        client.post("/bookings", json=booking_payload(listing.id, buyer.id, payment.id, start=start, end=end))

    bookings = db_session.query(models.Booking).filter(models.Booking.listing_id == listing.id).all()
    assert len(bookings) == 4
    for i, a in enumerate(bookings):
        for b in bookings[i + 1:]:
            assert not (a.start_date <= b.end_date and a.end_date >= b.start_date)


def test_create_booking_with_another_users_payment(client: TestClient, listing, buyer, db_session: Session):
    """A completed payment can only back a booking for the user who paid."""
    other = make_user(db_session, email="other@example.com")
    payment = make_payment(db_session, other.id)

    response = client.post("/bookings", json=booking_payload(listing.id, buyer.id, payment.id))

    assert response.status_code == 403
    assert response.json()["message"] == "Payment belongs to another user"
    assert db_session.query(models.Booking).count() == 0

    # The owner can still use it
    response = client.post("/bookings", json=booking_payload(listing.id, other.id, payment.id))
    assert response.status_code == 201
