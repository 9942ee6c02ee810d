from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from marketplace import models

from conftest import make_listing, make_payment, make_user


def book(client: TestClient, db: Session, listing_id: int, user_id: int, start: str, end: str):
    payment = make_payment(db, user_id)
    response = client.post("/bookings", json={
        "listingId": listing_id, "userId": user_id, "startDate": start, "endDate": end, "paymentId": payment.id,
    })
    assert response.status_code == 201
    return response.json()["data"]


# --- Buyers ---

def test_create_buyer_profile(client: TestClient, buyer, db_session: Session):
    details = {"cardLast4": "4242", "billingCountry": "PT"}

    response = client.post(f"/buyers/{buyer.id}/profile", json={"paymentDetails": details})

    assert response.status_code == 200
    assert response.json()["data"] == {"buyerId": buyer.id, "paymentDetails": details}
    profile = db_session.query(models.BuyerProfile).filter(models.BuyerProfile.user_id == buyer.id).one()
    assert profile.payment_details == details


def test_patch_buyer_profile_replaces_details(client: TestClient, buyer):
    client.post(f"/buyers/{buyer.id}/profile", json={"paymentDetails": {"cardLast4": "4242"}})

    response = client.patch(f"/buyers/{buyer.id}/profile", json={"paymentDetails": {"cardLast4": "1881"}})

    assert response.status_code == 200
    assert response.json()["data"]["paymentDetails"] == {"cardLast4": "1881"}


def test_buyer_profile_requires_object(client: TestClient, buyer):
    response = client.post(f"/buyers/{buyer.id}/profile", json={"paymentDetails": "visa"})
    assert response.status_code == 400

    response = client.post(f"/buyers/{buyer.id}/profile", json={})
    assert response.status_code == 400
    assert response.json()["message"] == "Missing required fields"


def test_buyer_profile_unknown_buyer(client: TestClient, vendor):
    """A vendor id is not a buyer."""
    response = client.post(f"/buyers/{vendor.id}/profile", json={"paymentDetails": {}})

    assert response.status_code == 404
    assert response.json()["message"] == "Buyer not found"


def test_buyer_dashboard(client: TestClient, db_session: Session, buyer):
    dashboard = db_session.query(models.BuyerDashboard).filter(models.BuyerDashboard.user_id == buyer.id).one()
    dashboard.total_spent = Decimal("320.50")
    dashboard.total_bookings = 3
    db_session.commit()

    response = client.get(f"/buyers/{buyer.id}/dashboard")

    assert response.status_code == 200
    assert response.json()["data"] == {"buyerId": buyer.id, "totalSpent": 320.5, "totalBookings": 3}


def test_buyer_dashboard_defaults_to_zero(client: TestClient, db_session: Session, buyer):
    db_session.query(models.BuyerDashboard).delete()
    db_session.commit()

    response = client.get(f"/buyers/{buyer.id}/dashboard")

    assert response.status_code == 200
    assert response.json()["data"]["totalSpent"] == 0
    assert response.json()["data"]["totalBookings"] == 0


def test_buyer_dashboard_unknown_buyer(client: TestClient):
    assert client.get("/buyers/999/dashboard").status_code == 404


def test_buyer_bookings(client: TestClient, db_session: Session, buyer, listing):
    book(client, db_session, listing.id, buyer.id, "2025-03-10", "2025-03-12")
    book(client, db_session, listing.id, buyer.id, "2025-02-01", "2025-02-03")
    other_buyer = make_user(db_session, email="other@example.com")
    book(client, db_session, listing.id, other_buyer.id, "2025-04-01", "2025-04-02")

    response = client.get(f"/buyers/{buyer.id}/bookings")

    assert response.status_code == 200
    starts = [b["startDate"][:10] for b in response.json()["data"]]
    assert starts == ["2025-02-01", "2025-03-10"]


# --- Vendors ---

def test_create_vendor_profile(client: TestClient, vendor, db_session: Session):
    body = {"businessName": "Coastal Stays", "contactInfo": "+351 210 000 000", "logoUrl": "https://img.example.com/logo.png"}

    response = client.post(f"/vendors/{vendor.id}/profile", json=body)

    assert response.status_code == 200
    assert response.json()["data"] == {"vendorId": vendor.id, **body}
    profile = db_session.query(models.VendorProfile).filter(models.VendorProfile.user_id == vendor.id).one()
    assert profile.business_name == "Coastal Stays"


def test_vendor_profile_missing_fields(client: TestClient, vendor):
    response = client.post(f"/vendors/{vendor.id}/profile", json={"businessName": "Coastal Stays"})

    assert response.status_code == 400
    assert response.json()["message"] == "Missing required fields"


def test_vendor_profile_unknown_vendor(client: TestClient, buyer):
    body = {"businessName": "X", "contactInfo": "Y", "logoUrl": "Z"}
    response = client.post(f"/vendors/{buyer.id}/profile", json=body)

    assert response.status_code == 404
    assert response.json()["message"] == "Vendor not found"


def test_vendor_listings(client: TestClient, db_session: Session, vendor, listing):
    rival = make_user(db_session, email="rival@example.com", role=models.UserRole.VENDOR)
    make_listing(db_session, rival.id, title="Not mine")

    response = client.get(f"/vendors/{vendor.id}/listings")

    assert response.status_code == 200
    assert [l["listingId"] for l in response.json()["data"]] == [listing.id]


def test_vendor_bookings(client: TestClient, db_session: Session, vendor, buyer, listing):
    rival = make_user(db_session, email="rival@example.com", role=models.UserRole.VENDOR)
    other_listing = make_listing(db_session, rival.id, title="Not mine")
    mine = book(client, db_session, listing.id, buyer.id, "2025-03-10", "2025-03-12")
    book(client, db_session, other_listing.id, buyer.id, "2025-03-10", "2025-03-12")

    response = client.get(f"/vendors/{vendor.id}/bookings")

    assert response.status_code == 200
    assert [b["bookingId"] for b in response.json()["data"]] == [mine["bookingId"]]


def test_vendor_bookings_unknown_vendor(client: TestClient, buyer):
    assert client.get(f"/vendors/{buyer.id}/bookings").status_code == 404
