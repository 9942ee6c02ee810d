from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas, crud, models
from ..database import get_db
from ..exceptions import NotFoundError

buyer_router = APIRouter(prefix="/buyers", tags=["Buyers"])
vendor_router = APIRouter(prefix="/vendors", tags=["Vendors"])


# --- Buyers ---

@buyer_router.post("/{buyer_id}/profile", response_model=schemas.Envelope[schemas.BuyerProfileRead])
@buyer_router.patch("/{buyer_id}/profile", response_model=schemas.Envelope[schemas.BuyerProfileRead])
def update_buyer_profile(
        buyer_id: int,
        body: schemas.BuyerProfileUpdate,
        db: Session = Depends(get_db),
):
    profile = crud.update_buyer_profile(db, buyer_id=buyer_id, payment_details=body.payment_details)
    return schemas.Envelope(
        message="Buyer profile updated successfully",
        data=schemas.BuyerProfileRead(buyer_id=buyer_id, payment_details=profile.payment_details),
    )


@buyer_router.get("/{buyer_id}/bookings", response_model=schemas.Envelope[List[schemas.BookingRead]])
def read_buyer_bookings(buyer_id: int, skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    if crud.get_user_with_role(db, buyer_id, models.UserRole.BUYER) is None:
        raise NotFoundError("Buyer not found")
    bookings = crud.get_bookings_by_user(db, user_id=buyer_id, skip=skip, limit=limit)
    return schemas.Envelope(
        message="Bookings fetched successfully",
        data=[schemas.BookingRead.model_validate(b) for b in bookings],
    )


@buyer_router.get("/{buyer_id}/dashboard", response_model=schemas.Envelope[schemas.BuyerDashboardRead])
def read_buyer_dashboard(buyer_id: int, db: Session = Depends(get_db)):
    dashboard = crud.get_buyer_dashboard(db, buyer_id)
    return schemas.Envelope(
        message="Dashboard fetched successfully",
        data=schemas.BuyerDashboardRead(
            buyer_id=buyer_id,
            total_spent=dashboard.total_spent,
            total_bookings=dashboard.total_bookings,
        ),
    )


# --- Vendors ---

@vendor_router.post("/{vendor_id}/profile", response_model=schemas.Envelope[schemas.VendorProfileRead])
def update_vendor_profile(
        vendor_id: int,
        body: schemas.VendorProfileUpdate,
        db: Session = Depends(get_db),
):
    profile = crud.update_vendor_profile(db, vendor_id=vendor_id, data=body)
    return schemas.Envelope(
        message="Vendor profile updated successfully",
        data=schemas.VendorProfileRead(
            vendor_id=vendor_id,
            business_name=profile.business_name,
            contact_info=profile.contact_info,
            logo_url=profile.logo_url,
        ),
    )


@vendor_router.get("/{vendor_id}/listings", response_model=schemas.Envelope[List[schemas.ListingRead]])
def read_vendor_listings(vendor_id: int, db: Session = Depends(get_db)):
    if crud.get_user_with_role(db, vendor_id, models.UserRole.VENDOR) is None:
        raise NotFoundError("Vendor not found")
    return schemas.Envelope(
        message="Listings fetched successfully",
        data=[schemas.ListingRead.model_validate(l) for l in crud.get_listings_by_vendor(db, vendor_id)],
    )


@vendor_router.get("/{vendor_id}/bookings", response_model=schemas.Envelope[List[schemas.BookingRead]])
def read_vendor_bookings(vendor_id: int, skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    if crud.get_user_with_role(db, vendor_id, models.UserRole.VENDOR) is None:
        raise NotFoundError("Vendor not found")
    bookings = crud.get_bookings_by_vendor(db, vendor_id=vendor_id, skip=skip, limit=limit)
    return schemas.Envelope(
        message="Bookings fetched successfully",
        data=[schemas.BookingRead.model_validate(b) for b in bookings],
    )
