import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import schemas, crud, auth, models
from ..database import get_db
from ..exceptions import NotFoundError

router = APIRouter(prefix="/listings", tags=["Listings"])


def _read(listings: List[models.Listing]) -> List[schemas.ListingRead]:
    return [schemas.ListingRead.model_validate(l) for l in listings]


@router.post("", response_model=schemas.Envelope[schemas.ListingRead], status_code=status.HTTP_201_CREATED)
def create_listing(
        listing: schemas.ListingCreate,
        db: Session = Depends(get_db),
        current_vendor: models.User = Depends(auth.get_current_vendor),
):
    db_listing = crud.create_listing(db=db, listing=listing, vendor_id=current_vendor.id)
    return schemas.Envelope(
        message="Listing created successfully",
        data=schemas.ListingRead.model_validate(db_listing),
    )


@router.get("", response_model=schemas.Envelope[List[schemas.ListingRead]])
def read_listings(
        skip: int = Query(0, ge=0),
        limit: int = Query(100, ge=1, le=100),
        db: Session = Depends(get_db),
):
    return schemas.Envelope(
        message="Listings fetched successfully",
        data=_read(crud.get_listings(db, skip=skip, limit=limit)),
    )


# Declared before /{listing_id} so "search" is not parsed as an id
@router.get("/search", response_model=schemas.Envelope[schemas.ListingPage])
def search_listings(
        location: Optional[str] = None,
        start_date: Optional[datetime.datetime] = Query(None, alias="startDate"),
        end_date: Optional[datetime.datetime] = Query(None, alias="endDate"),
        price_range: Optional[str] = Query(None, alias="priceRange"),
        amenities: Optional[str] = None,
        page: int = Query(1, ge=1),
        page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
        db: Session = Depends(get_db),
):
    """
    Filter listings by location, an availability window covering
    [startDate, endDate], an inclusive "min-max" price range and a
    comma-separated set of required amenities.
    """
    wanted_amenities = [a.strip() for a in amenities.split(",") if a.strip()] if amenities else None
    listings, total = crud.search_listings(
        db,
        location=location,
        start_date=start_date,
        end_date=end_date,
        price_range=price_range,
        amenities=wanted_amenities,
        page=page,
        page_size=page_size,
    )
    return schemas.Envelope(
        message="Listings fetched successfully",
        data=schemas.ListingPage(
            listings=_read(listings),
            total=total,
            page=page,
            page_size=page_size,
            total_pages=crud.total_pages(total, page_size),
        ),
    )


@router.get("/{listing_id}", response_model=schemas.Envelope[schemas.ListingRead])
def read_listing(listing_id: int, db: Session = Depends(get_db)):
    db_listing = crud.get_listing(db, listing_id)
    if db_listing is None:
        raise NotFoundError("Listing not found")
    return schemas.Envelope(
        message="Listing fetched successfully",
        data=schemas.ListingRead.model_validate(db_listing),
    )


@router.put("/{listing_id}", response_model=schemas.Envelope[schemas.ListingRead])
def update_listing(
        listing_id: int,
        listing: schemas.ListingUpdate,
        db: Session = Depends(get_db),
        current_vendor: models.User = Depends(auth.get_current_vendor),
):
    db_listing = crud.update_listing(db, listing_id=listing_id, listing=listing, vendor_id=current_vendor.id)
    return schemas.Envelope(
        message="Listing updated successfully",
        data=schemas.ListingRead.model_validate(db_listing),
    )


@router.delete("/{listing_id}", response_model=schemas.Envelope[dict])
def delete_listing(
        listing_id: int,
        db: Session = Depends(get_db),
        current_vendor: models.User = Depends(auth.get_current_vendor),
):
    crud.delete_listing(db, listing_id=listing_id, vendor_id=current_vendor.id)
    return schemas.Envelope(message="Listing deleted successfully", data={"listingId": listing_id})
