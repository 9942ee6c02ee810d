from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import schemas, crud
from ..database import get_db
from ..exceptions import NotFoundError
from ..limits import booking_limit

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post(
    "",
    response_model=schemas.Envelope[schemas.BookingRead],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(booking_limit)],
)
def create_booking(
        booking: schemas.BookingCreate,
        db: Session = Depends(get_db),
):
    """
    Book a listing for a date range backed by a completed payment.
    """
    db_booking = crud.create_booking(db=db, booking=booking)
    return schemas.Envelope(
        message="Booking created successfully",
        data=schemas.BookingRead.model_validate(db_booking),
    )


@router.get("/{booking_id}", response_model=schemas.Envelope[schemas.BookingRead])
def read_booking(booking_id: int, db: Session = Depends(get_db)):
    db_booking = crud.get_booking(db, booking_id)
    if db_booking is None:
        raise NotFoundError("Booking not found")
    return schemas.Envelope(
        message="Booking fetched successfully",
        data=schemas.BookingRead.model_validate(db_booking),
    )
