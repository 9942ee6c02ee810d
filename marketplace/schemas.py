import datetime
from decimal import Decimal
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .models import UserRole

T = TypeVar("T")


def to_naive_utc(value: datetime.datetime) -> datetime.datetime:
    """Bookings are stored as naive UTC instants."""
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Envelope(CamelModel, Generic[T]):
    success: bool = True
    message: str
    data: Optional[T] = None


# --- Users ---

class UserRegister(CamelModel):
    email: EmailStr
    password: str = Field(min_length=8)
    role: UserRole = UserRole.BUYER


class UserRead(CamelModel):
    id: int
    email: str
    role: UserRole
    email_verified: bool


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class Token(CamelModel):
    access_token: str
    token_type: str = "bearer"


class PasswordRecoveryRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=8)


class VerifyEmailRequest(CamelModel):
    token: str = Field(min_length=1)


# --- Listings ---

class AvailabilityWindow(CamelModel):
    start_date: datetime.datetime
    end_date: datetime.datetime

    @field_validator("start_date", "end_date")
    @classmethod
    def normalise(cls, value: datetime.datetime) -> datetime.datetime:
        return to_naive_utc(value)

    @model_validator(mode="after")
    def check_order(self):
        if self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self


class ListingCreate(CamelModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    location: Optional[str] = None
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    availability: List[AvailabilityWindow] = Field(min_length=1)
    amenities: List[str] = Field(min_length=1)
    images: List[str] = Field(min_length=1)


class ListingUpdate(ListingCreate):
    # Full replace: same required fields as creation
    pass


class ListingRead(CamelModel):
    listing_id: int = Field(validation_alias=AliasChoices("id", "listingId"), serialization_alias="listingId")
    vendor_id: int
    title: str
    description: str
    location: Optional[str] = None
    price: float
    availability: List[dict]
    amenities: List[str]
    images: List[str]


class ListingPage(CamelModel):
    listings: List[ListingRead]
    total: int
    page: int
    page_size: int
    total_pages: int


# --- Bookings ---

class BookingCreate(CamelModel):
    listing_id: int
    user_id: int
    start_date: datetime.datetime
    end_date: datetime.datetime
    payment_id: int

    @field_validator("start_date", "end_date")
    @classmethod
    def normalise(cls, value: datetime.datetime) -> datetime.datetime:
        return to_naive_utc(value)

    @model_validator(mode="after")
    def check_order(self):
        if self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self


class BookingRead(CamelModel):
    booking_id: int = Field(validation_alias=AliasChoices("id", "bookingId"), serialization_alias="bookingId")
    listing_id: int
    user_id: int
    start_date: datetime.datetime
    end_date: datetime.datetime
    payment_id: int


# --- Payments ---

class CheckoutSessionCreate(CamelModel):
    price_id: str
    success_url: str = Field(min_length=1)
    cancel_url: str = Field(min_length=1)
    mode: str = "payment"


class CheckoutSessionRead(CamelModel):
    session_id: str
    session_url: Optional[str] = None
    payment_id: int


class PaymentRead(CamelModel):
    payment_id: int = Field(validation_alias=AliasChoices("id", "paymentId"), serialization_alias="paymentId")
    user_id: Optional[int] = None
    amount: float
    payment_status: str
    payment_date: Optional[datetime.datetime] = None

    @field_validator("payment_status", mode="before")
    @classmethod
    def status_value(cls, value: Any) -> str:
        return getattr(value, "value", value)


class WebhookResult(CamelModel):
    received: bool = True
    event_id: str
    event_type: str
    processing_result: str


# --- Profiles ---

class BuyerProfileUpdate(CamelModel):
    payment_details: dict


class BuyerProfileRead(CamelModel):
    buyer_id: int
    payment_details: dict


class VendorProfileUpdate(CamelModel):
    business_name: str = Field(min_length=1)
    contact_info: str = Field(min_length=1)
    logo_url: str = Field(min_length=1)


class VendorProfileRead(VendorProfileUpdate):
    vendor_id: int


class BuyerDashboardRead(CamelModel):
    buyer_id: int
    total_spent: float
    total_bookings: int
