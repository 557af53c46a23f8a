from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..domain.models import ShipmentStatus, UserRole


class SortField(str, Enum):
    CREATED_AT = "CREATED_AT"
    UPDATED_AT = "UPDATED_AT"
    TRACKING_NUMBER = "TRACKING_NUMBER"
    STATUS = "STATUS"
    SHIPPER_NAME = "SHIPPER_NAME"
    CONSIGNEE_NAME = "CONSIGNEE_NAME"
    PICKUP_DATE = "PICKUP_DATE"
    ESTIMATED_DELIVERY = "ESTIMATED_DELIVERY"
    RATE = "RATE"


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class DateRange(BaseModel):
    from_: Optional[datetime] = Field(default=None, alias="from")
    to: Optional[datetime] = None

    model_config = {"populate_by_name": True}


class RateRange(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None


class ShipmentFilter(BaseModel):
    status: Optional[list[ShipmentStatus]] = None
    carrier_name: Optional[str] = None
    date_range: Optional[DateRange] = None
    rate_range: Optional[RateRange] = None
    is_flagged: Optional[bool] = None
    search_term: Optional[str] = None


class ShipmentSort(BaseModel):
    # Plain strings are accepted; unknown fields fall back to createdAt
    field: str = SortField.CREATED_AT.value
    order: str = SortOrder.DESC.value


class PageRequest(BaseModel):
    page: Optional[int] = None
    limit: Optional[int] = None


class LocationIn(BaseModel):
    address: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: Optional[str] = None
    country: str = Field(min_length=1, max_length=100)
    postal_code: Optional[str] = Field(default=None, max_length=20)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class DimensionsIn(BaseModel):
    length: float = Field(gt=0)
    width: float = Field(gt=0)
    height: float = Field(gt=0)


class ShipmentCreate(BaseModel):
    tracking_number: Optional[str] = Field(default=None, max_length=50)
    shipper_name: str = Field(min_length=1, max_length=200)
    shipper_phone: Optional[str] = None
    shipper_email: Optional[str] = None
    consignee_name: str = Field(min_length=1, max_length=200)
    consignee_phone: Optional[str] = None
    consignee_email: Optional[str] = None
    pickup_location: LocationIn
    delivery_location: LocationIn
    carrier_name: Optional[str] = None
    carrier_phone: Optional[str] = None
    weight: Optional[float] = Field(default=None, ge=0)
    dimensions: Optional[DimensionsIn] = None
    rate: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    pickup_date: Optional[datetime] = None
    estimated_delivery: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


class ShipmentUpdate(BaseModel):
    """Partial update; only fields the caller actually sent are applied."""
    shipper_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    shipper_phone: Optional[str] = None
    shipper_email: Optional[str] = None
    consignee_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    consignee_phone: Optional[str] = None
    consignee_email: Optional[str] = None
    pickup_location: Optional[LocationIn] = None
    delivery_location: Optional[LocationIn] = None
    carrier_name: Optional[str] = None
    carrier_phone: Optional[str] = None
    weight: Optional[float] = Field(default=None, ge=0)
    dimensions: Optional[DimensionsIn] = None
    rate: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    status: Optional[ShipmentStatus] = None
    pickup_date: Optional[datetime] = None
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


class RegisterIn(BaseModel):
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class LoginIn(BaseModel):
    email: str
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class UserCreate(RegisterIn):
    role: UserRole = UserRole.EMPLOYEE


class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
