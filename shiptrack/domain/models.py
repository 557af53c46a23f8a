import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    EMPLOYEE = "EMPLOYEE"


class ShipmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    ON_HOLD = "ON_HOLD"

    @property
    def label(self) -> str:
        """Human label used on tracking events, e.g. ``In transit``."""
        return self.value.replace("_", " ").lower().capitalize()


# Only consulted when ENFORCE_STATUS_TRANSITIONS is on; terminal states allow no moves.
STATUS_TRANSITIONS: dict[ShipmentStatus, frozenset[ShipmentStatus]] = {
    ShipmentStatus.PENDING: frozenset({
        ShipmentStatus.PICKED_UP, ShipmentStatus.CANCELLED, ShipmentStatus.ON_HOLD,
    }),
    ShipmentStatus.PICKED_UP: frozenset({
        ShipmentStatus.IN_TRANSIT, ShipmentStatus.CANCELLED, ShipmentStatus.ON_HOLD,
    }),
    ShipmentStatus.IN_TRANSIT: frozenset({
        ShipmentStatus.OUT_FOR_DELIVERY, ShipmentStatus.DELIVERED, ShipmentStatus.ON_HOLD,
    }),
    ShipmentStatus.OUT_FOR_DELIVERY: frozenset({
        ShipmentStatus.DELIVERED, ShipmentStatus.IN_TRANSIT, ShipmentStatus.ON_HOLD,
    }),
    ShipmentStatus.ON_HOLD: frozenset({
        ShipmentStatus.PENDING, ShipmentStatus.PICKED_UP, ShipmentStatus.IN_TRANSIT,
        ShipmentStatus.OUT_FOR_DELIVERY, ShipmentStatus.CANCELLED,
    }),
    ShipmentStatus.DELIVERED: frozenset(),
    ShipmentStatus.CANCELLED: frozenset(),
}


class User(Base):
    __tablename__ = "users"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password: Mapped[str] = mapped_column(String(255))
    first_name: Mapped[str] = mapped_column(String(100))
    last_name: Mapped[str] = mapped_column(String(100))
    role: Mapped[UserRole] = mapped_column(Enum(UserRole, name="user_role"), default=UserRole.EMPLOYEE)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Location(Base):
    __tablename__ = "locations"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    address: Mapped[str] = mapped_column(String(255))
    city: Mapped[str] = mapped_column(String(100))
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country: Mapped[str] = mapped_column(String(100))
    postal_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)


class Dimensions(Base):
    __tablename__ = "dimensions"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    length: Mapped[float] = mapped_column(Float)
    width: Mapped[float] = mapped_column(Float)
    height: Mapped[float] = mapped_column(Float)


class Shipment(Base):
    __tablename__ = "shipments"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tracking_number: Mapped[str] = mapped_column(String(50), unique=True, index=True)

    shipper_name: Mapped[str] = mapped_column(String(200))
    shipper_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    shipper_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    consignee_name: Mapped[str] = mapped_column(String(200))
    consignee_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    consignee_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Locations are plain references: each shipment gets its own rows at creation
    pickup_location_id: Mapped[str] = mapped_column(ForeignKey("locations.id"))
    delivery_location_id: Mapped[str] = mapped_column(ForeignKey("locations.id"))
    dimensions_id: Mapped[Optional[str]] = mapped_column(ForeignKey("dimensions.id"), nullable=True)

    carrier_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    carrier_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    weight: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)

    status: Mapped[ShipmentStatus] = mapped_column(
        Enum(ShipmentStatus, name="shipment_status"), default=ShipmentStatus.PENDING, index=True
    )
    is_flagged: Mapped[bool] = mapped_column(Boolean, default=False)
    flag_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    pickup_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_delivery: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_delivery: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    updated_by_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    dimensions: Mapped[Optional[Dimensions]] = relationship(lazy="raise")
    tracking_events: Mapped[list["TrackingEvent"]] = relationship(
        back_populates="shipment", lazy="raise", passive_deletes=True,
        order_by="TrackingEvent.timestamp.desc()",
    )


class TrackingEvent(Base):
    __tablename__ = "tracking_events"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    shipment_id: Mapped[str] = mapped_column(ForeignKey("shipments.id"), index=True)
    # Free-text label, not the ShipmentStatus enum
    status: Mapped[str] = mapped_column(String(100))
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    location_id: Mapped[Optional[str]] = mapped_column(ForeignKey("locations.id"), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    shipment: Mapped[Shipment] = relationship(back_populates="tracking_events", lazy="raise")
    location: Mapped[Optional[Location]] = relationship(lazy="raise")
