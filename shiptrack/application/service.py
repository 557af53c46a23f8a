import asyncio
import secrets
import string
import time
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.logging_config import get_logger
from ..core_settings import Settings, get_settings
from ..domain.models import (
    STATUS_TRANSITIONS,
    Dimensions,
    Location,
    Shipment,
    ShipmentStatus,
    TrackingEvent,
    utcnow,
)
from ..infrastructure.db import Database
from ..infrastructure.repository import SHIPMENT_ROW_OPTIONS, Repository
from .errors import BadUserInput, NotFound, Unauthenticated
from .listing import ShipmentView, hydrate
from .loaders import RequestLoaders
from .policy import Action, Actor, authorize
from .schemas import LocationIn, ShipmentCreate, ShipmentUpdate

logger = get_logger(__name__)

CREATED_EVENT_STATUS = "Shipment Created"
CREATED_EVENT_DESCRIPTION = "Shipment has been created and is pending pickup"
DEFAULT_CARRIER = "TBD"
DEFAULT_CURRENCY = "USD"

# Columns that may not be cleared by an explicit null in an update
REQUIRED_FIELDS = ("shipper_name", "consignee_name", "status")

_BASE36 = string.digits + string.ascii_uppercase


def _base36(number: int) -> str:
    digits = ""
    while True:
        number, remainder = divmod(number, 36)
        digits = _BASE36[remainder] + digits
        if not number:
            return digits


def generate_tracking_number() -> str:
    """``TMS`` + base36 millisecond clock + six random base36 characters."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"TMS{_base36(int(time.time() * 1000))}{suffix}"


@dataclass
class ShipmentStats:
    total: int
    by_status: dict[ShipmentStatus, int]
    average_rate: float


class ShipmentService:
    def __init__(self, database: Database, loaders: RequestLoaders,
                 settings: Optional[Settings] = None):
        self.database = database
        self.loaders = loaders
        self.settings = settings or get_settings()

    # ---- reads ---------------------------------------------------------

    async def _load_view(self, *where) -> Optional[ShipmentView]:
        async with self.database.session() as session:
            shipment = await Repository(session, Shipment).find_one(*where, options=SHIPMENT_ROW_OPTIONS)
        if shipment is None:
            return None
        return (await hydrate([shipment], self.loaders))[0]

    async def get(self, actor: Optional[Actor], id: str) -> Optional[ShipmentView]:
        authorize(actor, Action.VIEW_SHIPMENTS)
        return await self._load_view(Shipment.id == id)

    async def get_by_tracking_number(self, tracking_number: str) -> Optional[ShipmentView]:
        """Public lookup; no actor required."""
        return await self._load_view(Shipment.tracking_number == tracking_number.strip())

    async def _scalar(self, stmt) -> Any:
        async with self.database.session() as session:
            return (await session.execute(stmt)).scalar()

    async def _status_counts(self) -> dict[ShipmentStatus, int]:
        stmt = select(Shipment.status, func.count()).group_by(Shipment.status)
        async with self.database.session() as session:
            rows = (await session.execute(stmt)).all()
        return {status: count for status, count in rows}

    async def stats(self, actor: Optional[Actor]) -> ShipmentStats:
        authorize(actor, Action.VIEW_SHIPMENTS)
        total, counts, average = await asyncio.gather(
            self._scalar(select(func.count()).select_from(Shipment)),
            self._status_counts(),
            self._scalar(select(func.avg(Shipment.rate))),
        )
        return ShipmentStats(
            total=total or 0,
            by_status={status: counts.get(status, 0) for status in ShipmentStatus},
            average_rate=float(average or 0),
        )

    # ---- writes --------------------------------------------------------

    async def _require(self, session: AsyncSession, id: str) -> Shipment:
        shipment = await Repository(session, Shipment).get(id)
        if shipment is None:
            raise NotFound("Shipment not found")
        return shipment

    def _check_transition(self, current: ShipmentStatus, new: ShipmentStatus) -> None:
        if not self.settings.ENFORCE_STATUS_TRANSITIONS or current == new:
            return
        if new not in STATUS_TRANSITIONS[current]:
            raise BadUserInput(f"Cannot change status from {current.value} to {new.value}")

    async def _append_status_event(self, session: AsyncSession, shipment: Shipment,
                                   status: ShipmentStatus) -> None:
        await Repository(session, TrackingEvent).create(
            shipment_id=shipment.id,
            status=status.label,
            timestamp=utcnow(),
            location_id=shipment.delivery_location_id,
            description=f"Status updated to {status.value}",
        )

    async def _save_location(self, session: AsyncSession, location_id: Optional[str],
                             data: LocationIn) -> str:
        """Update the referenced location in place, or create one when it is missing."""
        locations = Repository(session, Location)
        existing = await locations.get(location_id) if location_id else None
        if existing is None:
            return (await locations.create(**data.model_dump())).id
        await locations.update(existing, data.model_dump(exclude_unset=True))
        return existing.id

    async def create(self, actor: Optional[Actor], data: ShipmentCreate) -> ShipmentView:
        actor = authorize(actor, Action.CREATE_SHIPMENT)
        try:
            async with self.database.transaction() as session:
                shipments = Repository(session, Shipment)
                tracking_number = data.tracking_number or generate_tracking_number()
                if await shipments.find_one(Shipment.tracking_number == tracking_number):
                    raise BadUserInput(f"Tracking number {tracking_number} is already in use")

                locations = Repository(session, Location)
                pickup = await locations.create(**data.pickup_location.model_dump())
                delivery = await locations.create(**data.delivery_location.model_dump())
                dimensions = None
                if data.dimensions:
                    dimensions = await Repository(session, Dimensions).create(**data.dimensions.model_dump())

                shipment = await shipments.create(
                    tracking_number=tracking_number,
                    shipper_name=data.shipper_name,
                    shipper_phone=data.shipper_phone,
                    shipper_email=data.shipper_email,
                    consignee_name=data.consignee_name,
                    consignee_phone=data.consignee_phone,
                    consignee_email=data.consignee_email,
                    pickup_location_id=pickup.id,
                    delivery_location_id=delivery.id,
                    dimensions_id=dimensions.id if dimensions else None,
                    carrier_name=data.carrier_name or DEFAULT_CARRIER,
                    carrier_phone=data.carrier_phone,
                    weight=data.weight,
                    rate=data.rate if data.rate is not None else 0.0,
                    currency=data.currency or DEFAULT_CURRENCY,
                    status=ShipmentStatus.PENDING,
                    is_flagged=False,
                    pickup_date=data.pickup_date,
                    estimated_delivery=data.estimated_delivery,
                    notes=data.notes,
                    created_by_id=actor.id,
                    updated_by_id=actor.id,
                )
                await Repository(session, TrackingEvent).create(
                    shipment_id=shipment.id,
                    status=CREATED_EVENT_STATUS,
                    timestamp=utcnow(),
                    location_id=pickup.id,
                    description=CREATED_EVENT_DESCRIPTION,
                )
        except IntegrityError as e:
            raise BadUserInput("Shipment conflicts with an existing record") from e

        logger.info("Shipment created", fields={
            "shipment_id": shipment.id, "tracking_number": shipment.tracking_number, "actor": actor.id,
        })
        return await self._load_view(Shipment.id == shipment.id)

    async def update(self, actor: Optional[Actor], id: str, data: ShipmentUpdate) -> ShipmentView:
        if actor is None:
            raise Unauthenticated()
        changes = data.model_dump(exclude_unset=True)
        for field in REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                raise BadUserInput(f"{field} cannot be null")

        async with self.database.transaction() as session:
            shipment = await self._require(session, id)
            authorize(actor, Action.UPDATE_SHIPMENT, shipment)

            for key in ("pickup_location", "delivery_location"):
                if key not in changes:
                    continue
                location_data = changes.pop(key)
                if location_data is None:
                    continue
                fk = f"{key}_id"
                location_id = await self._save_location(
                    session, getattr(shipment, fk), getattr(data, key))
                changes[fk] = location_id
                self.loaders.locations.forget(location_id)

            if "dimensions" in changes:
                changes.pop("dimensions")
                if data.dimensions is None:
                    changes["dimensions_id"] = None
                else:
                    dimensions_repo = Repository(session, Dimensions)
                    existing = await dimensions_repo.get(shipment.dimensions_id) if shipment.dimensions_id else None
                    if existing is None:
                        changes["dimensions_id"] = (await dimensions_repo.create(**data.dimensions.model_dump())).id
                    else:
                        await dimensions_repo.update(existing, data.dimensions.model_dump(exclude_unset=True))

            new_status = changes.get("status")
            status_changed = new_status is not None and new_status != shipment.status
            if status_changed:
                self._check_transition(shipment.status, new_status)
            if (new_status == ShipmentStatus.DELIVERED and "actual_delivery" not in changes
                    and shipment.actual_delivery is None):
                changes["actual_delivery"] = utcnow()

            changes["updated_by_id"] = actor.id
            await Repository(session, Shipment).update(shipment, changes)
            if status_changed:
                await self._append_status_event(session, shipment, new_status)

        logger.info("Shipment updated", fields={
            "shipment_id": id, "fields": sorted(changes), "actor": actor.id,
        })
        return await self._load_view(Shipment.id == id)

    async def delete(self, actor: Optional[Actor], id: str) -> bool:
        actor = authorize(actor, Action.DELETE_SHIPMENT)
        async with self.database.transaction() as session:
            shipment = await self._require(session, id)
            removed_events = await Repository(session, TrackingEvent).delete_where(
                TrackingEvent.shipment_id == id)
            await Repository(session, Shipment).delete(shipment)
        logger.info("Shipment deleted", fields={
            "shipment_id": id, "tracking_events_removed": removed_events, "actor": actor.id,
        })
        return True

    async def update_status(self, actor: Optional[Actor], id: str,
                            status: ShipmentStatus) -> ShipmentView:
        actor = authorize(actor, Action.CHANGE_STATUS)
        async with self.database.transaction() as session:
            shipment = await self._require(session, id)
            self._check_transition(shipment.status, status)
            values: dict[str, Any] = {"status": status, "updated_by_id": actor.id}
            # Stamped once; moving away from DELIVERED keeps the original stamp
            if status == ShipmentStatus.DELIVERED and shipment.actual_delivery is None:
                values["actual_delivery"] = utcnow()
            await Repository(session, Shipment).update(shipment, values)
            await self._append_status_event(session, shipment, status)
        logger.info("Shipment status changed", fields={
            "shipment_id": id, "status": status.value, "actor": actor.id,
        })
        return await self._load_view(Shipment.id == id)

    async def _set_flag(self, actor: Actor, id: str, flagged: bool, reason: Optional[str]) -> ShipmentView:
        async with self.database.transaction() as session:
            shipment = await self._require(session, id)
            await Repository(session, Shipment).update(shipment, {
                "is_flagged": flagged,
                "flag_reason": reason,
                "updated_by_id": actor.id,
            })
        logger.info("Shipment flag changed", fields={
            "shipment_id": id, "flagged": flagged, "actor": actor.id,
        })
        return await self._load_view(Shipment.id == id)

    async def flag(self, actor: Optional[Actor], id: str, reason: str) -> ShipmentView:
        actor = authorize(actor, Action.FLAG_SHIPMENT)
        reason = (reason or "").strip()
        if not reason:
            raise BadUserInput("A reason is required to flag a shipment")
        return await self._set_flag(actor, id, True, reason)

    async def unflag(self, actor: Optional[Actor], id: str) -> ShipmentView:
        actor = authorize(actor, Action.FLAG_SHIPMENT)
        return await self._set_flag(actor, id, False, None)
