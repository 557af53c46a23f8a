import re

import pytest
from sqlalchemy import func, select

from shiptrack.application.errors import BadUserInput, Forbidden, NotFound, Unauthenticated
from shiptrack.application.loaders import RequestLoaders
from shiptrack.application.schemas import DimensionsIn, LocationIn, ShipmentUpdate
from shiptrack.application.service import (
    CREATED_EVENT_STATUS,
    DEFAULT_CARRIER,
    ShipmentService,
    generate_tracking_number,
)
from shiptrack.domain.models import Dimensions, Location, Shipment, ShipmentStatus, TrackingEvent
from shiptrack.infrastructure.db import database

pytestmark = pytest.mark.anyio


async def _count(model, *where):
    async with database.session() as session:
        return (await session.execute(select(func.count()).select_from(model).where(*where))).scalar_one()


def test_tracking_number_format():
    number = generate_tracking_number()
    assert re.fullmatch(r"TMS[0-9A-Z]+", number)
    assert number != generate_tracking_number()


async def test_create_applies_defaults_and_records_first_event(factory):
    actor = await factory.user()
    view = await factory.shipment(actor, carrier_name=None, rate=None, currency=None, dimensions=None)
    shipment = view.shipment

    assert shipment.tracking_number.startswith("TMS")
    assert shipment.status == ShipmentStatus.PENDING
    assert shipment.is_flagged is False
    assert shipment.carrier_name == DEFAULT_CARRIER
    assert shipment.rate == 0.0
    assert shipment.currency == "USD"
    assert shipment.dimensions is None
    assert view.created_by.id == actor.id
    assert view.updated_by.id == actor.id

    [event] = shipment.tracking_events
    assert event.status == CREATED_EVENT_STATUS
    assert event.location.id == shipment.pickup_location_id


async def test_create_requires_an_actor(factory):
    with pytest.raises(Unauthenticated):
        await factory.service().create(None, factory.shipment_input())


async def test_duplicate_tracking_number_leaves_nothing_behind(factory):
    actor = await factory.user()
    await factory.shipment(actor, tracking_number="TMSDUPLICATE")
    locations_before = await _count(Location)

    with pytest.raises(BadUserInput):
        await factory.shipment(actor, tracking_number="TMSDUPLICATE")

    assert await _count(Shipment) == 1
    assert await _count(Location) == locations_before
    assert await _count(TrackingEvent) == 1


async def test_status_change_to_delivered_stamps_once(factory):
    actor = await factory.user()
    service = factory.service()
    view = await factory.shipment(actor)
    id = view.shipment.id

    delivered = await service.update_status(actor, id, ShipmentStatus.DELIVERED)
    stamp = delivered.shipment.actual_delivery
    assert stamp is not None

    reopened = await service.update_status(actor, id, ShipmentStatus.IN_TRANSIT)
    assert reopened.shipment.actual_delivery == stamp

    again = await service.update_status(actor, id, ShipmentStatus.DELIVERED)
    assert again.shipment.actual_delivery == stamp


async def test_status_change_appends_a_labelled_event(factory):
    actor = await factory.user()
    service = factory.service()
    view = await factory.shipment(actor)

    updated = await service.update_status(actor, view.shipment.id, ShipmentStatus.OUT_FOR_DELIVERY)
    latest = updated.shipment.tracking_events[0]
    assert len(updated.shipment.tracking_events) == 2
    assert latest.status == "Out for delivery"
    assert latest.description == "Status updated to OUT_FOR_DELIVERY"
    assert latest.location.id == updated.shipment.delivery_location_id
    assert updated.shipment.status == ShipmentStatus.OUT_FOR_DELIVERY


async def test_status_change_on_missing_shipment(factory):
    actor = await factory.user()
    with pytest.raises(NotFound):
        await factory.service().update_status(actor, "missing", ShipmentStatus.IN_TRANSIT)


async def test_enforced_transitions_reject_illegal_moves(factory, settings):
    actor = await factory.user()
    strict = ShipmentService(database, RequestLoaders(database),
                             settings.model_copy(update={"ENFORCE_STATUS_TRANSITIONS": True}))
    view = await factory.shipment(actor)

    with pytest.raises(BadUserInput):
        await strict.update_status(actor, view.shipment.id, ShipmentStatus.DELIVERED)

    await strict.update_status(actor, view.shipment.id, ShipmentStatus.CANCELLED)
    with pytest.raises(BadUserInput):
        await strict.update_status(actor, view.shipment.id, ShipmentStatus.PENDING)


async def test_flag_and_unflag_do_not_add_events(factory):
    actor = await factory.user()
    service = factory.service()
    view = await factory.shipment(actor)

    flagged = await service.flag(actor, view.shipment.id, "Damaged packaging")
    assert flagged.shipment.is_flagged is True
    assert flagged.shipment.flag_reason == "Damaged packaging"

    cleared = await service.unflag(actor, view.shipment.id)
    assert cleared.shipment.is_flagged is False
    assert cleared.shipment.flag_reason is None
    assert len(cleared.shipment.tracking_events) == 1


async def test_flag_requires_a_reason(factory):
    actor = await factory.user()
    view = await factory.shipment(actor)
    with pytest.raises(BadUserInput):
        await factory.service().flag(actor, view.shipment.id, "   ")


async def test_update_changes_only_sent_fields(factory):
    actor = await factory.user()
    view = await factory.shipment(actor, notes="fragile", carrier_phone="+1-555")
    service = factory.service()

    updated = await service.update(actor, view.shipment.id,
                                   ShipmentUpdate.model_validate({"notes": None, "weight": 4.5}))
    assert updated.shipment.notes is None
    assert updated.shipment.weight == 4.5
    assert updated.shipment.carrier_phone == "+1-555"
    assert updated.shipment.shipper_name == "Acme Corp"


async def test_update_rejects_clearing_required_fields(factory):
    actor = await factory.user()
    view = await factory.shipment(actor)
    with pytest.raises(BadUserInput):
        await factory.service().update(actor, view.shipment.id,
                                       ShipmentUpdate.model_validate({"shipper_name": None}))


async def test_update_mutates_nested_rows_in_place(factory):
    actor = await factory.user()
    view = await factory.shipment(actor)
    pickup_id = view.shipment.pickup_location_id
    dimensions_id = view.shipment.dimensions_id
    locations_before = await _count(Location)

    updated = await factory.service().update(actor, view.shipment.id, ShipmentUpdate(
        pickup_location=LocationIn(address="1 New Rd", city="Boston", country="USA"),
        dimensions=DimensionsIn(length=99, width=5, height=2),
    ))

    assert updated.shipment.pickup_location_id == pickup_id
    assert updated.pickup_location.city == "Boston"
    assert updated.shipment.dimensions_id == dimensions_id
    assert updated.shipment.dimensions.length == 99
    assert await _count(Location) == locations_before


async def test_update_creates_dimensions_when_missing_and_unlinks_on_null(factory):
    actor = await factory.user()
    view = await factory.shipment(actor, dimensions=None)
    service = factory.service()

    linked = await service.update(actor, view.shipment.id,
                                  ShipmentUpdate(dimensions=DimensionsIn(length=1, width=2, height=3)))
    assert linked.shipment.dimensions.height == 3
    assert await _count(Dimensions) == 1

    unlinked = await service.update(actor, view.shipment.id, ShipmentUpdate.model_validate({"dimensions": None}))
    assert unlinked.shipment.dimensions is None
    assert await _count(Dimensions) == 1


async def test_update_status_through_update_stamps_and_logs(factory):
    actor = await factory.user()
    view = await factory.shipment(actor)
    updated = await factory.service().update(actor, view.shipment.id,
                                             ShipmentUpdate(status=ShipmentStatus.DELIVERED))
    assert updated.shipment.actual_delivery is not None
    assert updated.shipment.tracking_events[0].status == "Delivered"


async def test_only_owner_or_admin_may_update(factory):
    owner = await factory.user()
    other = await factory.user()
    admin = await factory.admin()
    view = await factory.shipment(owner)
    service = factory.service()

    with pytest.raises(Forbidden):
        await service.update(other, view.shipment.id, ShipmentUpdate(notes="nope"))
    updated = await service.update(admin, view.shipment.id, ShipmentUpdate(notes="admin edit"))
    assert updated.shipment.notes == "admin edit"
    assert updated.updated_by.id == admin.id


async def test_update_missing_shipment_is_not_found(factory):
    actor = await factory.user()
    with pytest.raises(NotFound):
        await factory.service().update(actor, "missing", ShipmentUpdate(notes="x"))


async def test_delete_is_admin_only_and_removes_events(factory):
    owner = await factory.user()
    admin = await factory.admin()
    view = await factory.shipment(owner)
    service = factory.service()
    await service.update_status(owner, view.shipment.id, ShipmentStatus.PICKED_UP)

    with pytest.raises(Forbidden):
        await service.delete(owner, view.shipment.id)

    assert await service.delete(admin, view.shipment.id) is True
    assert await _count(Shipment) == 0
    assert await _count(TrackingEvent) == 0
    # referenced rows are kept
    assert await _count(Location) == 2
    assert await _count(Dimensions) == 1

    with pytest.raises(NotFound):
        await service.delete(admin, view.shipment.id)


async def test_lookup_by_tracking_number_is_public(factory):
    actor = await factory.user()
    view = await factory.shipment(actor, tracking_number="TMSPUBLIC1")
    service = factory.service()
    found = await service.get_by_tracking_number(" TMSPUBLIC1 ")
    assert found.shipment.id == view.shipment.id
    assert await service.get_by_tracking_number("TMSNOPE") is None


async def test_stats(factory):
    actor = await factory.user()
    service = factory.service()
    first = await factory.shipment(actor, rate=100.0)
    await factory.shipment(actor, rate=300.0)
    await service.update_status(actor, first.shipment.id, ShipmentStatus.IN_TRANSIT)

    stats = await service.stats(actor)
    assert stats.total == 2
    assert stats.average_rate == 200.0
    assert stats.by_status[ShipmentStatus.IN_TRANSIT] == 1
    assert stats.by_status[ShipmentStatus.PENDING] == 1
    assert stats.by_status[ShipmentStatus.DELIVERED] == 0
    assert len(stats.by_status) == len(ShipmentStatus)


async def test_stats_on_empty_table(factory):
    actor = await factory.user()
    stats = await factory.service().stats(actor)
    assert stats.total == 0
    assert stats.average_rate == 0.0
