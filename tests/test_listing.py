import pytest

from shiptrack.application.listing import PageInfo, ShipmentListing
from shiptrack.application.loaders import RequestLoaders
from shiptrack.application.schemas import PageRequest, RateRange, ShipmentFilter, ShipmentSort
from shiptrack.domain.models import ShipmentStatus
from shiptrack.infrastructure.db import database

pytestmark = pytest.mark.anyio


def _listing():
    loaders = RequestLoaders(database)
    return ShipmentListing(database, loaders), loaders


async def _seed(factory, actor, count, **overrides):
    return [await factory.shipment(actor, **overrides) for _ in range(count)]


def test_page_info_arithmetic():
    info = PageInfo.build(page=2, limit=10, total_count=25)
    assert (info.total_pages, info.has_next_page, info.has_previous_page) == (3, True, True)
    empty = PageInfo.build(page=1, limit=10, total_count=0)
    assert (empty.total_pages, empty.has_next_page, empty.has_previous_page) == (0, False, False)


async def test_total_count_ignores_pagination(factory):
    actor = await factory.user()
    await _seed(factory, actor, 12)
    listing, _ = _listing()
    page = await listing.page(pagination=PageRequest(page=2, limit=5))
    assert len(page.items) == 5
    assert page.page_info.total_count == 12
    assert page.page_info.total_pages == 3
    assert page.page_info.current_page == 2


async def test_pages_are_disjoint_and_cover_every_row(factory):
    actor = await factory.user()
    created = await _seed(factory, actor, 7)
    listing, _ = _listing()
    seen = []
    for number in (1, 2, 3):
        page = await listing.page(pagination=PageRequest(page=number, limit=3))
        seen.extend(item.shipment.id for item in page.items)
    assert len(seen) == len(set(seen)) == 7
    assert set(seen) == {view.shipment.id for view in created}


async def test_limit_is_clamped(factory):
    actor = await factory.user()
    await _seed(factory, actor, 101)
    listing, _ = _listing()
    page = await listing.page(pagination=PageRequest(limit=1000))
    assert len(page.items) == 100
    assert page.page_info.total_count == 101
    assert page.page_info.total_pages == 2
    assert page.page_info.has_next_page is True


async def test_carrier_and_status_filters_combine(factory):
    actor = await factory.user()
    service = factory.service()
    fedex = await factory.shipment(actor, carrier_name="FedEx Ground")
    await factory.shipment(actor, carrier_name="FedEx Express")
    ups = await factory.shipment(actor, carrier_name="UPS")
    await service.update_status(actor, fedex.shipment.id, ShipmentStatus.IN_TRANSIT)
    await service.update_status(actor, ups.shipment.id, ShipmentStatus.IN_TRANSIT)

    listing, _ = _listing()
    page = await listing.page(ShipmentFilter(carrier_name="fedex", status=[ShipmentStatus.IN_TRANSIT]))
    assert [item.shipment.id for item in page.items] == [fedex.shipment.id]
    assert page.page_info.total_count == 1


async def test_status_filter_and_search_term_combine(factory):
    actor = await factory.user()
    service = factory.service()
    fedex = await factory.shipment(actor, carrier_name="FedEx")
    dhl = await factory.shipment(actor, carrier_name="DHL")
    await factory.shipment(actor, carrier_name="FedEx")
    for view in (fedex, dhl):
        await service.update_status(actor, view.shipment.id, ShipmentStatus.IN_TRANSIT)

    listing, _ = _listing()
    in_transit = await listing.page(ShipmentFilter(status=[ShipmentStatus.IN_TRANSIT]))
    assert in_transit.page_info.total_count == 2

    page = await listing.page(ShipmentFilter(status=[ShipmentStatus.IN_TRANSIT], search_term="FedEx"))
    assert [item.shipment.id for item in page.items] == [fedex.shipment.id]
    assert page.page_info.total_count == 1


async def test_rate_range_and_search(factory):
    actor = await factory.user()
    cheap = await factory.shipment(actor, rate=10.0, shipper_name="Budget Movers")
    await factory.shipment(actor, rate=500.0, shipper_name="Premium Freight")
    listing, _ = _listing()

    page = await listing.page(ShipmentFilter(rate_range=RateRange(max=50)))
    assert [item.shipment.id for item in page.items] == [cheap.shipment.id]

    page = await listing.page(ShipmentFilter(search_term="budget"))
    assert [item.shipment.id for item in page.items] == [cheap.shipment.id]

    page = await listing.page(ShipmentFilter(search_term="100%"))
    assert page.items == []


async def test_sort_by_rate_ascending(factory):
    actor = await factory.user()
    for rate in (30.0, 10.0, 20.0):
        await factory.shipment(actor, rate=rate)
    listing, _ = _listing()
    page = await listing.page(sort=ShipmentSort(field="RATE", order="ASC"))
    assert [item.shipment.rate for item in page.items] == [10.0, 20.0, 30.0]


async def test_relations_resolve_with_one_batch_per_entity(factory):
    admin = await factory.admin()
    employee = await factory.user()
    for actor in (admin, employee, admin, employee):
        await factory.shipment(actor)
    listing, loaders = _listing()
    page = await listing.page()

    assert len(page.items) == 4
    assert loaders.users.batches == 1
    assert loaders.locations.batches == 1
    for item in page.items:
        assert item.pickup_location.city == "New York"
        assert item.delivery_location.city == "Los Angeles"
        assert item.created_by.id == item.shipment.created_by_id
        assert item.shipment.dimensions.length == 10
        assert item.shipment.tracking_events[0].status == "Shipment Created"
