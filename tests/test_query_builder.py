from datetime import datetime, timezone

from shiptrack.application.query_builder import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    build_ordering,
    build_predicate,
    build_shipment_query,
    resolve_window,
)
from shiptrack.application.schemas import (
    DateRange,
    PageRequest,
    RateRange,
    ShipmentFilter,
    ShipmentSort,
)
from shiptrack.domain.models import ShipmentStatus


def _sql(clauses):
    return [str(c) for c in clauses]


def test_no_filter_matches_everything():
    assert build_predicate(None) == ()
    assert build_predicate(ShipmentFilter()) == ()


def test_each_active_field_adds_one_clause():
    filter = ShipmentFilter(
        status=[ShipmentStatus.IN_TRANSIT, ShipmentStatus.PENDING],
        carrier_name="fed",
        is_flagged=False,
        date_range=DateRange(from_=datetime(2024, 1, 1, tzinfo=timezone.utc),
                             to=datetime(2024, 2, 1, tzinfo=timezone.utc)),
        rate_range=RateRange(min=10, max=50),
        search_term="acme",
    )
    sql = _sql(build_predicate(filter))
    # status, carrier, flagged, from, to, min, max, search
    assert len(sql) == 8
    assert "shipments.status IN" in sql[0]
    assert "lower(shipments.carrier_name)" in sql[1]
    assert "shipments.is_flagged" in sql[2]
    assert "shipments.created_at >=" in sql[3]
    assert "shipments.created_at <=" in sql[4]
    assert "shipments.rate >=" in sql[5]
    assert "shipments.rate <=" in sql[6]
    for column in ("tracking_number", "shipper_name", "consignee_name", "carrier_name"):
        assert f"shipments.{column}" in sql[7]
    assert " OR " in sql[7]


def test_empty_strings_and_lists_are_ignored():
    assert build_predicate(ShipmentFilter(status=[], carrier_name="", search_term="")) == ()


def test_date_range_accepts_the_from_alias():
    filter = ShipmentFilter.model_validate({"date_range": {"from": "2024-01-01T00:00:00Z"}})
    assert len(build_predicate(filter)) == 1


def test_predicate_is_deterministic():
    filter = ShipmentFilter(status=[ShipmentStatus.PENDING, ShipmentStatus.DELIVERED], search_term="x")
    assert _sql(build_predicate(filter)) == _sql(build_predicate(filter))


def test_default_ordering_is_newest_first_with_id_tiebreak():
    assert _sql(build_ordering(None)) == ["shipments.created_at DESC", "shipments.id ASC"]


def test_ordering_accepts_enum_and_camel_case_spellings():
    assert _sql(build_ordering(ShipmentSort(field="RATE", order="ASC")))[0] == "shipments.rate ASC"
    assert _sql(build_ordering(ShipmentSort(field="trackingNumber", order="DESC")))[0] == \
        "shipments.tracking_number DESC"


def test_unknown_sort_field_falls_back_to_created_at():
    assert _sql(build_ordering(ShipmentSort(field="BOGUS", order="asc")))[0] == "shipments.created_at ASC"


def test_window_defaults():
    assert resolve_window(None) == (1, DEFAULT_LIMIT)
    assert resolve_window(PageRequest()) == (1, DEFAULT_LIMIT)
    assert resolve_window(PageRequest(page=0, limit=0)) == (1, DEFAULT_LIMIT)


def test_window_clamps_negative_values_and_large_limits():
    assert resolve_window(PageRequest(page=-3, limit=-1)) == (1, DEFAULT_LIMIT)
    assert resolve_window(PageRequest(page=2, limit=1000)) == (2, MAX_LIMIT)


def test_offset_follows_page_and_limit():
    query = build_shipment_query(pagination=PageRequest(page=3, limit=20))
    assert (query.page, query.limit, query.offset) == (3, 20, 40)
