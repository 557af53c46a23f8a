"""
Translate a shipment filter/sort/pagination request into SQLAlchemy
``where`` clauses, an ``order_by`` tuple and an offset/limit window.

``build_shipment_query`` is pure: it touches no session and returns the
same ``ShipmentQuery`` for the same input, so the row fetch and the count
of a listing are always built from one translation.
"""
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import or_
from sqlalchemy.sql.elements import ColumnElement

from ..domain.models import Shipment
from .schemas import PageRequest, ShipmentFilter, ShipmentSort, SortOrder

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100

# Keyed by the field name with underscores removed and upper-cased, so both the
# enum spelling (CREATED_AT) and the attribute spelling (createdAt) resolve.
SORTABLE_COLUMNS = {
    "CREATEDAT": Shipment.created_at,
    "UPDATEDAT": Shipment.updated_at,
    "TRACKINGNUMBER": Shipment.tracking_number,
    "STATUS": Shipment.status,
    "SHIPPERNAME": Shipment.shipper_name,
    "CONSIGNEENAME": Shipment.consignee_name,
    "PICKUPDATE": Shipment.pickup_date,
    "ESTIMATEDDELIVERY": Shipment.estimated_delivery,
    "RATE": Shipment.rate,
}

SEARCHABLE_COLUMNS = (
    Shipment.tracking_number,
    Shipment.shipper_name,
    Shipment.consignee_name,
    Shipment.carrier_name,
)


@dataclass(frozen=True)
class ShipmentQuery:
    where: tuple[ColumnElement, ...]
    order_by: tuple[ColumnElement, ...]
    offset: int
    limit: int
    page: int


def _contains(column, term: str) -> ColumnElement:
    return column.icontains(term, autoescape=True)


def build_predicate(filter: Optional[ShipmentFilter]) -> tuple[ColumnElement, ...]:
    """Conjunction of the active filter fields; empty tuple matches everything."""
    if filter is None:
        return ()
    clauses: list[ColumnElement] = []

    if filter.status:
        clauses.append(Shipment.status.in_(sorted(set(filter.status), key=lambda s: s.value)))

    if filter.carrier_name:
        clauses.append(_contains(Shipment.carrier_name, filter.carrier_name))

    if filter.is_flagged is not None:
        clauses.append(Shipment.is_flagged == filter.is_flagged)

    if filter.date_range:
        if filter.date_range.from_ is not None:
            clauses.append(Shipment.created_at >= filter.date_range.from_)
        if filter.date_range.to is not None:
            clauses.append(Shipment.created_at <= filter.date_range.to)

    if filter.rate_range:
        if filter.rate_range.min is not None:
            clauses.append(Shipment.rate >= filter.rate_range.min)
        if filter.rate_range.max is not None:
            clauses.append(Shipment.rate <= filter.rate_range.max)

    if filter.search_term:
        clauses.append(or_(*(_contains(col, filter.search_term) for col in SEARCHABLE_COLUMNS)))

    return tuple(clauses)


def _sort_key(field: Any) -> str:
    raw = getattr(field, "value", field)
    return str(raw or "").replace("_", "").upper()


def build_ordering(sort: Optional[ShipmentSort]) -> tuple[ColumnElement, ...]:
    """Requested column and direction, then ``id`` so equal keys never straddle pages."""
    if sort is None:
        column, descending = Shipment.created_at, True
    else:
        column = SORTABLE_COLUMNS.get(_sort_key(sort.field), Shipment.created_at)
        descending = str(getattr(sort.order, "value", sort.order)).upper() != SortOrder.ASC.value
    primary = column.desc() if descending else column.asc()
    return (primary, Shipment.id.asc())


def resolve_window(pagination: Optional[PageRequest]) -> tuple[int, int]:
    """(page, limit) with defaults applied and limit clamped to MAX_LIMIT."""
    page = pagination.page if pagination and pagination.page else DEFAULT_PAGE
    limit = pagination.limit if pagination and pagination.limit else DEFAULT_LIMIT
    page = max(page, DEFAULT_PAGE)
    if limit < 1:
        limit = DEFAULT_LIMIT
    return page, min(limit, MAX_LIMIT)


def build_shipment_query(filter: Optional[ShipmentFilter] = None,
                         sort: Optional[ShipmentSort] = None,
                         pagination: Optional[PageRequest] = None) -> ShipmentQuery:
    page, limit = resolve_window(pagination)
    return ShipmentQuery(
        where=build_predicate(filter),
        order_by=build_ordering(sort),
        offset=(page - 1) * limit,
        limit=limit,
        page=page,
    )
