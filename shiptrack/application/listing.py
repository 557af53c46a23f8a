"""
Shipment listing: filter -> sort -> paginate -> batch-resolve relations.

The row fetch and the count share one ``ShipmentQuery`` and run
concurrently on separate sessions; relations that recur across a page
(pickup/delivery locations, created/updated-by users) are resolved
afterwards through the request loaders, at most one query per entity type.
"""
import asyncio
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from ..domain.models import Location, Shipment, User
from ..infrastructure.db import Database
from ..infrastructure.repository import SHIPMENT_ROW_OPTIONS, Repository
from .loaders import RequestLoaders
from .query_builder import ShipmentQuery, build_shipment_query
from .schemas import PageRequest, ShipmentFilter, ShipmentSort


@dataclass
class ShipmentView:
    """A shipment row with its referenced rows attached."""
    shipment: Shipment
    pickup_location: Optional[Location]
    delivery_location: Optional[Location]
    created_by: Optional[User]
    updated_by: Optional[User]


@dataclass(frozen=True)
class PageInfo:
    has_next_page: bool
    has_previous_page: bool
    total_pages: int
    total_count: int
    current_page: int

    @classmethod
    def build(cls, page: int, limit: int, total_count: int) -> "PageInfo":
        total_pages = math.ceil(total_count / limit)
        return cls(
            has_next_page=page < total_pages,
            has_previous_page=page > 1,
            total_pages=total_pages,
            total_count=total_count,
            current_page=page,
        )


@dataclass
class ShipmentPage:
    items: list[ShipmentView]
    page_info: PageInfo


async def hydrate(rows: Sequence[Shipment], loaders: RequestLoaders) -> list[ShipmentView]:
    """Attach locations and users to ``rows``, one batched lookup per entity type."""
    location_ids = [s.pickup_location_id for s in rows] + [s.delivery_location_id for s in rows]
    user_ids = [s.created_by_id for s in rows] + [s.updated_by_id for s in rows]
    locations, users = await asyncio.gather(
        loaders.locations.load_many(location_ids),
        loaders.users.load_many(user_ids),
    )
    return [
        ShipmentView(
            shipment=s,
            pickup_location=locations.get(s.pickup_location_id),
            delivery_location=locations.get(s.delivery_location_id),
            created_by=users.get(s.created_by_id),
            updated_by=users.get(s.updated_by_id),
        )
        for s in rows
    ]


class ShipmentListing:
    def __init__(self, database: Database, loaders: RequestLoaders):
        self.database = database
        self.loaders = loaders

    async def _fetch_rows(self, query: ShipmentQuery) -> list[Shipment]:
        async with self.database.session() as session:
            return await Repository(session, Shipment).find(
                *query.where,
                order_by=query.order_by,
                offset=query.offset,
                limit=query.limit,
                options=SHIPMENT_ROW_OPTIONS,
            )

    async def _count(self, query: ShipmentQuery) -> int:
        async with self.database.session() as session:
            return await Repository(session, Shipment).count(*query.where)

    async def page(self, filter: Optional[ShipmentFilter] = None,
                   sort: Optional[ShipmentSort] = None,
                   pagination: Optional[PageRequest] = None) -> ShipmentPage:
        query = build_shipment_query(filter, sort, pagination)
        # either query failing fails the page
        rows, total_count = await asyncio.gather(self._fetch_rows(query), self._count(query))
        items = await hydrate(rows, self.loaders)
        return ShipmentPage(items=items, page_info=PageInfo.build(query.page, query.limit, total_count))
