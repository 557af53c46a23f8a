"""Typed find/count/create/update/delete over one session."""
from typing import Any, Generic, Iterable, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..domain.models import Base, Shipment, TrackingEvent

ModelT = TypeVar("ModelT", bound=Base)

# One-to-few relations that are cheap to load with the row. Pickup/delivery
# locations and the created/updated-by users are left to the request loaders.
SHIPMENT_ROW_OPTIONS = (
    selectinload(Shipment.dimensions),
    selectinload(Shipment.tracking_events).selectinload(TrackingEvent.location),
)


class Repository(Generic[ModelT]):
    def __init__(self, session: AsyncSession, model: Type[ModelT]):
        self.session = session
        self.model = model

    def _select(self, where: Iterable[Any], options: Iterable[Any]):
        return select(self.model).where(*where).options(*options)

    async def find(self, *where, order_by: Sequence[Any] = (), offset: Optional[int] = None,
                   limit: Optional[int] = None, options: Sequence[Any] = ()) -> list[ModelT]:
        stmt = self._select(where, options).order_by(*order_by)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_one(self, *where, options: Sequence[Any] = ()) -> Optional[ModelT]:
        result = await self.session.execute(self._select(where, options))
        return result.scalar_one_or_none()

    async def get(self, id: str, options: Sequence[Any] = ()) -> Optional[ModelT]:
        return await self.find_one(self.model.id == id, options=options)

    async def count(self, *where) -> int:
        stmt = select(func.count()).select_from(self.model).where(*where)
        return (await self.session.execute(stmt)).scalar_one()

    async def create(self, **values) -> ModelT:
        obj = self.model(**values)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def update(self, obj: ModelT, values: dict[str, Any]) -> ModelT:
        for key, value in values.items():
            setattr(obj, key, value)
        await self.session.flush()
        return obj

    async def delete(self, obj: ModelT) -> None:
        await self.session.delete(obj)
        await self.session.flush()

    async def delete_where(self, *where) -> int:
        result = await self.session.execute(delete(self.model).where(*where))
        return result.rowcount
