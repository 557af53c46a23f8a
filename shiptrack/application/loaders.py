"""
Request-scoped batched relation loaders.

Every ``load`` issued for one entity type before the event loop gets back
to the loader is coalesced into a single ``WHERE id IN (...)`` query, and
results are memoized by key for the lifetime of the loader. A fresh
``RequestLoaders`` bundle is created for each GraphQL request and dropped
with it; nothing here is shared between requests.
"""
import logging
from typing import Any, Awaitable, Callable, Hashable, Iterable, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from strawberry.dataloader import DataLoader

from ..domain.models import Location, User
from ..infrastructure.db import Database
from ..infrastructure.repository import Repository

logger = logging.getLogger(__name__)

FetchMany = Callable[[Sequence[Hashable]], Awaitable[Iterable[Any]]]


class _NotRequested:
    def __repr__(self) -> str:
        return "NOT_REQUESTED"


NOT_REQUESTED = _NotRequested()


class RelationLoader:
    """Batching, memoizing by-id loader for one entity type.

    ``fetch_many`` receives the distinct keys of one batch and returns the
    rows it found, each carrying an ``id``. Keys without a row resolve to
    ``None``; keys never asked for report ``NOT_REQUESTED`` from ``resolved``.
    """

    def __init__(self, name: str, fetch_many: FetchMany):
        self.name = name
        self._fetch_many = fetch_many
        self._results: dict[Hashable, Any] = {}
        self.batches = 0
        self._loader: DataLoader[Hashable, Any] = DataLoader(load_fn=self._batch_load)

    async def _batch_load(self, keys: list[Hashable]) -> list[Any]:
        self.batches += 1
        try:
            rows = await self._fetch_many(keys)
        except SQLAlchemyError:
            # every key in the batch resolves to None
            logger.exception(f"Batch load of {self.name} failed for {len(keys)} key(s)")
            rows = ()
        found = {row.id: row for row in rows}
        values = [found.get(key) for key in keys]
        self._results.update(zip(keys, values))
        return values

    async def load(self, key: Optional[Hashable]) -> Any:
        if key is None:
            return None
        return await self._loader.load(key)

    async def load_many(self, keys: Iterable[Optional[Hashable]]) -> dict[Hashable, Any]:
        """Load the distinct non-null keys and return them as a key -> value map."""
        distinct = list(dict.fromkeys(k for k in keys if k is not None))
        values = await self._loader.load_many(distinct)
        return dict(zip(distinct, values))

    def resolved(self, key: Hashable) -> Any:
        return self._results.get(key, NOT_REQUESTED)

    def forget(self, key: Hashable) -> None:
        """Drop a memoized key, e.g. after the row was written in this request."""
        self._results.pop(key, None)
        if self._loader.cache_map.get(key) is not None:
            self._loader.clear(key)


def _fetch_by_ids(database: Database, model) -> FetchMany:
    async def fetch(keys: Sequence[Hashable]):
        async with database.session() as session:
            return await Repository(session, model).find(model.id.in_(keys))
    return fetch


class RequestLoaders:
    """The loaders one request needs, bound to the shared database."""

    def __init__(self, database: Database):
        self.users = RelationLoader("users", _fetch_by_ids(database, User))
        self.locations = RelationLoader("locations", _fetch_by_ids(database, Location))
