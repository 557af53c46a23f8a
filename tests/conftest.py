import asyncio
import os
import tempfile

# Settings and the module-level database are built at import time
_TMP_DIR = tempfile.mkdtemp(prefix="shiptrack-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'shiptrack.db')}"
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("REDIS_URL", None)

import pytest

from shiptrack.application.auth_service import hash_password, to_actor
from shiptrack.application.listing import ShipmentView
from shiptrack.application.loaders import RequestLoaders
from shiptrack.application.policy import Actor
from shiptrack.application.schemas import DimensionsIn, LocationIn, ShipmentCreate
from shiptrack.application.service import ShipmentService
from shiptrack.core_settings import get_settings
from shiptrack.domain.models import User, UserRole
from shiptrack.infrastructure.db import database
from shiptrack.infrastructure.repository import Repository
from shiptrack.infrastructure.token_store import TokenStore, get_token_store

DEFAULT_PASSWORD = "password123"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def fresh_database():
    asyncio.run(database.drop_tables())
    asyncio.run(database.create_tables())
    get_token_store().local_cache.clear()
    yield


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def token_store():
    return TokenStore()


class Factory:
    """Builds users and shipments straight through the persistence layer."""

    def __init__(self):
        self.database = database
        self._emails = 0

    async def user(self, role: UserRole = UserRole.EMPLOYEE, email: str = None,
                   password: str = DEFAULT_PASSWORD, is_active: bool = True) -> Actor:
        self._emails += 1
        async with self.database.transaction() as session:
            user = await Repository(session, User).create(
                email=email or f"user{self._emails}@example.com",
                password=hash_password(password, 4),
                first_name="Test",
                last_name=f"User{self._emails}",
                role=role,
                is_active=is_active,
            )
        return to_actor(user)

    async def admin(self, **kwargs) -> Actor:
        return await self.user(role=UserRole.ADMIN, **kwargs)

    @staticmethod
    def shipment_input(**overrides) -> ShipmentCreate:
        values = dict(
            shipper_name="Acme Corp",
            consignee_name="Jane Receiver",
            pickup_location=LocationIn(address="123 Main St", city="New York", state="NY", country="USA"),
            delivery_location=LocationIn(address="456 Oak Ave", city="Los Angeles", state="CA", country="USA"),
            carrier_name="FedEx",
            rate=100.0,
            dimensions=DimensionsIn(length=10, width=5, height=2),
        )
        values.update(overrides)
        return ShipmentCreate(**values)

    def service(self) -> ShipmentService:
        return ShipmentService(self.database, RequestLoaders(self.database))

    async def shipment(self, actor: Actor, **overrides) -> ShipmentView:
        return await self.service().create(actor, self.shipment_input(**overrides))


@pytest.fixture
def factory():
    return Factory()
