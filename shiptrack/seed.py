"""Demo data loader: ``shiptrack-seed`` wipes the tables and inserts users and shipments."""
import asyncio
from datetime import timedelta

from sqlalchemy import delete

from .application.auth_service import AuthService, to_actor
from .application.loaders import RequestLoaders
from .application.schemas import DimensionsIn, LocationIn, ShipmentCreate
from .application.service import ShipmentService
from .core_settings import get_settings
from .domain.models import (
    Dimensions,
    Location,
    Shipment,
    ShipmentStatus,
    TrackingEvent,
    User,
    UserRole,
    utcnow,
)
from .infrastructure.db import Database, get_database
from .infrastructure.repository import Repository
from .infrastructure.token_store import get_token_store

SHIPMENT_COUNT = 20

USERS = [
    # email, password, first name, last name, role
    ("admin@tms.com", "admin123", "Admin", "User", UserRole.ADMIN),
    ("employee@tms.com", "employee123", "John", "Doe", UserRole.EMPLOYEE),
]

LOCATIONS = [
    LocationIn(address="123 Main St", city="New York", state="NY", country="USA",
               postal_code="10001", latitude=40.7128, longitude=-74.006),
    LocationIn(address="456 Oak Ave", city="Los Angeles", state="CA", country="USA",
               postal_code="90001", latitude=34.0522, longitude=-118.2437),
    LocationIn(address="789 Elm Rd", city="Chicago", state="IL", country="USA",
               postal_code="60601", latitude=41.8781, longitude=-87.6298),
    LocationIn(address="321 Pine St", city="Houston", state="TX", country="USA",
               postal_code="77001", latitude=29.7604, longitude=-95.3698),
]

CARRIERS = ["FedEx", "UPS", "DHL", "Amazon Logistics", "USPS"]
COMPANIES = ["Acme Corp", "Tech Solutions", "Global Traders", "Express Logistics", "Prime Imports"]

# Path walked from PENDING to reach each seeded status
STATUS_PATHS = [
    [],
    [ShipmentStatus.PICKED_UP, ShipmentStatus.IN_TRANSIT],
    [ShipmentStatus.PICKED_UP, ShipmentStatus.IN_TRANSIT, ShipmentStatus.DELIVERED],
    [ShipmentStatus.ON_HOLD],
    [ShipmentStatus.CANCELLED],
]


async def clear(database: Database) -> None:
    async with database.transaction() as session:
        for model in (TrackingEvent, Shipment, Dimensions, Location, User):
            await session.execute(delete(model))
    print("Cleared existing data")


async def create_users(database: Database, auth: AuthService) -> list[User]:
    users = []
    async with database.transaction() as session:
        repo = Repository(session, User)
        for email, password, first_name, last_name, role in USERS:
            users.append(await repo.create(
                email=email,
                password=await auth.hash_password(password),
                first_name=first_name,
                last_name=last_name,
                role=role,
                is_active=True,
            ))
    print(f"Users created: {', '.join(u.email for u in users)}")
    return users


def shipment_input(i: int) -> ShipmentCreate:
    now = utcnow()
    return ShipmentCreate(
        shipper_name=COMPANIES[i % len(COMPANIES)],
        shipper_phone=f"+1-{200 + i}-555-{1000 + i}",
        shipper_email=f"shipper{i}@company.com",
        consignee_name=f"Receiver {i + 1}",
        consignee_phone=f"+1-{300 + i}-555-{2000 + i}",
        consignee_email=f"receiver{i}@company.com",
        pickup_location=LOCATIONS[i % len(LOCATIONS)],
        delivery_location=LOCATIONS[(i + 1) % len(LOCATIONS)],
        carrier_name=CARRIERS[i % len(CARRIERS)],
        carrier_phone=f"+1-{400 + i}-555-{3000 + i}",
        weight=10 + i * 2.5,
        dimensions=DimensionsIn(length=20 + i * 5, width=15 + i * 3, height=10 + i * 2),
        rate=100 + i * 25,
        currency="USD",
        pickup_date=now - timedelta(days=i),
        estimated_delivery=now + timedelta(days=7 - i % 7),
        notes=f"Sample shipment {i + 1}",
    )


async def create_shipments(database: Database, users: list[User]) -> int:
    service = ShipmentService(database, RequestLoaders(database))
    actors = [to_actor(u) for u in users]
    for i in range(SHIPMENT_COUNT):
        actor = actors[i % len(actors)]
        view = await service.create(actor, shipment_input(i))
        for status in STATUS_PATHS[i % len(STATUS_PATHS)]:
            await service.update_status(actor, view.shipment.id, status)
        if i % 7 == 3:
            await service.flag(actor, view.shipment.id, "Address needs confirmation")
    print(f"Shipments created: {SHIPMENT_COUNT}")
    return SHIPMENT_COUNT


async def seed() -> None:
    database = get_database()
    await database.create_tables()
    auth = AuthService(database, get_token_store(), get_settings())
    try:
        await clear(database)
        users = await create_users(database, auth)
        await create_shipments(database, users)
    finally:
        await database.close()
    print("Seed complete. Log in as admin@tms.com / admin123 or employee@tms.com / employee123")


def main():
    asyncio.run(seed())


if __name__ == "__main__":
    main()
