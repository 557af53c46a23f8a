"""GraphQL schema: types, inputs, resolvers and the per-request context."""
import base64
import dataclasses
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

import strawberry
from fastapi import Request
from graphql import GraphQLError
from pydantic import BaseModel, ValidationError
from strawberry.extensions import MaskErrors
from strawberry.fastapi import GraphQLRouter
from strawberry.types import Info

from ..application import schemas
from ..application.auth_service import AuthService
from ..application.errors import BadUserInput, ServiceError
from ..application.listing import ShipmentListing, ShipmentView
from ..application.loaders import RequestLoaders
from ..application.policy import Action, authorize
from ..application.service import ShipmentService
from ..application.users import UserService
from ..core.logging_config import get_logger, set_request_context
from ..core_settings import get_settings
from ..domain import models
from ..infrastructure.db import get_database
from ..infrastructure.token_store import get_token_store

logger = get_logger(__name__)
settings = get_settings()

ShipmentStatus = strawberry.enum(models.ShipmentStatus, name="ShipmentStatus")
UserRole = strawberry.enum(models.UserRole, name="UserRole")
ShipmentSortField = strawberry.enum(schemas.SortField, name="ShipmentSortField")
SortOrder = strawberry.enum(schemas.SortOrder, name="SortOrder")

#############################
# Output types              #
#############################

@strawberry.type
class User:
    id: strawberry.ID
    email: str
    first_name: str
    last_name: str
    role: UserRole
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: models.User) -> "User":
        return cls(
            id=row.id, email=row.email, first_name=row.first_name, last_name=row.last_name,
            role=row.role, is_active=row.is_active, created_at=row.created_at, updated_at=row.updated_at,
        )


@strawberry.type
class Location:
    id: strawberry.ID
    address: str
    city: str
    state: Optional[str]
    country: str
    postal_code: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]

    @classmethod
    def from_row(cls, row: Optional[models.Location]) -> Optional["Location"]:
        if row is None:
            return None
        return cls(
            id=row.id, address=row.address, city=row.city, state=row.state, country=row.country,
            postal_code=row.postal_code, latitude=row.latitude, longitude=row.longitude,
        )


@strawberry.type
class Dimensions:
    id: strawberry.ID
    length: float
    width: float
    height: float


@strawberry.type
class TrackingEvent:
    id: strawberry.ID
    status: str
    timestamp: datetime
    description: Optional[str]
    location: Optional[Location]


@strawberry.type
class Shipment:
    id: strawberry.ID
    tracking_number: str
    shipper_name: str
    shipper_phone: Optional[str]
    shipper_email: Optional[str]
    consignee_name: str
    consignee_phone: Optional[str]
    consignee_email: Optional[str]
    pickup_location: Optional[Location]
    delivery_location: Optional[Location]
    carrier_name: Optional[str]
    carrier_phone: Optional[str]
    weight: Optional[float]
    dimensions: Optional[Dimensions]
    rate: Optional[float]
    currency: Optional[str]
    status: ShipmentStatus
    is_flagged: bool
    flag_reason: Optional[str]
    pickup_date: Optional[datetime]
    estimated_delivery: Optional[datetime]
    actual_delivery: Optional[datetime]
    notes: Optional[str]
    tracking_events: List[TrackingEvent]
    created_by: Optional[User]
    updated_by: Optional[User]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_view(cls, view: ShipmentView, include_users: bool = True) -> "Shipment":
        s = view.shipment
        dimensions = None
        if s.dimensions is not None:
            d = s.dimensions
            dimensions = Dimensions(id=d.id, length=d.length, width=d.width, height=d.height)
        events = [
            TrackingEvent(id=e.id, status=e.status, timestamp=e.timestamp,
                          description=e.description, location=Location.from_row(e.location))
            for e in s.tracking_events
        ]
        created_by = updated_by = None
        if include_users:
            created_by = User.from_row(view.created_by) if view.created_by else None
            updated_by = User.from_row(view.updated_by) if view.updated_by else None
        return cls(
            id=s.id,
            tracking_number=s.tracking_number,
            shipper_name=s.shipper_name,
            shipper_phone=s.shipper_phone,
            shipper_email=s.shipper_email,
            consignee_name=s.consignee_name,
            consignee_phone=s.consignee_phone,
            consignee_email=s.consignee_email,
            pickup_location=Location.from_row(view.pickup_location),
            delivery_location=Location.from_row(view.delivery_location),
            carrier_name=s.carrier_name,
            carrier_phone=s.carrier_phone,
            weight=s.weight,
            dimensions=dimensions,
            rate=s.rate,
            currency=s.currency,
            status=s.status,
            is_flagged=s.is_flagged,
            flag_reason=s.flag_reason,
            pickup_date=s.pickup_date,
            estimated_delivery=s.estimated_delivery,
            actual_delivery=s.actual_delivery,
            notes=s.notes,
            tracking_events=events,
            created_by=created_by,
            updated_by=updated_by,
            created_at=s.created_at,
            updated_at=s.updated_at,
        )


@strawberry.type
class PageInfo:
    has_next_page: bool
    has_previous_page: bool
    total_pages: int
    total_count: int
    current_page: int


@strawberry.type
class ShipmentEdge:
    node: Shipment
    cursor: str


@strawberry.type
class ShipmentConnection:
    edges: List[ShipmentEdge]
    page_info: PageInfo


@strawberry.type
class StatusCount:
    status: ShipmentStatus
    count: int


@strawberry.type
class ShipmentStats:
    total: int
    by_status: List[StatusCount]
    pending: int
    picked_up: int
    in_transit: int
    out_for_delivery: int
    delivered: int
    cancelled: int
    on_hold: int
    average_rate: float


@strawberry.type
class AuthPayload:
    access_token: str
    refresh_token: str
    user: User


def encode_cursor(id: str) -> str:
    return base64.b64encode(id.encode("utf-8")).decode("ascii")

#############################
# Inputs                    #
#############################

@strawberry.input
class DateRangeInput:
    from_: Optional[datetime] = strawberry.field(name="from", default=None)
    to: Optional[datetime] = None


@strawberry.input
class RateRangeInput:
    min: Optional[float] = None
    max: Optional[float] = None


@strawberry.input
class ShipmentFilterInput:
    status: Optional[List[ShipmentStatus]] = None
    carrier_name: Optional[str] = None
    date_range: Optional[DateRangeInput] = None
    rate_range: Optional[RateRangeInput] = None
    is_flagged: Optional[bool] = None
    search_term: Optional[str] = None


@strawberry.input
class ShipmentSortInput:
    field: ShipmentSortField = schemas.SortField.CREATED_AT
    order: SortOrder = schemas.SortOrder.DESC


@strawberry.input
class PaginationInput:
    page: Optional[int] = None
    limit: Optional[int] = None


@strawberry.input
class LocationInput:
    address: str
    city: str
    country: str
    state: Optional[str] = strawberry.UNSET
    postal_code: Optional[str] = strawberry.UNSET
    latitude: Optional[float] = strawberry.UNSET
    longitude: Optional[float] = strawberry.UNSET


@strawberry.input
class DimensionsInput:
    length: float
    width: float
    height: float


@strawberry.input
class CreateShipmentInput:
    shipper_name: str
    consignee_name: str
    pickup_location: LocationInput
    delivery_location: LocationInput
    tracking_number: Optional[str] = None
    shipper_phone: Optional[str] = None
    shipper_email: Optional[str] = None
    consignee_phone: Optional[str] = None
    consignee_email: Optional[str] = None
    carrier_name: Optional[str] = None
    carrier_phone: Optional[str] = None
    weight: Optional[float] = None
    dimensions: Optional[DimensionsInput] = None
    rate: Optional[float] = None
    currency: Optional[str] = None
    pickup_date: Optional[datetime] = None
    estimated_delivery: Optional[datetime] = None
    notes: Optional[str] = None


@strawberry.input
class UpdateShipmentInput:
    # Omitted fields are left alone; an explicit null clears an optional field
    shipper_name: Optional[str] = strawberry.UNSET
    shipper_phone: Optional[str] = strawberry.UNSET
    shipper_email: Optional[str] = strawberry.UNSET
    consignee_name: Optional[str] = strawberry.UNSET
    consignee_phone: Optional[str] = strawberry.UNSET
    consignee_email: Optional[str] = strawberry.UNSET
    pickup_location: Optional[LocationInput] = strawberry.UNSET
    delivery_location: Optional[LocationInput] = strawberry.UNSET
    carrier_name: Optional[str] = strawberry.UNSET
    carrier_phone: Optional[str] = strawberry.UNSET
    weight: Optional[float] = strawberry.UNSET
    dimensions: Optional[DimensionsInput] = strawberry.UNSET
    rate: Optional[float] = strawberry.UNSET
    currency: Optional[str] = strawberry.UNSET
    status: Optional[ShipmentStatus] = strawberry.UNSET
    pickup_date: Optional[datetime] = strawberry.UNSET
    estimated_delivery: Optional[datetime] = strawberry.UNSET
    actual_delivery: Optional[datetime] = strawberry.UNSET
    notes: Optional[str] = strawberry.UNSET


@strawberry.input
class RegisterInput:
    email: str
    password: str
    first_name: str
    last_name: str


@strawberry.input
class LoginInput:
    email: str
    password: str


@strawberry.input
class CreateUserInput:
    email: str
    password: str
    first_name: str
    last_name: str
    role: UserRole = models.UserRole.EMPLOYEE


@strawberry.input
class UpdateUserInput:
    first_name: Optional[str] = strawberry.UNSET
    last_name: Optional[str] = strawberry.UNSET
    role: Optional[UserRole] = strawberry.UNSET
    is_active: Optional[bool] = strawberry.UNSET


def _plain(value: Any) -> Any:
    """Strawberry input -> plain data; UNSET fields are dropped."""
    if dataclasses.is_dataclass(value):
        return {
            f.name: _plain(getattr(value, f.name))
            for f in dataclasses.fields(value)
            if getattr(value, f.name) is not strawberry.UNSET
        }
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


def parse(model: type[BaseModel], value: Any) -> Optional[BaseModel]:
    if value is None:
        return None
    try:
        return model.model_validate(_plain(value))
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}" for err in e.errors()
        )
        raise BadUserInput(f"Invalid input: {problems}") from e

#############################
# Resolvers                 #
#############################

def _ctx(info: Info) -> dict:
    return info.context


@strawberry.type
class Query:
    @strawberry.field
    async def shipments(self, info: Info,
                        filter: Optional[ShipmentFilterInput] = None,
                        sort: Optional[ShipmentSortInput] = None,
                        pagination: Optional[PaginationInput] = None) -> ShipmentConnection:
        ctx = _ctx(info)
        authorize(ctx["actor"], Action.VIEW_SHIPMENTS)
        page = await ctx["listing"].page(
            parse(schemas.ShipmentFilter, filter),
            parse(schemas.ShipmentSort, sort),
            parse(schemas.PageRequest, pagination),
        )
        edges = [
            ShipmentEdge(node=Shipment.from_view(view), cursor=encode_cursor(view.shipment.id))
            for view in page.items
        ]
        return ShipmentConnection(edges=edges, page_info=PageInfo(**dataclasses.asdict(page.page_info)))

    @strawberry.field
    async def shipment(self, info: Info, id: strawberry.ID) -> Optional[Shipment]:
        ctx = _ctx(info)
        view = await ctx["shipments"].get(ctx["actor"], id)
        return Shipment.from_view(view) if view else None

    @strawberry.field
    async def shipment_by_tracking_number(self, info: Info, tracking_number: str) -> Optional[Shipment]:
        ctx = _ctx(info)
        view = await ctx["shipments"].get_by_tracking_number(tracking_number)
        if view is None:
            return None
        # anonymous callers do not get to see who handled the shipment
        return Shipment.from_view(view, include_users=ctx["actor"] is not None)

    @strawberry.field
    async def shipment_stats(self, info: Info) -> ShipmentStats:
        ctx = _ctx(info)
        stats = await ctx["shipments"].stats(ctx["actor"])
        counts = stats.by_status
        S = models.ShipmentStatus
        return ShipmentStats(
            total=stats.total,
            by_status=[StatusCount(status=status, count=count) for status, count in counts.items()],
            pending=counts[S.PENDING],
            picked_up=counts[S.PICKED_UP],
            in_transit=counts[S.IN_TRANSIT],
            out_for_delivery=counts[S.OUT_FOR_DELIVERY],
            delivered=counts[S.DELIVERED],
            cancelled=counts[S.CANCELLED],
            on_hold=counts[S.ON_HOLD],
            average_rate=stats.average_rate,
        )

    @strawberry.field
    async def me(self, info: Info) -> User:
        ctx = _ctx(info)
        return User.from_row(await ctx["users"].me(ctx["actor"]))

    @strawberry.field
    async def users(self, info: Info) -> List[User]:
        ctx = _ctx(info)
        return [User.from_row(u) for u in await ctx["users"].list_users(ctx["actor"])]

    @strawberry.field
    async def user(self, info: Info, id: strawberry.ID) -> Optional[User]:
        ctx = _ctx(info)
        row = await ctx["users"].get_user(ctx["actor"], id)
        return User.from_row(row) if row else None


@strawberry.type
class Mutation:
    @strawberry.mutation
    async def create_shipment(self, info: Info, input: CreateShipmentInput) -> Shipment:
        ctx = _ctx(info)
        view = await ctx["shipments"].create(ctx["actor"], parse(schemas.ShipmentCreate, input))
        return Shipment.from_view(view)

    @strawberry.mutation
    async def update_shipment(self, info: Info, id: strawberry.ID, input: UpdateShipmentInput) -> Shipment:
        ctx = _ctx(info)
        view = await ctx["shipments"].update(ctx["actor"], id, parse(schemas.ShipmentUpdate, input))
        return Shipment.from_view(view)

    @strawberry.mutation
    async def delete_shipment(self, info: Info, id: strawberry.ID) -> bool:
        ctx = _ctx(info)
        return await ctx["shipments"].delete(ctx["actor"], id)

    @strawberry.mutation
    async def update_shipment_status(self, info: Info, id: strawberry.ID, status: ShipmentStatus) -> Shipment:
        ctx = _ctx(info)
        view = await ctx["shipments"].update_status(ctx["actor"], id, models.ShipmentStatus(status))
        return Shipment.from_view(view)

    @strawberry.mutation
    async def flag_shipment(self, info: Info, id: strawberry.ID, reason: str) -> Shipment:
        ctx = _ctx(info)
        return Shipment.from_view(await ctx["shipments"].flag(ctx["actor"], id, reason))

    @strawberry.mutation
    async def unflag_shipment(self, info: Info, id: strawberry.ID) -> Shipment:
        ctx = _ctx(info)
        return Shipment.from_view(await ctx["shipments"].unflag(ctx["actor"], id))

    @strawberry.mutation
    async def register(self, info: Info, input: RegisterInput) -> AuthPayload:
        result = await _ctx(info)["auth"].register(parse(schemas.RegisterIn, input))
        return AuthPayload(access_token=result.access_token, refresh_token=result.refresh_token,
                           user=User.from_row(result.user))

    @strawberry.mutation
    async def login(self, info: Info, input: LoginInput) -> AuthPayload:
        result = await _ctx(info)["auth"].login(parse(schemas.LoginIn, input))
        return AuthPayload(access_token=result.access_token, refresh_token=result.refresh_token,
                           user=User.from_row(result.user))

    @strawberry.mutation
    def logout(self, info: Info, refresh_token: Optional[str] = None) -> bool:
        ctx = _ctx(info)
        return ctx["auth"].logout(ctx["claims"], refresh_token)

    @strawberry.mutation
    async def refresh_token(self, info: Info, token: str) -> AuthPayload:
        result = await _ctx(info)["auth"].refresh(token)
        return AuthPayload(access_token=result.access_token, refresh_token=result.refresh_token,
                           user=User.from_row(result.user))

    @strawberry.mutation
    async def create_user(self, info: Info, input: CreateUserInput) -> User:
        ctx = _ctx(info)
        return User.from_row(await ctx["users"].create_user(ctx["actor"], parse(schemas.UserCreate, input)))

    @strawberry.mutation
    async def update_user(self, info: Info, id: strawberry.ID, input: UpdateUserInput) -> User:
        ctx = _ctx(info)
        return User.from_row(await ctx["users"].update_user(ctx["actor"], id, parse(schemas.UserUpdate, input)))

    @strawberry.mutation
    async def delete_user(self, info: Info, id: strawberry.ID) -> bool:
        ctx = _ctx(info)
        return await ctx["users"].delete_user(ctx["actor"], id)

#############################
# Errors                    #
#############################

INTERNAL_MESSAGE = "Internal server error"


def should_mask_error(error: GraphQLError) -> bool:
    # Validation and parse errors carry no original error and pass through
    original = error.original_error
    return original is not None and not isinstance(original, ServiceError)


class MaskInternalErrors(MaskErrors):
    """Hide unexpected exceptions behind a generic INTERNAL error."""

    def anonymise_error(self, error: GraphQLError) -> GraphQLError:
        return GraphQLError(
            self.error_message,
            nodes=error.nodes,
            source=error.source,
            positions=error.positions,
            path=error.path,
            extensions={"code": "INTERNAL"},
        )


class Schema(strawberry.Schema):
    def process_errors(self, errors, execution_context=None) -> None:
        unexpected = []
        for error in errors:
            if isinstance(error.original_error, ServiceError):
                logger.info("Request rejected", fields={
                    "code": error.original_error.code, "message": error.message, "path": error.path,
                })
            else:
                unexpected.append(error)
        if unexpected:
            super().process_errors(unexpected, execution_context)


schema = Schema(
    query=Query,
    mutation=Mutation,
    extensions=[lambda: MaskInternalErrors(should_mask_error=should_mask_error, error_message=INTERNAL_MESSAGE)],
)

#############################
# Context                   #
#############################

async def get_context(request: Request) -> dict:
    """Everything one GraphQL request needs; nothing here outlives the request."""
    database = get_database()
    auth = AuthService(database, get_token_store(), settings)
    actor, claims = await auth.authenticate(request.headers.get("Authorization"))
    if actor:
        set_request_context(user_id=actor.id)
    loaders = RequestLoaders(database)
    return {
        "request": request,
        "actor": actor,
        "claims": claims,
        "loaders": loaders,
        "auth": auth,
        "users": UserService(database, auth),
        "shipments": ShipmentService(database, loaders, settings),
        "listing": ShipmentListing(database, loaders),
    }


graphql_app = GraphQLRouter(
    schema,
    graphql_ide=None if settings.is_production else "graphiql",
    context_getter=get_context,
)
