from typing import Optional

from ..core.logging_config import get_logger
from ..domain.models import User
from ..infrastructure.db import Database
from ..infrastructure.repository import Repository
from .auth_service import AuthService
from .errors import BadUserInput, NotFound, Unauthenticated
from .policy import Action, Actor, authorize
from .schemas import UserCreate, UserUpdate

logger = get_logger(__name__)


class UserService:
    """Account administration. Everything except ``me`` is admin only."""

    def __init__(self, database: Database, auth: AuthService):
        self.database = database
        self.auth = auth

    async def me(self, actor: Optional[Actor]) -> User:
        if actor is None:
            raise Unauthenticated()
        async with self.database.session() as session:
            user = await Repository(session, User).get(actor.id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def list_users(self, actor: Optional[Actor]) -> list[User]:
        authorize(actor, Action.MANAGE_USERS)
        async with self.database.session() as session:
            return await Repository(session, User).find(
                order_by=(User.created_at.desc(), User.id.asc()))

    async def get_user(self, actor: Optional[Actor], id: str) -> Optional[User]:
        authorize(actor, Action.MANAGE_USERS)
        async with self.database.session() as session:
            return await Repository(session, User).get(id)

    async def create_user(self, actor: Optional[Actor], data: UserCreate) -> User:
        actor = authorize(actor, Action.MANAGE_USERS)
        hashed = await self.auth.hash_password(data.password)
        async with self.database.transaction() as session:
            users = Repository(session, User)
            if await users.find_one(User.email == data.email):
                raise BadUserInput("User with this email already exists")
            user = await users.create(
                email=data.email,
                password=hashed,
                first_name=data.first_name,
                last_name=data.last_name,
                role=data.role,
                is_active=True,
            )
        logger.info("User created", fields={"user_id": user.id, "role": user.role.value, "actor": actor.id})
        return user

    async def update_user(self, actor: Optional[Actor], id: str, data: UserUpdate) -> User:
        actor = authorize(actor, Action.MANAGE_USERS)
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        async with self.database.transaction() as session:
            users = Repository(session, User)
            user = await users.get(id)
            if user is None:
                raise NotFound("User not found")
            await users.update(user, changes)
        logger.info("User updated", fields={"user_id": id, "fields": sorted(changes), "actor": actor.id})
        return user

    async def delete_user(self, actor: Optional[Actor], id: str) -> bool:
        actor = authorize(actor, Action.MANAGE_USERS)
        if id == actor.id:
            raise BadUserInput("You cannot delete your own account")
        async with self.database.transaction() as session:
            removed = await Repository(session, User).delete_where(User.id == id)
            if not removed:
                raise NotFound("User not found")
        logger.info("User deleted", fields={"user_id": id, "actor": actor.id})
        return True
