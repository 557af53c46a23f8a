"""
Registration, login and the access/refresh token pair.

Access tokens carry the user id, email and role, but every request re-reads
the user row: a deactivated user or a changed role takes effect
immediately, whatever the token says.
"""
import asyncio
from dataclasses import dataclass
from typing import Optional

import bcrypt

from ..auth_local import (
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    seconds_until_expiry,
)
from ..core.logging_config import get_logger
from ..core_settings import Settings, get_settings
from ..domain.models import User, UserRole
from ..infrastructure.db import Database
from ..infrastructure.repository import Repository
from ..infrastructure.token_store import TokenStore
from .errors import BadUserInput, Forbidden, Unauthenticated
from .policy import Actor
from .schemas import LoginIn, RegisterIn

logger = get_logger(__name__)

BEARER_PREFIX = "Bearer "
INVALID_CREDENTIALS = "Invalid email or password"
INVALID_REFRESH = "Invalid refresh token"


@dataclass
class AuthPayload:
    access_token: str
    refresh_token: str
    user: User


def hash_password(password: str, rounds: int) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt hash
        return False


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    raw = (authorization or "").strip()
    if not raw.startswith(BEARER_PREFIX):
        return None
    return raw[len(BEARER_PREFIX):].strip() or None


def to_actor(user: User) -> Actor:
    return Actor(id=user.id, email=user.email, role=user.role,
                 first_name=user.first_name, last_name=user.last_name)


class AuthService:
    def __init__(self, database: Database, token_store: TokenStore,
                 settings: Optional[Settings] = None):
        self.database = database
        self.token_store = token_store
        self.settings = settings or get_settings()

    def _issue(self, user: User) -> AuthPayload:
        return AuthPayload(
            access_token=create_access_token(user.id, user.email, user.role.value, self.settings),
            refresh_token=create_refresh_token(user.id, self.settings),
            user=user,
        )

    async def hash_password(self, password: str) -> str:
        # bcrypt blocks; run it off the event loop
        return await asyncio.to_thread(hash_password, password, self.settings.BCRYPT_ROUNDS)

    async def register(self, data: RegisterIn) -> AuthPayload:
        hashed = await self.hash_password(data.password)
        async with self.database.transaction() as session:
            users = Repository(session, User)
            if await users.find_one(User.email == data.email):
                raise BadUserInput("User with this email already exists")
            user = await users.create(
                email=data.email,
                password=hashed,
                first_name=data.first_name,
                last_name=data.last_name,
                role=UserRole.EMPLOYEE,
                is_active=True,
            )
        logger.info("User registered", fields={"user_id": user.id})
        return self._issue(user)

    async def login(self, data: LoginIn) -> AuthPayload:
        async with self.database.session() as session:
            user = await Repository(session, User).find_one(User.email == data.email)
        if user is None:
            raise Unauthenticated(INVALID_CREDENTIALS)
        if not user.is_active:
            raise Forbidden("Your account has been deactivated")
        if not await asyncio.to_thread(verify_password, data.password, user.password):
            logger.info("Login rejected", fields={"user_id": user.id})
            raise Unauthenticated(INVALID_CREDENTIALS)
        logger.info("User logged in", fields={"user_id": user.id})
        return self._issue(user)

    async def refresh(self, token: str) -> AuthPayload:
        claims = decode_refresh_token(token, self.settings)
        if claims is None or self.token_store.is_revoked(claims["jti"]):
            raise Unauthenticated(INVALID_REFRESH)
        async with self.database.session() as session:
            user = await Repository(session, User).get(claims["sub"])
        if user is None or not user.is_active:
            raise Unauthenticated(INVALID_REFRESH)
        # rotate: the presented refresh token cannot be used twice
        self.token_store.revoke(claims["jti"], seconds_until_expiry(claims))
        return self._issue(user)

    def logout(self, access_claims: Optional[dict], refresh_token: Optional[str] = None) -> bool:
        if access_claims is None:
            raise Unauthenticated()
        self.token_store.revoke(access_claims["jti"], seconds_until_expiry(access_claims))
        if refresh_token:
            refresh_claims = decode_refresh_token(refresh_token, self.settings)
            if refresh_claims and refresh_claims["sub"] == access_claims["sub"]:
                self.token_store.revoke(refresh_claims["jti"], seconds_until_expiry(refresh_claims))
        logger.info("User logged out", fields={"user_id": access_claims["sub"]})
        return True

    async def authenticate(self, authorization: Optional[str]) -> tuple[Optional[Actor], Optional[dict]]:
        """Resolve a bearer header to (actor, access claims); (None, None) when anonymous or invalid."""
        token = bearer_token(authorization)
        if token is None:
            return None, None
        claims = decode_access_token(token, self.settings)
        if claims is None:
            logger.warning("Invalid or expired access token presented")
            return None, None
        if self.token_store.is_revoked(claims["jti"]):
            return None, None
        async with self.database.session() as session:
            user = await Repository(session, User).get(claims["sub"])
        if user is None or not user.is_active:
            return None, None
        return to_actor(user), claims
