"""Revoked-token registry keyed by JWT id."""
import logging
from functools import lru_cache
from typing import Optional

import redis
from cachetools import TLRUCache

from ..core_settings import get_settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "revoked:"


class TokenStore:
    """Redis when reachable, otherwise an in-process cache with per-entry expiry."""

    def __init__(self, redis_url: Optional[str] = None, maxsize: int = 10000):
        self.redis_client: Optional[redis.Redis] = None
        self.local_cache = TLRUCache(maxsize=maxsize, ttu=lambda _key, ttl, now: now + ttl)
        if redis_url:
            try:
                client = redis.from_url(redis_url, decode_responses=True)
                client.ping()
                self.redis_client = client
            except redis.RedisError as e:
                logger.warning(f"Redis unavailable, revocations kept in process: {e}")

    @property
    def backend(self) -> str:
        return "redis" if self.redis_client else "local"

    def revoke(self, jti: str, ttl_seconds: int) -> None:
        ttl_seconds = max(int(ttl_seconds), 1)
        if self.redis_client:
            try:
                self.redis_client.setex(KEY_PREFIX + jti, ttl_seconds, "1")
                return
            except redis.RedisError as e:
                logger.warning(f"Redis revoke failed, using local cache: {e}")
        self.local_cache[jti] = ttl_seconds

    def is_revoked(self, jti: Optional[str]) -> bool:
        if not jti:
            return False
        if self.redis_client:
            try:
                if self.redis_client.exists(KEY_PREFIX + jti):
                    return True
            except redis.RedisError as e:
                logger.warning(f"Redis lookup failed, checking local cache: {e}")
        return jti in self.local_cache


@lru_cache
def get_token_store() -> TokenStore:
    return TokenStore(get_settings().REDIS_URL)
