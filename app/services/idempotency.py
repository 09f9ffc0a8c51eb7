import uuid

import redis

from app.core.config import settings

# Delete only while the key still holds our token; an expired lock may belong to someone else by now
_RELEASE_SCRIPT = (
    "if redis.call('get', KEYS[1]) == ARGV[1] then "
    "return redis.call('del', KEYS[1]) "
    "else return 0 end"
)


class SingleFlightLock:
    """Redis SET NX EX guard: at most one holder per key until release or expiry."""

    def __init__(self, client: redis.Redis | None = None) -> None:
        self.client = client or redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self._tokens: dict[str, str] = {}

    def acquire(self, key: str, ttl_seconds: int) -> bool:
        """Atomic operation: setnx + expire in one call."""
        token = uuid.uuid4().hex
        created = self.client.set(f"lock:{key}", token, nx=True, ex=ttl_seconds)
        if created is None or created is False:
            return False
        self._tokens[key] = token
        return True

    def release(self, key: str) -> bool:
        """Compare-and-delete. False when the lock expired or was never ours."""
        token = self._tokens.pop(key, None)
        if token is None:
            return False
        return int(self.client.eval(_RELEASE_SCRIPT, 1, f"lock:{key}", token) or 0) == 1
