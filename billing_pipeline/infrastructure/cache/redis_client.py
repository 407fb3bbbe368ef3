# billing_pipeline/infrastructure/cache/redis_client.py

import redis.asyncio as redis

# Compare a JSON field of the stored value; on match overwrite with a new value and TTL.
_SET_IF_FIELD = """
local current = redis.call('get', KEYS[1])
if not current then return 0 end
local record = cjson.decode(current)
if record[ARGV[1]] ~= ARGV[2] then return 0 end
redis.call('set', KEYS[1], ARGV[3], 'EX', tonumber(ARGV[4]))
return 1
"""

# Compare a JSON field of the stored value; on match delete the key.
_DELETE_IF_FIELD = """
local current = redis.call('get', KEYS[1])
if not current then return 0 end
local record = cjson.decode(current)
if record[ARGV[1]] ~= ARGV[2] then return 0 end
return redis.call('del', KEYS[1])
"""


class RedisClient:
    def __init__(self, url: str):
        self.client = redis.from_url(
            url,
            decode_responses=True,
        )

    async def set_nx_ex(self, key: str, value: str, ttl: int) -> bool:
        """Set key to value only if not exists, with TTL. Returns True if key was set."""
        return bool(await self.client.set(key, value, nx=True, ex=ttl))

    async def get(self, key: str) -> str | None:
        """Get value for key. Returns None if key does not exist."""
        return await self.client.get(key)

    async def set_if_field(self, key: str, field: str, expected: str, value: str, ttl: int) -> bool:
        """Atomically replace a JSON value whose `field` equals `expected`. Returns True if replaced."""
        result = await self.client.eval(_SET_IF_FIELD, 1, key, field, expected, value, ttl)
        return bool(result)

    async def delete_if_field(self, key: str, field: str, expected: str) -> bool:
        """Atomically delete a JSON value whose `field` equals `expected`. Returns True if deleted."""
        result = await self.client.eval(_DELETE_IF_FIELD, 1, key, field, expected)
        return bool(result)

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()
