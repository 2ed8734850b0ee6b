"""Redis connection management.

Provides a stable proxy object so imports like `from ledgerboard.infra.redis import redis_client`
always reference the same proxy instance. The underlying client can be swapped at
runtime (e.g., to fakeredis in tests) without breaking previously imported references.

Redis is the only durable holder of state: rankings, watermarks, snapshots,
subscriptions and the due-index all live here. Small helpers on top of the raw client:
- set_if_absent: SET NX returning a bool
- get_int: GET parsed as an int with a default for missing keys
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as redis

from ledgerboard.settings import settings


class RedisProxy:
	"""Lightweight proxy that forwards attribute access to an underlying Redis client.

	This lets us swap the real client for a FakeRedis instance in tests while keeping
	the same imported symbol across the codebase.
	"""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	async def set_if_absent(self, name: str, value) -> bool:
		"""Conditional write; True only for the caller that created the key."""
		return bool(await self._client.set(name, value, nx=True))

	async def get_int(self, name: str, default: Optional[int] = None) -> Optional[int]:
		raw = await self._client.get(name)
		if raw is None or raw == "":
			return default
		return int(float(raw))

	# Fallback: delegate everything else to the underlying client
	def __getattr__(self, item):
		return getattr(self._client, item)


# Create proxy with the real client by default
_real_client = redis.from_url(settings.redis_url, decode_responses=True)
redis_client: RedisProxy = RedisProxy(_real_client)


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)
