"""Redis connection management.

Redis only backs the per-client rate limiter. ``redis_client`` is a stable
proxy, so modules that imported it keep working when tests swap the
underlying client for fakeredis.
"""

from __future__ import annotations

import redis.asyncio as redis

from hexfeed.settings import settings

# limiter calls fail fast against a slow Redis
SOCKET_TIMEOUT_SECONDS = 1.0


class RedisProxy:
	"""Forwards attribute access to the current underlying client."""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	@property
	def client(self) -> redis.Redis:
		return self._client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	def __getattr__(self, item):
		return getattr(self._client, item)


def _build_client() -> redis.Redis:
	return redis.from_url(
		settings.redis_url,
		decode_responses=True,
		socket_timeout=SOCKET_TIMEOUT_SECONDS,
		socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
	)


redis_client: RedisProxy = RedisProxy(_build_client())


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)


async def close_redis() -> None:
	await redis_client.client.aclose()
