"""Shared Redis handle for rate limiting and readiness checks.

Modules import ``redis_client`` once; ``use`` swaps the connection underneath
it (fakeredis in tests) and the next call picks it up.
"""

from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as redis

from app.settings import settings


def _connect(url: Optional[str] = None) -> redis.Redis:
	return redis.from_url(url or settings.redis_url, decode_responses=True)


class RedisHandle:
	"""Lazily connected client that forwards every command to the active connection."""

	__slots__ = ("_client",)

	def __init__(self, client: Optional[redis.Redis] = None) -> None:
		self._client = client

	@property
	def client(self) -> redis.Redis:
		if self._client is None:
			self._client = _connect()
		return self._client

	def use(self, client: Optional[redis.Redis]) -> Optional[redis.Redis]:
		"""Install ``client`` and hand back whatever was active before."""

		previous, self._client = self._client, client
		return previous

	async def close(self) -> None:
		if self._client is not None:
			await self._client.aclose()
			self._client = None

	def __getattr__(self, item: str) -> Any:
		return getattr(self.client, item)


redis_client = RedisHandle()
