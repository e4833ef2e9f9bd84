"""Redis-backed fixed-window rate limiting utilities."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Request, Response

from app.infra.redis import redis_client
from app.obs import metrics as obs_metrics
from app.settings import settings


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
	kind: str
	limit: int
	window_seconds: int = 60


@dataclass(frozen=True, slots=True)
class RateLimitResult:
	allowed: bool
	limit: int
	remaining: int
	reset_at: int
	retry_after: int

	def headers(self) -> dict[str, str]:
		values = {
			"X-RateLimit-Limit": str(self.limit),
			"X-RateLimit-Remaining": str(self.remaining),
			"X-RateLimit-Reset": str(self.reset_at),
		}
		if not self.allowed:
			values["Retry-After"] = str(self.retry_after)
		return values


class RateLimitExceeded(Exception):
	"""Raised when the rate limit has been hit."""

	def __init__(self, result: RateLimitResult) -> None:
		super().__init__("rate_limited")
		self.result = result


GENERAL = RateLimitPolicy("general", settings.rate_limit_general_per_minute)
ANALYTICS = RateLimitPolicy("analytics", settings.rate_limit_analytics_per_minute)


async def check(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> RateLimitResult:
	"""Count one hit against the current window and report the remaining budget."""

	now = now or time.time()
	window = max(1, int(window_seconds))
	slot = int(math.floor(now / window))
	reset_at = (slot + 1) * window
	retry_after = max(1, int(math.ceil(reset_at - now)))
	if limit <= 0:
		return RateLimitResult(False, 0, 0, reset_at, retry_after)
	key = f"rl:{kind}:{actor_id}:{slot}:{window}"
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		count, _ = await pipe.execute()
	count = int(count)
	return RateLimitResult(
		allowed=count <= limit,
		limit=limit,
		remaining=max(0, limit - count),
		reset_at=reset_at,
		retry_after=retry_after,
	)


async def allow(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> bool:
	"""Return True when the operation is still within the allowed budget."""

	result = await check(kind, actor_id, limit=limit, window_seconds=window_seconds, now=now)
	return result.allowed


def _client_key(request: Request) -> str:
	forwarded = request.headers.get("x-forwarded-for")
	if forwarded:
		ip = forwarded.split(",")[0].strip()
	else:
		ip = request.client.host if request.client else "unknown"
	return f"{ip}:{request.url.path}"


def rate_limited(policy: RateLimitPolicy):
	"""Return a dependency that enforces ``policy`` per client IP and path.

	Usage:
		@router.get("/search", dependencies=[Depends(rate_limited(GENERAL))])
	"""

	async def _dep(request: Request, response: Response) -> RateLimitResult:
		result = await check(
			policy.kind,
			_client_key(request),
			limit=policy.limit,
			window_seconds=policy.window_seconds,
		)
		if not result.allowed:
			obs_metrics.inc_rate_limited(policy.kind)
			raise RateLimitExceeded(result)
		for key, value in result.headers().items():
			response.headers[key] = value
		return result

	return _dep
