"""Liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable

from app.domain.search.expressions import FilterExpression
from app.infra.redis import redis_client
from app.infra.store import get_store
from app.obs import metrics

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_SECONDS = 0.5


async def _probe(
	name: str,
	call: Awaitable[Any],
	mark: Callable[..., None],
	**details: Any,
) -> dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(call, timeout=PROBE_TIMEOUT_SECONDS)
	except Exception as exc:  # pragma: no cover - depends on runtime
		mark(False)
		logger.warning("health.%s_failed", name, exc_info=True)
		return {"ok": False, **details, "error": str(exc) or type(exc).__name__}
	latency = perf_counter() - start
	mark(True, latency_seconds=latency)
	return {"ok": True, **details, "latency_ms": round(latency * 1000, 2)}


async def liveness() -> dict[str, str]:
	return {"status": "ok"}


async def readiness() -> tuple[int, dict[str, Any]]:
	"""503 unless both Redis and the content store answer within the probe timeout."""

	store = get_store()
	redis_state, store_state = await asyncio.gather(
		_probe("redis", redis_client.ping(), metrics.mark_redis),
		_probe(
			"store",
			store.count(FilterExpression(doc_type="memorial", limit=0)),
			metrics.mark_store,
			backend=store.name,
		),
	)
	ready = redis_state["ok"] and store_state["ok"]
	body = {"status": "ok" if ready else "degraded", "checks": {"redis": redis_state, "store": store_state}}
	return (200 if ready else 503), body
