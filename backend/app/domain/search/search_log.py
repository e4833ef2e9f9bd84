"""Fire-and-forget persistence of executed searches."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import ulid

from app.domain.search.models import SearchLogEntry
from app.infra.auth import Actor
from app.infra.store import ContentStore, get_store
from app.obs import metrics as obs_metrics
from app.settings import settings

logger = logging.getLogger(__name__)


class SearchLogger:
	"""Schedules search-log writes without blocking the caller.

	Pending writes are tracked so shutdown (and tests) can ``drain()`` them.
	Once ``max_pending`` writes are in flight further entries are dropped.
	"""

	def __init__(
		self,
		*,
		store_factory: Callable[[], ContentStore] = get_store,
		max_pending: Optional[int] = None,
	) -> None:
		self._store_factory = store_factory
		self._max_pending = max_pending or settings.search_log_max_pending
		self._pending: set[asyncio.Task[None]] = set()

	@property
	def pending(self) -> int:
		return len(self._pending)

	def record(
		self,
		query: str,
		filters: dict[str, Any],
		results_count: int,
		execution_time_ms: float,
		*,
		actor: Actor,
	) -> Optional[SearchLogEntry]:
		if len(self._pending) >= self._max_pending:
			obs_metrics.inc_search_log_write("dropped")
			logger.warning("search_log.dropped pending=%s", len(self._pending))
			return None
		entry = SearchLogEntry(
			id=ulid.new().str,
			query=query.strip(),
			filters=filters,
			results_count=results_count,
			execution_time_ms=round(execution_time_ms, 2),
			session_id=actor.session_id,
			timestamp=datetime.now(timezone.utc),
			actor_id=actor.user_id,
			user_agent=actor.user_agent,
			ip_address=actor.ip_address,
		)
		task = asyncio.create_task(self.write(entry))
		self._pending.add(task)
		task.add_done_callback(self._pending.discard)
		return entry

	async def write(self, entry: SearchLogEntry) -> None:
		try:
			await self._store_factory().create(entry.to_document())
		except Exception:
			obs_metrics.inc_search_log_write("failed")
			logger.warning("search_log.write_failed id=%s", entry.id, exc_info=True)
			return
		obs_metrics.inc_search_log_write("ok")

	async def drain(self) -> None:
		while self._pending:
			await asyncio.gather(*list(self._pending), return_exceptions=True)


_search_logger = SearchLogger()


def get_search_logger() -> SearchLogger:
	return _search_logger
