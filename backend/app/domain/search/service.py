"""Service layer for memorial search."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from typing import Any, Awaitable, Callable, Iterable, Optional

from app.domain.search import policy, ranking, schemas
from app.domain.search.expressions import FilterExpression
from app.domain.search.models import MemorialRecord
from app.domain.search.query import QueryProcessor
from app.domain.search.search_log import SearchLogger, get_search_logger
from app.infra.auth import Actor
from app.infra.store import ContentStore, get_store
from app.obs import metrics as obs_metrics
from app.settings import settings

logger = logging.getLogger(__name__)

FACET_LIMIT = 20
INLINE_SUGGESTIONS = 5


async def gather_or_cancel(*calls: Awaitable[Any]) -> list[Any]:
	"""Run ``calls`` concurrently; the first failure cancels and awaits the rest before re-raising."""

	tasks = [asyncio.ensure_future(call) for call in calls]
	try:
		return await asyncio.gather(*tasks)
	except BaseException:
		for task in tasks:
			task.cancel()
		await asyncio.gather(*tasks, return_exceptions=True)
		raise


def build_facets(records: Iterable[MemorialRecord]) -> schemas.SearchFacets:
	homes: Counter[tuple[str, str]] = Counter()
	locations: Counter[str] = Counter()
	years: Counter[int] = Counter()
	tags: Counter[str] = Counter()
	for record in records:
		if record.funeral_home:
			homes[(record.funeral_home.id, record.funeral_home.name)] += 1
		location = record.location.city_state()
		if location:
			locations[location] += 1
		if record.died:
			years[record.died.year] += 1
		for tag in record.tags:
			tags[tag] += 1
	return schemas.SearchFacets(
		funeral_homes=[
			schemas.FuneralHomeFacet(id=home_id, name=name or home_id, count=count)
			for (home_id, name), count in homes.most_common(FACET_LIMIT)
		],
		locations=[
			schemas.LocationFacet(location=location, count=count)
			for location, count in locations.most_common(FACET_LIMIT)
		],
		years=[
			schemas.YearFacet(year=year, count=count)
			for year, count in sorted(years.items(), key=lambda item: -item[0])[:FACET_LIMIT]
		],
		tags=[schemas.TagFacet(tag=tag, count=count) for tag, count in tags.most_common(FACET_LIMIT)],
	)


def inline_suggestions(records: Iterable[MemorialRecord], query: str) -> list[str]:
	needle = query.strip().lower()
	if len(needle) < policy.INLINE_SUGGEST_MIN_LEN:
		return []
	found: dict[str, None] = {}
	for record in records:
		for term in (record.name, record.location.city, record.location.state, *record.tags):
			if term and needle in term.lower():
				found.setdefault(term, None)
				if len(found) >= INLINE_SUGGESTIONS:
					return list(found)
	return list(found)


class SearchService:
	"""Runs memorial searches: build expression, fetch, rank, annotate, log."""

	def __init__(
		self,
		*,
		processor: Optional[QueryProcessor] = None,
		store_factory: Callable[[], ContentStore] = get_store,
		search_logger: Optional[SearchLogger] = None,
	) -> None:
		self._processor = processor or QueryProcessor()
		self._store_factory = store_factory
		self._search_logger = search_logger

	@property
	def processor(self) -> QueryProcessor:
		return self._processor

	def _logger(self) -> SearchLogger:
		return self._search_logger or get_search_logger()

	async def search_memorials(
		self,
		query: Optional[str],
		filters: schemas.SearchFilters,
		*,
		actor: Actor,
	) -> schemas.SearchResponse:
		expression = self._processor.build(query, filters, actor_id=actor.user_id)
		effective = self._processor.normalise(query)
		return await self._run("memorials", expression, effective, filters, actor=actor)

	async def advanced_search(
		self,
		query: Optional[str],
		filters: schemas.SearchFilters,
		options: schemas.AdvancedOptions,
		*,
		actor: Actor,
	) -> schemas.SearchResponse:
		expression, effective = self._processor.advanced(query, filters, options, actor_id=actor.user_id)
		response = await self._run("advanced", expression, effective, filters, actor=actor)
		response.query = effective
		return response

	async def _run(
		self,
		kind: str,
		expression: FilterExpression,
		effective: str,
		filters: schemas.SearchFilters,
		*,
		actor: Actor,
	) -> schemas.SearchResponse:
		start = time.perf_counter()
		obs_metrics.inc_search_query(kind)
		store = self._store_factory()
		documents, total, sample = await gather_or_cancel(
			store.fetch(expression),
			store.count(expression),
			self.facet_sample(expression),
		)
		records = [MemorialRecord.from_document(document) for document in documents]
		text_query = expression.text_query
		terms = text_query.terms if text_query else ()
		scored = ranking.score_results(records, effective, terms, prefix_boost=settings.search_prefix_boost)
		if expression.sort_by in (None, "relevance"):
			scored = ranking.rank_results(scored)
		elapsed = time.perf_counter() - start
		results = [
			schemas.SearchResult(
				memorial=schemas.MemorialSummary(**item.record.summary()),
				score=item.score,
				highlights=[schemas.Highlight(**highlight) for highlight in item.highlights],
			)
			for item in scored
		]
		obs_metrics.observe_search_latency(kind, elapsed)
		obs_metrics.observe_search_results(kind, len(results))
		logger.info(
			"search.%s terms=%s results=%s total=%s latency_ms=%.2f",
			kind,
			len(terms),
			len(results),
			total,
			elapsed * 1000,
		)
		self._logger().record(effective, filters.summary(), total, elapsed * 1000, actor=actor)
		return schemas.SearchResponse(
			results=results,
			total=total,
			facets=build_facets(sample),
			suggestions=inline_suggestions(sample, effective),
		)

	async def facet_sample(self, expression: FilterExpression) -> list[MemorialRecord]:
		"""Matches for the visibility and text predicates only, capped for facet counting."""

		base = FilterExpression(
			doc_type=expression.doc_type,
			predicates=tuple(p for p in expression.predicates if p.op in ("visible", "text")),
			limit=settings.search_facet_sample_limit,
		)
		try:
			documents = await self._store_factory().fetch(base)
		except Exception:
			logger.warning("search.facets_failed", exc_info=True)
			return []
		return [MemorialRecord.from_document(document) for document in documents]
