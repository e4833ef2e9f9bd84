"""Type-ahead suggestions gathered from names, locations, tags and common queries."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from app.domain.search.expressions import FilterExpression, Predicate, public_only
from app.domain.search.models import Locality
from app.domain.search.schemas import Suggestion
from app.infra.store import ContentStore, get_store
from app.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

MIN_SUGGEST_LEN = 2
MAX_SUGGESTIONS = 8
NAME_LIMIT = 5
LOCATION_SAMPLE = 10
TAG_SAMPLE = 10
TAG_LIMIT = 5
POPULAR_LIMIT = 3
POPULAR_COUNT = 10

POPULAR_QUERIES: tuple[str, ...] = (
	"family",
	"father",
	"mother",
	"husband",
	"wife",
	"grandfather",
	"grandmother",
	"beloved",
	"passed away",
	"memorial",
	"funeral",
	"service",
	"celebration of life",
	"obituary",
	"remembrance",
	"tribute",
	"in memory",
	"loving",
	"cherished",
)


def merge_suggestions(pools: Sequence[Sequence[Suggestion]], query: str) -> list[Suggestion]:
	"""Exact matches first, then prefix matches, then by count; dedupe and cap."""

	needle = query.lower()
	combined = [item for pool in pools for item in pool]
	combined.sort(
		key=lambda item: (
			item.text.lower() != needle,
			not item.text.lower().startswith(needle),
			-item.count,
		)
	)
	seen: set[str] = set()
	merged: list[Suggestion] = []
	for item in combined:
		key = item.text.lower()
		if key in seen:
			continue
		seen.add(key)
		merged.append(item)
		if len(merged) >= MAX_SUGGESTIONS:
			break
	return merged


class SuggestionEngine:
	def __init__(
		self,
		*,
		store_factory: Callable[[], ContentStore] = get_store,
		vocabulary: Sequence[str] = POPULAR_QUERIES,
	) -> None:
		self._store_factory = store_factory
		self._vocabulary = tuple(vocabulary)

	async def suggest(self, partial: str) -> list[Suggestion]:
		query = " ".join((partial or "").split()).lower()
		if len(query) < MIN_SUGGEST_LEN:
			return []
		pools = await asyncio.gather(
			self._guard("names", self.names(query)),
			self._guard("locations", self.locations(query)),
			self._guard("tags", self.tags(query)),
			self._guard("popular", self.popular(query)),
		)
		return merge_suggestions(pools, query)

	async def _guard(self, pool: str, call: Awaitable[list[Suggestion]]) -> list[Suggestion]:
		try:
			return await call
		except Exception:
			obs_metrics.inc_suggestion_pool_failure(pool)
			logger.warning("suggestions.pool_failed pool=%s", pool, exc_info=True)
			return []

	async def names(self, query: str) -> list[Suggestion]:
		expression = FilterExpression(
			predicates=(public_only(), Predicate("name", "icontains", query)),
			sort_by="name_asc",
			limit=NAME_LIMIT,
		)
		documents = await self._store_factory().fetch(expression)
		return [
			Suggestion(text=str(doc["name"]), type="name", count=1) for doc in documents if doc.get("name")
		]

	async def locations(self, query: str) -> list[Suggestion]:
		expression = FilterExpression(
			predicates=(public_only(), Predicate("location", "icontains", query)),
			limit=LOCATION_SAMPLE,
		)
		documents = await self._store_factory().fetch(expression)
		seen: set[str] = set()
		results: list[Suggestion] = []
		for document in documents:
			locality = Locality.parse(document.get("location"))
			city_hit = bool(locality.city) and query in locality.city.lower()
			candidates = []
			if city_hit:
				candidates.append(locality.city_state())
			if locality.state and query in locality.state.lower() and not city_hit:
				candidates.append(locality.state)
			for text in candidates:
				if text and text not in seen:
					seen.add(text)
					results.append(Suggestion(text=text, type="location", count=1))
		return results

	async def tags(self, query: str) -> list[Suggestion]:
		expression = FilterExpression(
			predicates=(public_only(), Predicate("tags", "icontains", query)),
			limit=TAG_SAMPLE,
		)
		documents = await self._store_factory().fetch(expression)
		counts: dict[str, int] = {}
		for document in documents:
			for tag in document.get("tags") or ():
				tag = str(tag)
				if query in tag.lower():
					counts[tag] = counts.get(tag, 0) + 1
		ordered = sorted(counts.items(), key=lambda item: -item[1])
		return [Suggestion(text=tag, type="tag", count=count) for tag, count in ordered[:TAG_LIMIT]]

	async def popular(self, query: str) -> list[Suggestion]:
		matches = [term for term in self._vocabulary if query in term.lower() or term.lower() in query]
		return [Suggestion(text=term, type="query", count=POPULAR_COUNT) for term in matches[:POPULAR_LIMIT]]
