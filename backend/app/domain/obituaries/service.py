"""Radius-bounded and discovery obituary feeds."""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from app.domain.obituaries import schemas
from app.domain.search import geo, policy, ranking
from app.domain.search.expressions import FilterExpression, Predicate
from app.domain.search.models import GeoPoint, MemorialRecord
from app.infra.store import ContentStore, get_store
from app.obs import metrics as obs_metrics
from app.settings import settings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


def _days_since(died: Optional[date], now: datetime) -> int:
	if died is None:
		return 0
	return max(0, (now.date() - died).days)


def _died_ordinal(record: MemorialRecord) -> int:
	return record.died.toordinal() if record.died else 0


def _entry(
	record: MemorialRecord,
	score: ranking.DiscoveryScore,
	*,
	now: datetime,
	unit: str,
) -> schemas.ObituaryEntry:
	distance = None
	if score.distance_miles is not None:
		distance = round(geo.from_miles(score.distance_miles, unit), 1)
	return schemas.ObituaryEntry(
		**record.summary(),
		distance=distance,
		days_ago=_days_since(record.died, now),
		engagement=record.engagement,
		recency_score=round(score.recency, 4),
		proximity_score=round(score.proximity, 4),
		relevance=round(score.relevance, 4),
	)


_SORT_KEYS: dict[str, Callable[[tuple[MemorialRecord, ranking.DiscoveryScore]], object]] = {
	"date": lambda item: -_died_ordinal(item[0]),
	"distance": lambda item: item[1].distance_miles if item[1].distance_miles is not None else float("inf"),
	"engagement": lambda item: -item[0].engagement,
	"relevance": lambda item: -item[1].relevance,
}


class ObituaryService:
	def __init__(
		self,
		*,
		store_factory: Callable[[], ContentStore] = get_store,
		now: Callable[[], datetime] = _utcnow,
	) -> None:
		self._store_factory = store_factory
		self._now = now

	async def _candidates(self, *predicates: Predicate) -> list[MemorialRecord]:
		expression = FilterExpression(
			doc_type="memorial",
			predicates=(Predicate("status", "eq", "published"), *predicates),
			sort_by="date_desc",
			limit=settings.obituary_candidate_limit,
		)
		documents = await self._store_factory().fetch(expression)
		records = [MemorialRecord.from_document(document) for document in documents]
		# missing or unparseable death dates never reach scoring
		return [record for record in records if record.died is not None]

	async def nearby(self, query: schemas.ObituaryQuery) -> schemas.ObituaryResponse:
		"""Recently deceased within ``radius`` of the caller, sorted by ``sort_by``."""

		lat, lng = policy.require_coordinates(query.lat, query.lng)
		start = time.perf_counter()
		now = self._now()
		origin = GeoPoint(lat=lat, lng=lng)
		radius_miles = geo.to_miles(query.radius, query.unit)
		cutoff = (now - timedelta(days=query.period)).date()
		records = await self._candidates(
			Predicate("privacy", "neq", "password-protected"),
			Predicate("died", "gte", cutoff),
			Predicate("has_coordinates", "has_coordinates"),
		)
		scored: list[tuple[MemorialRecord, ranking.DiscoveryScore]] = []
		for record in records:
			point = record.proximity_point(resting_first=True)
			if point is None:
				continue
			if geo.distance_miles(lat, lng, point.lat, point.lng) > radius_miles:
				continue
			score = ranking.discovery_score(
				record,
				origin=origin,
				now=now,
				max_distance_miles=settings.obituary_feed_max_distance_miles,
				resting_first=True,
			)
			scored.append((record, score))
		scored.sort(key=_SORT_KEYS[query.sort_by])
		entries = [_entry(record, score, now=now, unit=query.unit) for record, score in scored]
		obs_metrics.observe_obituary_feed("nearby", len(entries))
		logger.info(
			"obituaries.nearby radius=%s period=%s sort=%s count=%s latency_ms=%.2f",
			query.radius,
			query.period,
			query.sort_by,
			len(entries),
			(time.perf_counter() - start) * 1000,
		)
		return schemas.ObituaryResponse(
			obituaries=entries,
			count=len(entries),
			location=schemas.CallerLocation(lat=lat, lng=lng),
			filters=schemas.ObituaryFilters(
				radius=query.radius,
				period=query.period,
				sort_by=query.sort_by,
				unit=query.unit,
			),
		)

	async def discovery_feed(self, query: schemas.ObituaryFeedQuery) -> schemas.ObituaryFeedResponse:
		"""Public obituaries ranked by recency and, when known, proximity."""

		coordinates = policy.optional_coordinates(query.lat, query.lng)
		origin = GeoPoint(lat=coordinates[0], lng=coordinates[1]) if coordinates else None
		now = self._now()
		if query.max_distance is not None:
			max_distance_miles = geo.to_miles(query.max_distance, query.unit)
		else:
			max_distance_miles = settings.obituary_feed_max_distance_miles
		records = await self._candidates(Predicate("privacy", "visible", None))
		scored = [
			(record, ranking.discovery_score(record, origin=origin, now=now, max_distance_miles=max_distance_miles))
			for record in records
		]
		scored.sort(key=_SORT_KEYS["relevance"])
		entries = [_entry(record, score, now=now, unit=query.unit) for record, score in scored[: query.limit]]
		obs_metrics.observe_obituary_feed("discovery", len(entries))
		logger.info("obituaries.feed located=%s count=%s", origin is not None, len(entries))
		return schemas.ObituaryFeedResponse(
			obituaries=entries,
			count=len(entries),
			location=schemas.CallerLocation(lat=origin.lat, lng=origin.lng) if origin else None,
			max_distance=round(geo.from_miles(max_distance_miles, query.unit), 1),
			unit=query.unit,
		)
