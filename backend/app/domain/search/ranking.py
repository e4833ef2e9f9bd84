"""Ranking helpers shared by memorial search and the obituary feeds."""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from app.domain.search.geo import distance_miles
from app.domain.search.models import GeoPoint, MemorialRecord

PREFIX_BOOST = 0.15
RECENCY_WINDOW_DAYS = 365.0
RECENCY_WEIGHT = 0.7
PROXIMITY_WEIGHT = 0.3
NEUTRAL_PROXIMITY = 0.5
DEFAULT_MAX_DISTANCE_MILES = 100.0
SNIPPET_LENGTH = 150
SNIPPET_LEAD = 50

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def clamp(value: float, *, lower: float = 0.0, upper: float = 1.0) -> float:
	return max(lower, min(upper, value))


def text_score(record: MemorialRecord, query: str, *, prefix_boost: float = PREFIX_BOOST) -> float:
	"""Blend the store's text-match score with a name-prefix boost."""

	normalised = query.strip().lower()
	if not normalised:
		return 1.0
	score = clamp(record.score)
	if record.name.lower().startswith(normalised):
		score = clamp(score + prefix_boost)
	return score


def _highlight_pattern(terms: Sequence[str]) -> Optional[re.Pattern[str]]:
	unique = sorted({term.lower() for term in terms if term}, key=len, reverse=True)
	if not unique:
		return None
	return re.compile("|".join(re.escape(term) for term in unique), re.IGNORECASE)


def highlight_text(text: str, terms: Sequence[str], *, max_length: int = 0) -> Optional[str]:
	"""Wrap every occurrence of ``terms`` in ``<mark>``; None when nothing matches.

	Text is HTML-escaped around the markup. When ``max_length`` is set, long
	text is cut to a window around the first match with ``...`` on cut ends.
	"""

	pattern = _highlight_pattern(terms)
	if pattern is None:
		return None
	first = pattern.search(text)
	if first is None:
		return None
	prefix = suffix = ""
	if max_length and len(text) > max_length:
		start = max(0, first.start() - SNIPPET_LEAD)
		end = min(len(text), start + max_length)
		prefix = "..." if start > 0 else ""
		suffix = "..." if end < len(text) else ""
		text = text[start:end]
	parts: list[str] = []
	last = 0
	for match in pattern.finditer(text):
		parts.append(html.escape(text[last:match.start()]))
		parts.append(f"<mark>{html.escape(match.group(0))}</mark>")
		last = match.end()
	parts.append(html.escape(text[last:]))
	return f"{prefix}{''.join(parts)}{suffix}"


def _first_snippet(candidates: Iterable[str], terms: Sequence[str], *, max_length: int) -> Optional[str]:
	for candidate in candidates:
		if not candidate:
			continue
		snippet = highlight_text(candidate, terms, max_length=max_length)
		if snippet is not None:
			return snippet
	return None


def highlights(record: MemorialRecord, terms: Sequence[str]) -> list[dict[str, str]]:
	"""Return ordered ``{field, snippet}`` highlights for name, description and location."""

	if not terms:
		return []
	fields = (
		("name", (record.name,), 0),
		(
			"description",
			(record.subtitle, record.description, record.biography, record.life_story),
			SNIPPET_LENGTH,
		),
		(
			"location",
			(
				record.location.display(),
				record.died_at.name if record.died_at else "",
				record.born_at.name if record.born_at else "",
			),
			SNIPPET_LENGTH,
		),
	)
	results: list[dict[str, str]] = []
	for field_name, candidates, max_length in fields:
		snippet = _first_snippet(candidates, terms, max_length=max_length)
		if snippet is not None:
			results.append({"field": field_name, "snippet": snippet})
	return results


@dataclass(slots=True)
class ScoredMemorial:
	record: MemorialRecord
	score: float
	highlights: list[dict[str, str]]


def _created_key(record: MemorialRecord) -> float:
	created = record.created_at or _EPOCH
	return created.timestamp()


def score_results(
	records: Sequence[MemorialRecord],
	query: str,
	terms: Sequence[str],
	*,
	prefix_boost: float = PREFIX_BOOST,
) -> list[ScoredMemorial]:
	"""Score and annotate store results, keeping the store's order."""

	return [
		ScoredMemorial(
			record=record,
			score=text_score(record, query, prefix_boost=prefix_boost),
			highlights=highlights(record, terms),
		)
		for record in records
	]


def rank_results(results: list[ScoredMemorial]) -> list[ScoredMemorial]:
	"""Order by score, newest first on ties. The sort is stable."""

	return sorted(results, key=lambda item: (-item.score, -_created_key(item.record)))


@dataclass(slots=True)
class DiscoveryScore:
	recency: float
	proximity: float
	relevance: float
	distance_miles: Optional[float] = None


def recency_score(created_at: Optional[datetime], now: datetime) -> float:
	if created_at is None:
		return 0.0
	days = (now - created_at).total_seconds() / 86400.0
	return clamp(1.0 - days / RECENCY_WINDOW_DAYS)


def discovery_score(
	record: MemorialRecord,
	*,
	origin: Optional[GeoPoint],
	now: datetime,
	max_distance_miles: float = DEFAULT_MAX_DISTANCE_MILES,
	resting_first: bool = False,
) -> DiscoveryScore:
	"""Blend recency and proximity for the location-aware feeds."""

	recency = recency_score(record.created_at, now)
	proximity = NEUTRAL_PROXIMITY
	distance: Optional[float] = None
	point = record.proximity_point(resting_first=resting_first)
	if origin is not None and point is not None:
		distance = distance_miles(origin.lat, origin.lng, point.lat, point.lng)
		if max_distance_miles > 0:
			proximity = max(0.0, 1.0 - distance / max_distance_miles)
		else:
			proximity = 1.0 if distance == 0 else 0.0
	relevance = RECENCY_WEIGHT * recency + PROXIMITY_WEIGHT * proximity
	return DiscoveryScore(recency=recency, proximity=proximity, relevance=relevance, distance_miles=distance)
