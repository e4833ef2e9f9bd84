"""Turn free text and structured filters into a filter expression."""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Mapping, Optional, Sequence

from app.domain.search.expressions import FilterExpression, Predicate, TextQuery, YearWindow
from app.domain.search.schemas import AdvancedOptions, DateRange, LocationFilter, SearchFilters
from app.settings import settings

SYNONYMS: dict[str, tuple[str, ...]] = {
	"died": ("passed away", "deceased", "departed", "lost"),
	"born": ("birth", "birthday"),
	"family": ("relatives", "loved ones", "kin"),
	"memorial": ("tribute", "remembrance", "commemoration"),
	"funeral": ("service", "ceremony", "celebration of life"),
}

RECENT_WINDOW = timedelta(days=365)

_WHITESPACE = re.compile(r"\s+")
_RELATIVE_DATE = re.compile(
	r"\b(?:(?:in|from|during|since)\s+)?(last|this)\s+(year|month|decade)\b",
	re.IGNORECASE,
)
_YEAR = re.compile(r"\b(?:(?:in|from|during)\s+)?((?:19|20)\d{2})\b", re.IGNORECASE)
_PLACE_WORD = r"[A-Z][A-Za-z.'-]*"
_PLACE = rf"{_PLACE_WORD}(?:\s+{_PLACE_WORD}){{0,2}}"
_CAPITALISED_LOCATION = re.compile(rf"\b(?i:in|from|at)\s+({_PLACE})(?:\s*,\s*({_PLACE}))?")
_TRAILING_LOCATION = re.compile(
	r"\b(?:in|from|at)\s+([a-z][a-z.'-]*(?:\s+[a-z][a-z.'-]*){0,2})(?:\s*,\s*([a-z][a-z.'-]*(?:\s+[a-z][a-z.'-]*){0,2}))?\s*$",
	re.IGNORECASE,
)
# Words that follow "in"/"at"/"from" without naming a place.
_NOT_PLACES = frozenset(
	{
		"memory",
		"memoriam",
		"loving",
		"honor",
		"honour",
		"remembrance",
		"peace",
		"heaven",
		"life",
		"death",
		"the",
		"a",
		"an",
		"his",
		"her",
		"their",
		"my",
		"our",
		"last",
		"this",
	}
)


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


def _synonym_index(groups: Mapping[str, Sequence[str]]) -> dict[str, tuple[str, ...]]:
	index: dict[str, tuple[str, ...]] = {}
	for word, alternatives in groups.items():
		members = (word, *alternatives)
		for member in members:
			if " " not in member:
				index[member] = members
	return index


class QueryProcessor:
	"""Builds store-agnostic expressions from search requests."""

	def __init__(
		self,
		*,
		now: Callable[[], datetime] = _utcnow,
		synonyms: Mapping[str, Sequence[str]] = SYNONYMS,
		max_length: Optional[int] = None,
		max_terms: Optional[int] = None,
	) -> None:
		self._now = now
		self._synonyms = _synonym_index(synonyms)
		self._max_length = max_length or settings.search_max_query_length
		self._max_terms = max_terms or settings.search_max_terms

	def normalise(self, query: Optional[str]) -> str:
		"""Strip control characters, collapse whitespace, cap length and term count."""
		if not query:
			return ""
		cleaned = "".join(
			" " if unicodedata.category(char) in ("Cc", "Cf", "Zl", "Zp") else char for char in str(query)
		)
		cleaned = _WHITESPACE.sub(" ", cleaned).strip()[: self._max_length].strip()
		return " ".join(cleaned.split(" ")[: self._max_terms])

	def terms(self, query: str) -> list[str]:
		return [term.lower() for term in self.normalise(query).split(" ") if term]

	def build(
		self,
		query: Optional[str],
		filters: SearchFilters,
		*,
		actor_id: Optional[str] = None,
		options: Optional[AdvancedOptions] = None,
	) -> FilterExpression:
		options = options or AdvancedOptions()
		predicates: list[Predicate] = [Predicate("privacy", "visible", actor_id)]
		terms = self.terms(query or "")
		if terms:
			if options.synonyms:
				groups = tuple(self._synonyms.get(term, (term,)) for term in terms)
				# the typed term leads its group so highlighting and display keep it
				groups = tuple(
					(term, *(alt for alt in group if alt != term)) for term, group in zip(terms, groups)
				)
			else:
				groups = tuple((term,) for term in terms)
			predicates.append(Predicate("text", "text", TextQuery(groups=groups, fuzzy=options.fuzzy_match)))
		predicates.extend(self._filter_predicates(filters))
		return FilterExpression(
			doc_type="memorial",
			predicates=tuple(predicates),
			sort_by=filters.sort_by,
			limit=filters.limit,
			offset=filters.offset,
		)

	def _filter_predicates(self, filters: SearchFilters) -> list[Predicate]:
		predicates: list[Predicate] = []
		if filters.funeral_home:
			predicates.append(Predicate("funeral_home", "eq", filters.funeral_home))
		if filters.date_range:
			if filters.date_range.start:
				predicates.append(Predicate("died", "gte", filters.date_range.start))
			if filters.date_range.end:
				predicates.append(Predicate("died", "lte", filters.date_range.end))
		if filters.location:
			for key in ("city", "state", "country"):
				value = getattr(filters.location, key)
				if value:
					predicates.append(Predicate(key, "icontains", value))
		if filters.tags:
			predicates.append(Predicate("tags", "overlaps", tuple(filters.tags)))
		if filters.media_type:
			predicates.append(Predicate("media", "has_media", filters.media_type))
		if filters.year_range:
			cutoff = None if filters.year_range == "all" else self._now() - RECENT_WINDOW
			predicates.append(Predicate("created_at", "year_range", YearWindow(filters.year_range, cutoff)))
		return predicates

	def advanced(
		self,
		query: Optional[str],
		filters: SearchFilters,
		options: AdvancedOptions,
		*,
		actor_id: Optional[str] = None,
	) -> tuple[FilterExpression, str]:
		"""Apply the natural-language toggles, then build; returns the effective text too."""

		text = self.normalise(query)
		updates: dict[str, object] = {}
		if options.date_nlp:
			date_range, text = self.extract_date_range(text)
			if date_range is not None and filters.date_range is None:
				updates["date_range"] = date_range
		if options.location_nlp:
			location, text = self.extract_location(text)
			if location is not None and filters.location is None:
				updates["location"] = location
		if updates:
			filters = filters.model_copy(update=updates)
		text = _WHITESPACE.sub(" ", text).strip()
		return self.build(text, filters, actor_id=actor_id, options=options), text

	def extract_date_range(self, text: str) -> tuple[Optional[DateRange], str]:
		today = self._now().date()
		match = _RELATIVE_DATE.search(text)
		if match:
			which, unit = match.group(1).lower(), match.group(2).lower()
			start, end = _relative_range(today, which, unit)
			return DateRange(start=start, end=end), _remove(text, match)
		for match in _YEAR.finditer(text):
			year = int(match.group(1))
			if 1900 <= year <= today.year:
				return DateRange(start=date(year, 1, 1), end=date(year, 12, 31)), _remove(text, match)
		return None, text

	def extract_location(self, text: str) -> tuple[Optional[LocationFilter], str]:
		for pattern in (_CAPITALISED_LOCATION, _TRAILING_LOCATION):
			for match in pattern.finditer(text):
				city = match.group(1).strip()
				state = (match.group(2) or "").strip()
				if city.split(" ")[0].lower() in _NOT_PLACES:
					continue
				return LocationFilter(city=city, state=state or None), _remove(text, match)
		return None, text


def _remove(text: str, match: re.Match[str]) -> str:
	return _WHITESPACE.sub(" ", f"{text[: match.start()]} {text[match.end():]}").strip()


def _relative_range(today: date, which: str, unit: str) -> tuple[date, date]:
	if unit == "year":
		year = today.year - 1 if which == "last" else today.year
		return date(year, 1, 1), date(year, 12, 31)
	if unit == "month":
		first_of_month = today.replace(day=1)
		if which == "this":
			next_month = (first_of_month + timedelta(days=32)).replace(day=1)
			return first_of_month, next_month - timedelta(days=1)
		last_month_end = first_of_month - timedelta(days=1)
		return last_month_end.replace(day=1), last_month_end
	# decade: the ten full calendar years before the current one, or the current decade so far
	if which == "last":
		return date(today.year - 10, 1, 1), date(today.year - 1, 12, 31)
	return date(today.year - today.year % 10, 1, 1), today
