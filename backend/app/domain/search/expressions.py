"""Store-agnostic filter expressions.

A ``FilterExpression`` is an AND of ``Predicate`` values over logical fields.
Values are carried as data and bound by each store; nothing here produces
query text.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Optional

from app.domain.search.schemas import SearchFilters

# Logical field -> path inside a stored document.
FIELD_PATHS: dict[str, tuple[str, ...]] = {
	"type": ("_type",),
	"id": ("_id",),
	"created_at": ("_createdAt",),
	"name": ("name",),
	"status": ("status",),
	"privacy": ("privacy",),
	"owner_id": ("owner_id",),
	"funeral_home": ("funeral_home", "id"),
	"born": ("born",),
	"died": ("died",),
	"city": ("location", "city"),
	"state": ("location", "state"),
	"country": ("location", "country"),
	"tags": ("tags",),
	"media": ("media",),
	"query": ("query",),
}

# Values assumed when a document leaves the field missing or empty; matches MemorialRecord.from_document.
FIELD_DEFAULTS: dict[str, str] = {
	"privacy": "public",
	"status": "published",
}

# Logical fields that expand to an OR over several paths.
COMPOSITE_FIELDS: dict[str, tuple[str, ...]] = {
	"location": ("city", "state", "country"),
}

# Document paths searched by free text.
TEXT_PATHS: tuple[tuple[str, ...], ...] = (
	("name",),
	("subtitle",),
	("description",),
	("biography",),
	("life_story",),
)
TEXT_LIST_FIELDS = ("tags",)
TEXT_TIMELINE_KEYS = ("title", "description")

OPS = frozenset(
	{
		"eq",
		"neq",
		"gte",
		"lte",
		"lt",
		"icontains",
		"overlaps",
		"has_media",
		"has_coordinates",
		"visible",
		"year_range",
		"text",
	}
)


@dataclass(frozen=True, slots=True)
class TextQuery:
	"""Free text as AND-combined groups of OR-combined alternatives."""

	groups: tuple[tuple[str, ...], ...]
	fuzzy: bool = False

	@property
	def terms(self) -> tuple[str, ...]:
		"""Every alternative, first occurrence order, used for highlighting."""
		seen: dict[str, None] = {}
		for group in self.groups:
			for term in group:
				seen.setdefault(term, None)
		return tuple(seen)

	@property
	def text(self) -> str:
		return " ".join(group[0] for group in self.groups if group)


@dataclass(frozen=True, slots=True)
class YearWindow:
	mode: str
	cutoff: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class Predicate:
	field: str
	op: str
	value: Any = None

	def __post_init__(self) -> None:
		if self.op not in OPS:
			raise ValueError(f"unsupported predicate op: {self.op}")
		if self.op not in {"visible", "text", "has_coordinates", "has_media"}:
			if self.field not in FIELD_PATHS and self.field not in COMPOSITE_FIELDS:
				raise ValueError(f"unknown field: {self.field}")


@dataclass(frozen=True, slots=True)
class FilterExpression:
	doc_type: str = "memorial"
	predicates: tuple[Predicate, ...] = ()
	sort_by: Optional[str] = None
	limit: int = 20
	offset: int = 0

	def page(self, *, limit: int, offset: int = 0) -> "FilterExpression":
		return replace(self, limit=limit, offset=offset)

	@property
	def text_query(self) -> Optional[TextQuery]:
		for predicate in self.predicates:
			if predicate.op == "text":
				return predicate.value
		return None

	def to_filters(self) -> SearchFilters:
		"""Re-derive the structured filters this expression was built from."""

		values: dict[str, Any] = {"limit": self.limit, "offset": self.offset}
		if self.sort_by is not None:
			values["sort_by"] = self.sort_by
		date_range: dict[str, date] = {}
		location: dict[str, str] = {}
		for predicate in self.predicates:
			if predicate.field == "funeral_home" and predicate.op == "eq":
				values["funeral_home"] = predicate.value
			elif predicate.field == "died" and predicate.op == "gte":
				date_range["start"] = predicate.value
			elif predicate.field == "died" and predicate.op == "lte":
				date_range["end"] = predicate.value
			elif predicate.field in ("city", "state", "country") and predicate.op == "icontains":
				location[predicate.field] = predicate.value
			elif predicate.field == "tags" and predicate.op == "overlaps":
				values["tags"] = list(predicate.value)
			elif predicate.op == "has_media":
				values["media_type"] = predicate.value
			elif predicate.op == "year_range":
				values["year_range"] = predicate.value.mode
		if date_range:
			values["date_range"] = date_range
		if location:
			values["location"] = location
		return SearchFilters(**values)


def memorial_expression(*predicates: Predicate, **kwargs: Any) -> FilterExpression:
	return FilterExpression(doc_type="memorial", predicates=tuple(predicates), **kwargs)


def public_only() -> Predicate:
	return Predicate("privacy", "visible", None)


__all__ = [
	"COMPOSITE_FIELDS",
	"FIELD_DEFAULTS",
	"FIELD_PATHS",
	"FilterExpression",
	"Predicate",
	"TEXT_PATHS",
	"TextQuery",
	"YearWindow",
	"memorial_expression",
	"public_only",
]
