"""Pydantic schemas for memorial search APIs."""

from __future__ import annotations

from datetime import date
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.settings import settings

MediaType = Literal["photos", "videos", "audio", "documents"]
YearRange = Literal["all", "recent", "old"]
SortBy = Literal["relevance", "date_desc", "date_asc", "name_asc", "name_desc"]


class DateRange(BaseModel):
	start: Optional[date] = None
	end: Optional[date] = None

	@model_validator(mode="after")
	def _ordered(self) -> "DateRange":
		if self.start and self.end and self.start > self.end:
			raise ValueError("date_range start must not be after end")
		return self


class LocationFilter(BaseModel):
	city: Optional[str] = None
	state: Optional[str] = None
	country: Optional[str] = None

	@field_validator("city", "state", "country", mode="before")
	@classmethod
	def _blank_to_none(cls, value: Any) -> Any:
		if isinstance(value, str):
			return value.strip() or None
		return value


class SearchFilters(BaseModel):
	"""Structured constraints on a memorial search; absent fields are unconstrained."""

	funeral_home: Optional[str] = None
	date_range: Optional[DateRange] = None
	location: Optional[LocationFilter] = None
	tags: Optional[list[str]] = None
	media_type: Optional[MediaType] = None
	year_range: Optional[YearRange] = None
	sort_by: Optional[SortBy] = None
	limit: int = Field(default=settings.search_default_limit, ge=0, le=settings.search_max_limit)
	offset: int = Field(default=0, ge=0)

	@field_validator("funeral_home", mode="before")
	@classmethod
	def _strip_home(cls, value: Any) -> Any:
		if isinstance(value, str):
			return value.strip() or None
		return value

	@field_validator("tags", mode="before")
	@classmethod
	def _clean_tags(cls, value: Any) -> Any:
		if value is None:
			return None
		if isinstance(value, str):
			value = value.split(",")
		tags = [str(tag).strip() for tag in value if str(tag).strip()]
		return tags or None

	@field_validator("date_range", mode="after")
	@classmethod
	def _drop_empty_range(cls, value: Optional[DateRange]) -> Optional[DateRange]:
		if value is not None and value.start is None and value.end is None:
			return None
		return value

	@field_validator("location", mode="after")
	@classmethod
	def _drop_empty_location(cls, value: Optional[LocationFilter]) -> Optional[LocationFilter]:
		if value is not None and not (value.city or value.state or value.country):
			return None
		return value

	def summary(self) -> dict[str, Any]:
		"""Explicitly set, non-empty filters in JSON form (for search logs)."""
		return self.model_dump(mode="json", exclude_unset=True, exclude_none=True)


class AdvancedOptions(BaseModel):
	fuzzy_match: bool = False
	synonyms: bool = False
	date_nlp: bool = False
	location_nlp: bool = False


class SearchParams(BaseModel):
	"""Query-string form of a search request."""

	q: str = Field(default="", max_length=1000)
	funeral_home: Optional[str] = None
	start_date: Optional[date] = None
	end_date: Optional[date] = None
	city: Optional[str] = None
	state: Optional[str] = None
	country: Optional[str] = None
	tags: Optional[str] = Field(default=None, description="Comma-separated tags")
	media_type: Optional[MediaType] = None
	year_range: Optional[YearRange] = None
	sort_by: Optional[SortBy] = None
	limit: Optional[int] = Field(default=None, ge=0, le=settings.search_max_limit)
	offset: Optional[int] = Field(default=None, ge=0)
	advanced: bool = False
	fuzzy: bool = False
	synonyms: bool = False
	date_nlp: bool = False
	location_nlp: bool = False

	def to_filters(self) -> SearchFilters:
		values: dict[str, Any] = {}
		if self.funeral_home:
			values["funeral_home"] = self.funeral_home
		if self.start_date or self.end_date:
			values["date_range"] = {"start": self.start_date, "end": self.end_date}
		if self.city or self.state or self.country:
			values["location"] = {"city": self.city, "state": self.state, "country": self.country}
		if self.tags:
			values["tags"] = self.tags
		for key in ("media_type", "year_range", "sort_by", "limit", "offset"):
			value = getattr(self, key)
			if value is not None:
				values[key] = value
		return SearchFilters(**values)

	def options(self) -> AdvancedOptions:
		return AdvancedOptions(
			fuzzy_match=self.fuzzy,
			synonyms=self.synonyms,
			date_nlp=self.date_nlp,
			location_nlp=self.location_nlp,
		)


class SearchBody(BaseModel):
	"""JSON body of ``POST /search``; ``query`` is checked by the router."""

	query: Any = None
	filters: SearchFilters = Field(default_factory=SearchFilters)
	advanced: bool = False
	options: AdvancedOptions = Field(default_factory=AdvancedOptions)


class SuggestionsQuery(BaseModel):
	q: str = Field(default="", max_length=200)


class Highlight(BaseModel):
	field: str
	snippet: str


class MemorialSummary(BaseModel):
	id: str
	name: str
	slug: str = ""
	subtitle: Optional[str] = None
	description: Optional[str] = None
	born: Optional[str] = None
	died: Optional[str] = None
	location: dict[str, str] = Field(default_factory=dict)
	died_at: Optional[str] = None
	resting_place: Optional[str] = None
	tags: list[str] = Field(default_factory=list)
	funeral_home: Optional[dict[str, str]] = None
	created_at: Optional[str] = None


class SearchResult(BaseModel):
	memorial: MemorialSummary
	score: float = Field(..., ge=0.0, le=1.0)
	highlights: list[Highlight] = Field(default_factory=list)


class FuneralHomeFacet(BaseModel):
	id: str
	name: str
	count: int


class LocationFacet(BaseModel):
	location: str
	count: int


class YearFacet(BaseModel):
	year: int
	count: int


class TagFacet(BaseModel):
	tag: str
	count: int


class SearchFacets(BaseModel):
	funeral_homes: list[FuneralHomeFacet] = Field(default_factory=list)
	locations: list[LocationFacet] = Field(default_factory=list)
	years: list[YearFacet] = Field(default_factory=list)
	tags: list[TagFacet] = Field(default_factory=list)


class SearchResponse(BaseModel):
	results: list[SearchResult]
	total: int = Field(..., ge=0)
	facets: SearchFacets = Field(default_factory=SearchFacets)
	suggestions: list[str] = Field(default_factory=list)
	query: Optional[str] = Field(default=None, description="Effective text after advanced processing")


class Suggestion(BaseModel):
	text: str
	type: Literal["query", "location", "name", "tag"]
	count: int = Field(..., ge=0)


class SuggestionsResponse(BaseModel):
	suggestions: list[Suggestion]
