"""Domain models backing memorial search & discovery results."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional

MEDIA_TYPES = ("photos", "videos", "audio", "documents")


def parse_date(value: Any) -> Optional[date]:
	"""Parse an ISO date (or datetime) value; anything unusable becomes None."""
	if value is None:
		return None
	if isinstance(value, datetime):
		return value.date()
	if isinstance(value, date):
		return value
	text = str(value).strip()
	if not text:
		return None
	try:
		return date.fromisoformat(text[:10])
	except ValueError:
		return None


def parse_datetime(value: Any) -> Optional[datetime]:
	if value is None:
		return None
	if isinstance(value, datetime):
		parsed = value
	elif isinstance(value, date):
		parsed = datetime(value.year, value.month, value.day)
	else:
		text = str(value).strip()
		if not text:
			return None
		if text.endswith("Z"):
			text = text[:-1] + "+00:00"
		try:
			parsed = datetime.fromisoformat(text)
		except ValueError:
			return None
	if parsed.tzinfo is None:
		parsed = parsed.replace(tzinfo=timezone.utc)
	return parsed


@dataclass(slots=True, frozen=True)
class GeoPoint:
	lat: float
	lng: float

	@classmethod
	def parse(cls, value: Any) -> Optional["GeoPoint"]:
		if not isinstance(value, Mapping):
			return None
		try:
			lat = float(value.get("lat"))
			lng = float(value.get("lng", value.get("lon")))
		except (TypeError, ValueError):
			return None
		if math.isnan(lat) or math.isnan(lng):
			return None
		return cls(lat=lat, lng=lng)

	def to_document(self) -> dict[str, float]:
		return {"lat": self.lat, "lng": self.lng}


@dataclass(slots=True)
class Place:
	"""A named place, optionally with coordinates (birth/death place, resting place)."""

	name: str = ""
	coordinates: Optional[GeoPoint] = None

	@classmethod
	def parse(cls, value: Any, *, name_key: str = "place") -> Optional["Place"]:
		if not isinstance(value, Mapping):
			return None
		return cls(
			name=str(value.get(name_key) or ""),
			coordinates=GeoPoint.parse(value.get("coordinates")),
		)


@dataclass(slots=True)
class Locality:
	city: str = ""
	state: str = ""
	country: str = ""

	@classmethod
	def parse(cls, value: Any) -> "Locality":
		if not isinstance(value, Mapping):
			return cls()
		return cls(
			city=str(value.get("city") or ""),
			state=str(value.get("state") or ""),
			country=str(value.get("country") or ""),
		)

	def display(self) -> str:
		return ", ".join(part for part in (self.city, self.state, self.country) if part)

	def city_state(self) -> str:
		if self.city and self.state:
			return f"{self.city}, {self.state}"
		return self.city


@dataclass(slots=True)
class MediaFlags:
	photos: bool = False
	videos: bool = False
	audio: bool = False
	documents: bool = False

	@classmethod
	def parse(cls, value: Any) -> "MediaFlags":
		if not isinstance(value, Mapping):
			return cls()
		# media entries may be stored as booleans or as lists of asset references
		return cls(**{kind: bool(value.get(kind)) for kind in MEDIA_TYPES})

	def has(self, kind: str) -> bool:
		return bool(getattr(self, kind, False))


@dataclass(slots=True)
class FuneralHome:
	id: str
	name: str = ""


@dataclass(slots=True)
class TimelineEntry:
	title: str = ""
	description: str = ""


@dataclass(slots=True)
class MemorialRecord:
	"""Read-only view of a memorial document held by the content store."""

	id: str
	name: str
	slug: str = ""
	subtitle: str = ""
	description: str = ""
	biography: str = ""
	life_story: str = ""
	born: Optional[date] = None
	died: Optional[date] = None
	born_at: Optional[Place] = None
	died_at: Optional[Place] = None
	resting_place: Optional[Place] = None
	location: Locality = field(default_factory=Locality)
	tags: tuple[str, ...] = ()
	media: MediaFlags = field(default_factory=MediaFlags)
	timeline: tuple[TimelineEntry, ...] = ()
	created_at: Optional[datetime] = None
	privacy: str = "public"
	status: str = "published"
	owner_id: Optional[str] = None
	funeral_home: Optional[FuneralHome] = None
	view_count: int = 0
	guestbook_count: int = 0
	score: float = 0.0

	@classmethod
	def from_document(cls, document: Mapping[str, Any]) -> "MemorialRecord":
		funeral_home = document.get("funeral_home")
		home: Optional[FuneralHome] = None
		if isinstance(funeral_home, Mapping) and funeral_home.get("id"):
			home = FuneralHome(id=str(funeral_home["id"]), name=str(funeral_home.get("name") or ""))
		timeline = tuple(
			TimelineEntry(title=str(entry.get("title") or ""), description=str(entry.get("description") or ""))
			for entry in document.get("timeline") or ()
			if isinstance(entry, Mapping)
		)
		try:
			score = float(document.get("_score", 0.0) or 0.0)
		except (TypeError, ValueError):
			score = 0.0
		return cls(
			id=str(document.get("_id") or document.get("id") or ""),
			name=str(document.get("name") or ""),
			slug=str(document.get("slug") or ""),
			subtitle=str(document.get("subtitle") or ""),
			description=str(document.get("description") or ""),
			biography=str(document.get("biography") or ""),
			life_story=str(document.get("life_story") or ""),
			born=parse_date(document.get("born")),
			died=parse_date(document.get("died")),
			born_at=Place.parse(document.get("born_at")),
			died_at=Place.parse(document.get("died_at")),
			resting_place=Place.parse(document.get("resting_place"), name_key="cemetery"),
			location=Locality.parse(document.get("location")),
			tags=tuple(str(tag) for tag in document.get("tags") or () if tag),
			media=MediaFlags.parse(document.get("media")),
			timeline=timeline,
			created_at=parse_datetime(document.get("_createdAt") or document.get("created_at")),
			privacy=str(document.get("privacy") or "public"),
			status=str(document.get("status") or "published"),
			owner_id=document.get("owner_id"),
			funeral_home=home,
			view_count=_as_int(document.get("view_count")),
			guestbook_count=_as_int(document.get("guestbook_count")),
			score=score,
		)

	def proximity_point(self, *, resting_first: bool = False) -> Optional[GeoPoint]:
		"""Coordinates used for distance: death place, then resting place, unless ``resting_first``."""
		places = (self.resting_place, self.died_at) if resting_first else (self.died_at, self.resting_place)
		for place in places:
			if place and place.coordinates:
				return place.coordinates
		return None

	@property
	def engagement(self) -> int:
		return self.view_count + 2 * self.guestbook_count

	def summary(self) -> dict[str, Any]:
		return {
			"id": self.id,
			"name": self.name,
			"slug": self.slug,
			"subtitle": self.subtitle or None,
			"description": self.description or None,
			"born": self.born.isoformat() if self.born else None,
			"died": self.died.isoformat() if self.died else None,
			"location": {
				"city": self.location.city,
				"state": self.location.state,
				"country": self.location.country,
			},
			"died_at": self.died_at.name if self.died_at and self.died_at.name else None,
			"resting_place": self.resting_place.name if self.resting_place and self.resting_place.name else None,
			"tags": list(self.tags),
			"funeral_home": (
				{"id": self.funeral_home.id, "name": self.funeral_home.name} if self.funeral_home else None
			),
			"created_at": self.created_at.isoformat() if self.created_at else None,
		}


def _as_int(value: Any) -> int:
	try:
		return max(0, int(value or 0))
	except (TypeError, ValueError):
		return 0


@dataclass(slots=True)
class SearchLogEntry:
	"""Append-only record of one executed search."""

	id: str
	query: str
	filters: dict[str, Any]
	results_count: int
	execution_time_ms: float
	session_id: str
	timestamp: datetime
	actor_id: Optional[str] = None
	user_agent: Optional[str] = None
	ip_address: Optional[str] = None

	def to_document(self) -> dict[str, Any]:
		return {
			"_id": self.id,
			"_type": "search_log",
			"_createdAt": self.timestamp.isoformat(),
			"query": self.query,
			"filters": self.filters,
			"results_count": self.results_count,
			"execution_time_ms": self.execution_time_ms,
			"actor_id": self.actor_id,
			"session_id": self.session_id,
			"user_agent": self.user_agent,
			"ip_address": self.ip_address,
			"timestamp": self.timestamp.isoformat(),
		}
