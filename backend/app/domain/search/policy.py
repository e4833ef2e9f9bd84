"""Input guards for memorial search and discovery."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional

INLINE_SUGGEST_MIN_LEN = 3


@dataclass(slots=True)
class SearchPolicyError(Exception):
	detail: str
	status_code: int = 400

	def __str__(self) -> str:  # pragma: no cover - debugging aid
		return self.detail


def require_query(value: Any) -> str:
	"""POST bodies must carry the query as a string (it may be empty)."""

	if not isinstance(value, str):
		raise SearchPolicyError("query_required")
	return value


def require_coordinates(lat: Optional[float], lng: Optional[float]) -> tuple[float, float]:
	"""Both coordinates are mandatory; zero is a valid value."""

	if lat is None or lng is None:
		raise SearchPolicyError("location_required")
	return validate_coordinates(lat, lng)


def validate_coordinates(lat: float, lng: float) -> tuple[float, float]:
	if math.isnan(lat) or math.isnan(lng):
		raise SearchPolicyError("invalid_coordinates")
	if not (-90.0 <= lat <= 90.0) or not (-180.0 <= lng <= 180.0):
		raise SearchPolicyError("invalid_coordinates")
	return lat, lng


def optional_coordinates(lat: Optional[float], lng: Optional[float]) -> Optional[tuple[float, float]]:
	"""Feed callers may omit coordinates entirely, but not send just one."""

	if lat is None and lng is None:
		return None
	if lat is None or lng is None:
		raise SearchPolicyError("incomplete_coordinates")
	return validate_coordinates(lat, lng)
