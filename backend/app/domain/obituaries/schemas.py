"""Pydantic schemas for the obituary feeds."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from app.domain.search.schemas import MemorialSummary
from app.settings import settings

Unit = Literal["mi", "km"]
ObituarySort = Literal["date", "distance", "engagement", "relevance"]


class ObituaryQuery(BaseModel):
	lat: Optional[float] = Field(default=None, description="Caller latitude; 0 is valid")
	lng: Optional[float] = Field(default=None, description="Caller longitude; 0 is valid")
	radius: float = Field(default=settings.obituary_default_radius_miles, gt=0, le=12500)
	period: int = Field(default=settings.obituary_default_period_days, ge=1, le=3650)
	sort_by: ObituarySort = "date"
	unit: Unit = "mi"


class ObituaryFeedQuery(BaseModel):
	lat: Optional[float] = None
	lng: Optional[float] = None
	max_distance: Optional[float] = Field(default=None, gt=0, le=12500)
	limit: int = Field(default=20, ge=1, le=100)
	unit: Unit = "mi"


class ObituaryEntry(MemorialSummary):
	distance: Optional[float] = Field(default=None, description="Distance in the requested unit")
	days_ago: int = Field(..., ge=0)
	engagement: int = Field(..., ge=0)
	recency_score: float = Field(..., ge=0.0, le=1.0)
	proximity_score: float = Field(..., ge=0.0, le=1.0)
	relevance: float = Field(..., ge=0.0, le=1.0)


class CallerLocation(BaseModel):
	lat: float
	lng: float


class ObituaryFilters(BaseModel):
	radius: float
	period: int
	sort_by: ObituarySort
	unit: Unit


class ObituaryResponse(BaseModel):
	obituaries: list[ObituaryEntry]
	count: int
	location: CallerLocation
	filters: ObituaryFilters


class ObituaryFeedResponse(BaseModel):
	obituaries: list[ObituaryEntry]
	count: int
	location: Optional[CallerLocation] = None
	max_distance: float
	unit: Unit
