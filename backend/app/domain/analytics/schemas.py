from typing import List, Literal

from pydantic import BaseModel, Field

ReportType = Literal["overview", "popular", "trends", "performance"]


class DailyCount(BaseModel):
    date: str
    searches: int


class OverviewReport(BaseModel):
    total_searches: int = 0
    unique_users: int = 0
    avg_results_per_search: float = 0
    zero_result_rate: float = 0
    daily_trend: List[DailyCount] = Field(default_factory=list)


class PopularQuery(BaseModel):
    query: str
    count: int
    total_results: int
    avg_results: float


class PopularReport(BaseModel):
    queries: List[PopularQuery] = Field(default_factory=list)


class HourlyCount(BaseModel):
    hour: str
    searches: int


class TrendingTerm(BaseModel):
    term: str
    count: int


class TrendsReport(BaseModel):
    hourly_trend: List[HourlyCount] = Field(default_factory=list)
    trending_terms: List[TrendingTerm] = Field(default_factory=list)


class PerformanceBuckets(BaseModel):
    fast: int = 0
    medium: int = 0
    slow: int = 0
    very_slow: int = 0


class PerformanceReport(BaseModel):
    avg_execution_time: float = 0
    performance_buckets: PerformanceBuckets = Field(default_factory=PerformanceBuckets)
    avg_query_length: float = 0
    total_queries: int = 0
