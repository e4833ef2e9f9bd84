from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Union, get_args

from app.domain.analytics import schemas
from app.domain.search.expressions import FilterExpression, Predicate
from app.domain.search.models import parse_datetime
from app.infra.store import ContentStore, get_store
from app.obs import metrics as obs_metrics
from app.settings import settings

logger = logging.getLogger(__name__)

Report = Union[
    schemas.OverviewReport,
    schemas.PopularReport,
    schemas.TrendsReport,
    schemas.PerformanceReport,
]

POPULAR_LIMIT = 20
TRENDING_LIMIT = 10
MIN_TERM_LENGTH = 3


def _round(value: float) -> float:
    return round(value, 2)


def _query(log: Dict[str, Any]) -> str:
    return str(log.get("query") or "")


def _results(log: Dict[str, Any]) -> int:
    try:
        return int(log.get("results_count") or 0)
    except (TypeError, ValueError):
        return 0


def _execution_ms(log: Dict[str, Any]) -> float:
    try:
        return float(log.get("execution_time_ms") or 0)
    except (TypeError, ValueError):
        return 0.0


def _created(log: Dict[str, Any]) -> Optional[datetime]:
    created = parse_datetime(log.get("_createdAt") or log.get("timestamp"))
    return created.astimezone(timezone.utc) if created else None


def overview(logs: List[Dict[str, Any]]) -> schemas.OverviewReport:
    total = len(logs)
    if total == 0:
        return schemas.OverviewReport()
    users = {log.get("actor_id") or log.get("session_id") for log in logs}
    users.discard(None)
    zero = sum(1 for log in logs if _results(log) == 0)
    daily: Counter[str] = Counter()
    for log in logs:
        created = _created(log)
        if created is not None:
            daily[created.date().isoformat()] += 1
    return schemas.OverviewReport(
        total_searches=total,
        unique_users=len(users),
        avg_results_per_search=_round(sum(_results(log) for log in logs) / total),
        zero_result_rate=_round(zero / total * 100),
        daily_trend=[schemas.DailyCount(date=day, searches=count) for day, count in sorted(daily.items())],
    )


def popular(logs: List[Dict[str, Any]]) -> schemas.PopularReport:
    # keyed by normalised text, display text is the first spelling seen
    buckets: Dict[str, Dict[str, Any]] = {}
    for log in logs:
        text = _query(log)
        key = text.strip().lower()
        if not key:
            continue
        bucket = buckets.setdefault(key, {"query": text.strip(), "count": 0, "total_results": 0})
        bucket["count"] += 1
        bucket["total_results"] += _results(log)
    ranked = sorted(buckets.values(), key=lambda bucket: -bucket["count"])[:POPULAR_LIMIT]
    return schemas.PopularReport(
        queries=[
            schemas.PopularQuery(
                query=bucket["query"],
                count=bucket["count"],
                total_results=bucket["total_results"],
                avg_results=_round(bucket["total_results"] / bucket["count"]),
            )
            for bucket in ranked
        ]
    )


def trends(logs: List[Dict[str, Any]]) -> schemas.TrendsReport:
    hourly: Counter[str] = Counter()
    terms: Counter[str] = Counter()
    for log in logs:
        created = _created(log)
        if created is not None:
            hourly[created.strftime("%Y-%m-%dT%H")] += 1
        for word in _query(log).lower().split():
            if len(word) >= MIN_TERM_LENGTH:
                terms[word] += 1
    return schemas.TrendsReport(
        hourly_trend=[schemas.HourlyCount(hour=hour, searches=count) for hour, count in sorted(hourly.items())],
        trending_terms=[
            schemas.TrendingTerm(term=term, count=count) for term, count in terms.most_common(TRENDING_LIMIT)
        ],
    )


def performance(logs: List[Dict[str, Any]]) -> schemas.PerformanceReport:
    total = len(logs)
    if total == 0:
        return schemas.PerformanceReport()
    buckets = schemas.PerformanceBuckets()
    for log in logs:
        elapsed = _execution_ms(log)
        if elapsed < 100:
            buckets.fast += 1
        elif elapsed < 500:
            buckets.medium += 1
        elif elapsed < 1000:
            buckets.slow += 1
        else:
            buckets.very_slow += 1
    lengths = [len(_query(log)) for log in logs if _query(log)]
    return schemas.PerformanceReport(
        avg_execution_time=_round(sum(_execution_ms(log) for log in logs) / total),
        performance_buckets=buckets,
        avg_query_length=_round(sum(lengths) / len(lengths)) if lengths else 0,
        total_queries=total,
    )


BUILDERS: Dict[schemas.ReportType, Callable[[List[Dict[str, Any]]], Report]] = {
    "overview": overview,
    "popular": popular,
    "trends": trends,
    "performance": performance,
}

EMPTY_REPORTS: Dict[schemas.ReportType, Callable[[], Report]] = {
    "overview": schemas.OverviewReport,
    "popular": schemas.PopularReport,
    "trends": schemas.TrendsReport,
    "performance": schemas.PerformanceReport,
}


def resolve_report_type(value: Optional[str]) -> schemas.ReportType:
    """Unknown or missing report types fall back to the overview."""
    for kind in get_args(schemas.ReportType):
        if value == kind:
            return kind
    return "overview"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SearchAnalyticsAggregator:
    """Summarises stored search logs; failures degrade to empty reports."""

    def __init__(
        self,
        *,
        store_factory: Callable[[], ContentStore] = get_store,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store_factory = store_factory
        self._now = now

    async def _logs(self, since: datetime) -> List[Dict[str, Any]]:
        expression = FilterExpression(
            doc_type="search_log",
            predicates=(Predicate("created_at", "gte", since),),
            limit=settings.analytics_max_logs,
        )
        return await self._store_factory().fetch(expression)

    async def report(self, report_type: Optional[str] = "overview", period_days: Optional[int] = None) -> Report:
        report_type = resolve_report_type(report_type)
        days = period_days if period_days is not None else settings.analytics_default_period_days
        since = self._now() - timedelta(days=days)
        try:
            logs = await self._logs(since)
            result = BUILDERS[report_type](logs)
        except Exception:
            obs_metrics.inc_analytics_report(report_type, "failed")
            logger.exception("analytics.search_report_failed type=%s", report_type)
            return EMPTY_REPORTS[report_type]()
        obs_metrics.inc_analytics_report(report_type, "ok")
        return result


def build_report(report_type: str, logs: Iterable[Dict[str, Any]]) -> Report:
    """Build a report from already-loaded logs; unknown types give the overview."""
    return BUILDERS[resolve_report_type(report_type)](list(logs))
