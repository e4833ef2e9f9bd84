"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary


REQUEST_COUNTER = Counter(
	"memorials_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"memorials_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

RATE_LIMITED_EVENTS = Counter(
	"memorials_rate_limited_total",
	"Requests rejected by rate limiting",
	["kind"],
)

SEARCH_QUERIES = Counter(
	"memorials_search_queries_total",
	"Search queries executed",
	["kind"],
)

SEARCH_LATENCY = Histogram(
	"memorials_search_latency_seconds",
	"Search latency in seconds",
	["kind"],
	buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0),
)

SEARCH_RESULTS = Histogram(
	"memorials_search_results",
	"Results returned per search page",
	["kind"],
	buckets=(0, 1, 5, 10, 20, 50, 100),
)

SEARCH_ZERO_RESULTS = Counter(
	"memorials_search_zero_results_total",
	"Searches that matched nothing",
	["kind"],
)

SUGGESTION_POOL_FAILURES = Counter(
	"memorials_suggestion_pool_failures_total",
	"Suggestion pools that failed and degraded to empty",
	["pool"],
)

OBITUARY_FEED_ENTRIES = Histogram(
	"memorials_obituary_feed_entries",
	"Entries returned by obituary feeds",
	["feed"],
	buckets=(0, 1, 5, 10, 25, 50, 100, 200),
)

SEARCH_LOG_WRITES = Counter(
	"memorials_search_log_writes_total",
	"Search log writes by outcome",
	["result"],
)

ANALYTICS_REPORTS = Counter(
	"memorials_analytics_reports_total",
	"Search analytics reports built",
	["type", "result"],
)

STORE_LATENCY = Histogram(
	"memorials_store_latency_seconds",
	"Content store operation latency",
	["operation"],
	buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

STORE_ERRORS = Counter(
	"memorials_store_errors_total",
	"Content store operations that failed or timed out",
	["operation"],
)

REDIS_UP = Gauge("memorials_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("memorials_redis_latency_seconds", "Redis ping latency (seconds)")

STORE_UP = Gauge("memorials_store_up", "Content store availability (1=up,0=down)")
STORE_PING_LATENCY = Summary("memorials_store_ping_latency_seconds", "Content store ping latency (seconds)")


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_rate_limited(kind: str) -> None:
	RATE_LIMITED_EVENTS.labels(kind=kind).inc()


def inc_search_query(kind: str) -> None:
	SEARCH_QUERIES.labels(kind=kind).inc()


def observe_search_latency(kind: str, latency_seconds: float) -> None:
	SEARCH_LATENCY.labels(kind=kind).observe(latency_seconds)


def observe_search_results(kind: str, count: int) -> None:
	SEARCH_RESULTS.labels(kind=kind).observe(count)
	if count == 0:
		SEARCH_ZERO_RESULTS.labels(kind=kind).inc()


def inc_suggestion_pool_failure(pool: str) -> None:
	SUGGESTION_POOL_FAILURES.labels(pool=pool).inc()


def observe_obituary_feed(feed: str, count: int) -> None:
	OBITUARY_FEED_ENTRIES.labels(feed=feed).observe(count)


def inc_search_log_write(result: str) -> None:
	SEARCH_LOG_WRITES.labels(result=result).inc()


def inc_analytics_report(report_type: str, result: str) -> None:
	ANALYTICS_REPORTS.labels(type=report_type, result=result).inc()


def observe_store(operation: str, latency_seconds: float) -> None:
	STORE_LATENCY.labels(operation=operation).observe(latency_seconds)


def inc_store_error(operation: str) -> None:
	STORE_ERRORS.labels(operation=operation).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if ok and latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_store(ok: bool, *, latency_seconds: float | None = None) -> None:
	STORE_UP.set(1 if ok else 0)
	if ok and latency_seconds is not None:
		STORE_PING_LATENCY.observe(latency_seconds)
