"""Central registry for Prometheus metrics used across the service."""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, Histogram, Summary

log = logging.getLogger(__name__)


REQUEST_COUNTER = Counter(
	"hexfeed_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"hexfeed_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

QUERIES = Counter(
	"hexfeed_queries_total",
	"Feed and search queries executed",
	["kind"],
)

QUERY_LATENCY = Histogram(
	"hexfeed_query_latency_seconds",
	"Feed and search latency in seconds",
	["kind"],
	buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

CHUNK_QUERIES = Counter(
	"hexfeed_chunk_queries_total",
	"Store chunk queries by outcome",
	["outcome"],
)

CHUNKS_PER_REQUEST = Histogram(
	"hexfeed_chunks_per_request",
	"Store chunk queries issued per request",
	buckets=(1, 2, 3, 5, 8, 13, 20, 30, 50),
)

RESULTS_RETURNED = Summary(
	"hexfeed_results_returned",
	"Posts returned per request",
	["kind"],
)

RATE_LIMITED_EVENTS = Counter(
	"hexfeed_rate_limited_total",
	"Requests rejected due to rate limiting",
	["kind"],
)

GEOCODE_REQUESTS = Counter(
	"hexfeed_geocode_requests_total",
	"Geocode proxy requests by result",
	["result"],
)

REDIS_UP = Gauge("hexfeed_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("hexfeed_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("hexfeed_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("hexfeed_postgres_latency_seconds", "Postgres ping latency (seconds)")


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_query(kind: str) -> None:
	QUERIES.labels(kind=kind).inc()


def observe_query_latency(kind: str, latency_seconds: float) -> None:
	QUERY_LATENCY.labels(kind=kind).observe(latency_seconds)


def inc_chunk(outcome: str, count: int = 1) -> None:
	if count > 0:
		CHUNK_QUERIES.labels(outcome=outcome).inc(count)


def observe_chunks(count: int) -> None:
	CHUNKS_PER_REQUEST.observe(count)


def observe_results(kind: str, count: int) -> None:
	RESULTS_RETURNED.labels(kind=kind).observe(count)


def inc_rate_limited(kind: str) -> None:
	RATE_LIMITED_EVENTS.labels(kind=kind).inc()


def inc_geocode(result: str) -> None:
	GEOCODE_REQUESTS.labels(result=result).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)
