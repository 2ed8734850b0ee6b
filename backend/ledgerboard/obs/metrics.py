"""Central registry for Prometheus metrics used across the service."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"ledgerboard_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"ledgerboard_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)

INDEXER_EVENTS = Counter(
	"ledgerboard_indexer_events_total",
	"Ledger events applied to a ranking",
	["stream"],
)

INDEXER_CHUNKS = Counter(
	"ledgerboard_indexer_chunks_total",
	"Block chunks committed together with their watermark",
	["stream"],
)

INDEXER_FAILURES = Counter(
	"ledgerboard_indexer_failures_total",
	"Indexer invocations aborted mid-range",
	["stream", "reason"],
)

INDEXER_WATERMARK = Gauge(
	"ledgerboard_indexer_watermark_height",
	"Last committed block height per stream",
	["stream"],
)

SNAPSHOTS_WRITTEN = Counter(
	"ledgerboard_snapshots_written_total",
	"Weekly snapshots materialised",
)

SNAPSHOT_CONFLICTS = Counter(
	"ledgerboard_snapshot_conflicts_total",
	"Snapshot transactions abandoned because a concurrent finalizer won",
)

DISPATCH_OUTCOMES = Counter(
	"ledgerboard_dispatch_outcomes_total",
	"Notification delivery attempts by outcome",
	["outcome"],
)

DISPATCH_STALE_PRUNED = Counter(
	"ledgerboard_dispatch_stale_pruned_total",
	"Due-index members removed because no subscription backed them",
)

SUBSCRIPTION_CHANGES = Counter(
	"ledgerboard_subscription_changes_total",
	"Subscription lifecycle changes",
	["action"],
)

REDIS_UP = Gauge(
	"ledgerboard_redis_up",
	"Redis readiness as seen by the last health probe",
)

REDIS_LATENCY = Histogram(
	"ledgerboard_redis_ping_seconds",
	"Redis ping latency",
	buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_indexer_events(stream: str, count: int) -> None:
	if count:
		INDEXER_EVENTS.labels(stream=stream).inc(count)


def mark_chunk_committed(stream: str, height: int) -> None:
	INDEXER_CHUNKS.labels(stream=stream).inc()
	INDEXER_WATERMARK.labels(stream=stream).set(height)


def inc_indexer_failure(stream: str, reason: str) -> None:
	INDEXER_FAILURES.labels(stream=stream, reason=reason).inc()


def inc_snapshot_written() -> None:
	SNAPSHOTS_WRITTEN.inc()


def inc_snapshot_conflict() -> None:
	SNAPSHOT_CONFLICTS.inc()


def inc_dispatch_outcome(outcome: str) -> None:
	DISPATCH_OUTCOMES.labels(outcome=outcome).inc()


def inc_stale_pruned() -> None:
	DISPATCH_STALE_PRUNED.inc()


def inc_subscription_change(action: str) -> None:
	SUBSCRIPTION_CHANGES.labels(action=action).inc()


def mark_redis(ok: bool, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)
