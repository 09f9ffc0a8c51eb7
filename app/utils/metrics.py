"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
generation_requests_total = Counter(
    "generation_requests_total",
    "Live generation requests by final outcome",
    ["outcome"],  # success, queued, invalid_config, download_failed, delivery_failed
)

generation_attempts_total = Counter(
    "generation_attempts_total",
    "Provider calls by outcome (success or failure type)",
    ["provider", "outcome"],
)

failed_generation_events_total = Counter(
    "failed_generation_events_total",
    "Failed-generation queue events",
    ["event"],  # enqueued, enqueue_failed, replay_succeeded, replay_failed, discarded
)

telegram_requests_total = Counter(
    "telegram_requests_total",
    "Total Telegram API requests",
    ["method", "status"],
)

media_groups_evicted_total = Counter(
    "media_groups_evicted_total",
    "Media-group batches dropped by the periodic sweep",
)

# Histograms
generation_duration_seconds = Histogram(
    "generation_duration_seconds",
    "Single provider call duration",
    ["provider"],
    buckets=[1, 5, 10, 30, 60, 120, 180],
)

telegram_request_duration_seconds = Histogram(
    "telegram_request_duration_seconds",
    "Telegram API request duration",
    ["method"],
    buckets=[0.1, 0.5, 1, 2, 5, 10],
)

# Gauges
media_groups_cached = Gauge(
    "media_groups_cached",
    "Media-group batches currently held in memory",
)

failed_generations_pending = Gauge(
    "failed_generations_pending",
    "Failed generations waiting for replay",
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
