"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
webhook_events_total = Counter(
    "tribute_webhook_events_total",
    "Tribute webhook deliveries by event name and outcome",
    ["event", "outcome"],
)

balance_changes_total = Counter(
    "balance_changes_total",
    "Balance mutations applied",
    ["reason"],
)

balance_cas_conflicts_total = Counter(
    "balance_cas_conflicts_total",
    "Balance compare-and-swap conflicts (another writer changed the balance first)",
)

tribute_requests_total = Counter(
    "tribute_requests_total",
    "Total Tribute API requests",
    ["method", "status"],
)

telegram_requests_total = Counter(
    "telegram_requests_total",
    "Total Telegram API requests",
    ["method", "status"],
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
tribute_request_duration_seconds = Histogram(
    "tribute_request_duration_seconds",
    "Tribute API request duration",
    ["method"],
    buckets=[0.1, 0.5, 1, 2, 5, 10],
)

telegram_request_duration_seconds = Histogram(
    "telegram_request_duration_seconds",
    "Telegram API request duration",
    ["method"],
    buckets=[0.1, 0.5, 1, 2, 5, 10],
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
