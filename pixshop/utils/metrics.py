"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
pix_payments_created_total = Counter(
    "pix_payments_created_total",
    "Total PIX payment requests issued",
    ["mode"],  # live, simulated
)

pix_status_checks_total = Counter(
    "pix_status_checks_total",
    "Total PIX status checks",
    ["mode", "status"],
)

webhook_events_total = Counter(
    "webhook_events_total",
    "Total provider webhook deliveries",
    ["event_type", "result"],  # applied, duplicate, ignored, rejected
)

purchase_transitions_total = Counter(
    "purchase_transitions_total",
    "Total applied purchase status transitions",
    ["to"],
)

content_batches_sent_total = Counter(
    "content_batches_sent_total",
    "Total content batches delivered to buyers",
)

subscription_notifications_total = Counter(
    "subscription_notifications_total",
    "Total subscription expiry warnings sent",
    ["kind"],  # 7_days, 1_day
)

subscription_messages_deleted_total = Counter(
    "subscription_messages_deleted_total",
    "Delivered messages removed on subscription expiry",
    ["result"],  # deleted, failed
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
telegram_request_duration_seconds = Histogram(
    "telegram_request_duration_seconds",
    "Telegram API request duration",
    ["method"],
    buckets=[0.1, 0.5, 1, 2, 5, 10],
)

pix_request_duration_seconds = Histogram(
    "pix_request_duration_seconds",
    "PIX provider request duration",
    ["operation"],
    buckets=[0.1, 0.5, 1, 2, 5, 15],
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
