"""
Prometheus metrics for observability
"""

import re
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.core import CollectorRegistry

# Create a custom registry to avoid conflicts
metrics_registry = CollectorRegistry()

# HTTP request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["path", "method", "status"],
    registry=metrics_registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["path", "method"],
    registry=metrics_registry,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

partner_api_requests_total = Counter(
    "partner_api_requests_total",
    "Total partner API requests",
    ["path", "status"],
    registry=metrics_registry,
)

# Webhook metrics
payment_webhook_received_total = Counter(
    "payment_webhook_received_total",
    "Total payment provider webhook requests received",
    ["event_type"],
    registry=metrics_registry,
)

payment_webhook_rejected_total = Counter(
    "payment_webhook_rejected_total",
    "Total payment provider webhook requests rejected",
    ["reason"],  # signature_invalid, timestamp_invalid, out_of_order, ...
    registry=metrics_registry,
)

payment_webhook_duplicates_total = Counter(
    "payment_webhook_duplicates_total",
    "Total payment provider webhook replays detected",
    registry=metrics_registry,
)

# Rate limiting metrics
rate_limited_total = Counter(
    "rate_limited_total",
    "Total requests rate limited",
    ["group"],  # webhook, admin, partner
    registry=metrics_registry,
)

# State machine metrics
state_transitions_total = Counter(
    "state_transitions_total",
    "Total applied state transitions",
    ["machine", "source", "target", "kind"],
    registry=metrics_registry,
)

# Fraud metrics
fraud_checks_total = Counter(
    "fraud_checks_total",
    "Total fraud engine evaluations",
    ["level", "recommendation"],
    registry=metrics_registry,
)

# Offer metrics
offer_actions_total = Counter(
    "offer_actions_total",
    "Total offer negotiation actions",
    ["action"],  # create, accept, reject, counter, expire
    registry=metrics_registry,
)


def record_http_request(
    path: str,
    method: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """
    Record HTTP request metrics.

    Args:
        path: Request path (normalized)
        method: HTTP method
        status_code: Response status code
        duration_seconds: Request duration in seconds
    """
    normalized_path = _normalize_path(path)

    http_requests_total.labels(
        path=normalized_path,
        method=method.upper(),
        status=str(status_code),
    ).inc()

    http_request_duration_seconds.labels(
        path=normalized_path,
        method=method.upper(),
    ).observe(duration_seconds)


def record_partner_request(path: str, status_code: int) -> None:
    """Record a partner API request"""
    partner_api_requests_total.labels(path=_normalize_path(path), status=str(status_code)).inc()


def record_webhook_received(event_type: str) -> None:
    """Record webhook received"""
    payment_webhook_received_total.labels(event_type=event_type).inc()


def record_webhook_rejected(reason: str) -> None:
    """
    Record webhook rejection.

    Args:
        reason: Rejection reason (signature_invalid, timestamp_invalid, out_of_order, etc.)
    """
    payment_webhook_rejected_total.labels(reason=reason).inc()


def record_webhook_duplicate() -> None:
    """Record a replayed webhook event"""
    payment_webhook_duplicates_total.inc()


def record_rate_limit_exceeded(group: str) -> None:
    """
    Record rate limit exceeded.

    Args:
        group: Endpoint group (webhook, admin, partner)
    """
    rate_limited_total.labels(group=group).inc()


def record_state_transition(machine: str, source: str, target: str, kind: str) -> None:
    """Record an applied state transition"""
    state_transitions_total.labels(machine=machine, source=source, target=target, kind=kind).inc()


def record_fraud_check(level: str, recommendation: str) -> None:
    """Record a fraud engine evaluation"""
    fraud_checks_total.labels(level=level, recommendation=recommendation).inc()


def record_offer_action(action: str) -> None:
    """Record an offer negotiation action"""
    offer_actions_total.labels(action=action).inc()


def _normalize_path(path: str) -> str:
    """
    Normalize path for metrics (replace UUIDs and IDs with placeholders).

    Examples:
        /api/offers -> /api/offers
        /api/transactions/123e4567-.../confirm -> /api/transactions/{id}/confirm
    """
    path = re.sub(
        r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
        '{id}',
        path,
        flags=re.IGNORECASE,
    )

    # Replace numeric IDs (if any remain)
    path = re.sub(r'/\d+', '/{id}', path)

    return path


def get_metrics_output() -> bytes:
    """Get Prometheus metrics output"""
    return generate_latest(metrics_registry)


__all__ = [
    "CONTENT_TYPE_LATEST",
    "get_metrics_output",
    "metrics_registry",
]
