"""Prometheus metric definitions for the engine."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


match_requests_total = Counter(
    "match_requests_total",
    "Total match ranking calls",
    ["service", "subject_type"],
)
match_latency_seconds = Histogram(
    "match_latency_seconds",
    "Match ranking latency seconds",
    ["service", "subject_type"],
)
match_candidates_scored_total = Counter(
    "match_candidates_scored_total",
    "Candidates scored across all match calls",
    ["service"],
)
request_transitions_total = Counter(
    "request_transitions_total",
    "Rental request transition attempts by outcome",
    ["service", "action", "outcome"],
)
transition_conflicts_total = Counter(
    "transition_conflicts_total",
    "Optimistic concurrency conflicts on request writes",
    ["service", "action"],
)
retries_total = Counter("retries_total", "Retry count", ["service", "dependency"])
payouts_settled_total = Counter("payouts_settled_total", "Payments settled to merchants", ["service"])
payout_runs_total = Counter("payout_runs_total", "Payout settlement runs by outcome", ["service", "outcome"])
duplicate_events_skipped_total = Counter(
    "duplicate_events_skipped_total",
    "Duplicate payment events skipped",
    ["service", "topic"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
