"""Prometheus metric inventory.

Every metric the service exposes is declared here; the modules that own
the behavior import the metric and increment it at the point of action.
Scraped from GET /metrics.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Auth / organization metrics
# ---------------------------------------------------------------------------

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting",
    ["scope"],  # org_signup | otp_send | otp_sign_in
)

ORG_SIGNUPS = Counter(
    "org_signups_total",
    "Organization signup attempts by outcome",
    ["outcome"],  # created | rate_limited | invalid | conflict | unnotified | error
)

VERIFICATION_ATTEMPTS = Counter(
    "verification_attempts_total",
    "One-time code exchanges by flow and outcome",
    ["flow", "outcome"],  # flow: org_signup | sign_in; outcome: ok | invalid
)

EMAIL_DISPATCH = Counter(
    "email_dispatch_total",
    "Outgoing emails by kind and result",
    ["kind", "result"],  # kind: welcome | otp | invitation; result: sent | failed
)

SESSIONS_ISSUED = Counter(
    "sessions_issued_total",
    "Sessions minted by sign-in method",
    ["method"],  # email_otp | github | org_signup
)
