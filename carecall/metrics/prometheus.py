# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Prometheus metrics: single source of truth for all metric objects.
Imported by services and middleware. Never instantiated in controllers.
"""

from prometheus_client import Counter, Gauge, Histogram

# ── HTTP Metrics (used by middleware) ──
REQUEST_COUNT = Counter(
    "carecall_requests_total",
    "Total HTTP requests to the call orchestrator",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "carecall_request_duration_seconds",
    "Request latency in seconds",
    ["method", "endpoint"],
)
HTTP_ERRORS = Counter(
    "carecall_http_errors_total",
    "Total HTTP error responses",
    ["method", "endpoint", "status"],
)

# ── Provider Metrics (updated by the voice client) ──
PROVIDER_REQUEST_LATENCY = Histogram(
    "carecall_provider_request_duration_seconds",
    "Voice-AI provider round-trip time in seconds",
    ["operation"],
)
PROVIDER_ERRORS = Counter(
    "carecall_provider_errors_total",
    "Voice-AI provider failures",
    ["operation", "kind"],
)
PROVIDER_REACHABLE = Gauge(
    "carecall_provider_reachable",
    "1 if the last health probe reached the provider, else 0",
)

# ── Business Metrics (updated by service layer only) ──
SESSIONS_STARTED = Counter(
    "carecall_sessions_started_total",
    "Conversation session start attempts",
    ["outcome"],
)
SESSIONS_ACTIVE = Gauge(
    "carecall_sessions_active",
    "Conversation sessions currently in the active state",
)
SESSIONS_ENDED = Counter(
    "carecall_sessions_ended_total",
    "Conversation sessions that reached a terminal state",
    ["state", "reason"],
)
USER_TURNS = Counter(
    "carecall_user_turns_total",
    "User turns forwarded to the provider",
)
CALL_OUTCOMES = Counter(
    "carecall_call_outcomes_total",
    "Scheduled call outcomes",
    ["status"],
)
CALL_DURATION = Histogram(
    "carecall_call_duration_seconds",
    "Duration of completed calls",
    buckets=[30, 60, 120, 300, 600, 900, 1200],
)
SCHEDULES_SAVED = Counter(
    "carecall_schedules_saved_total",
    "Call schedules created or superseded",
)
ACTIVE_SCHEDULES = Gauge(
    "carecall_active_schedules",
    "Number of stored call schedules",
)
