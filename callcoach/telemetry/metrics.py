"""Prometheus metrics definitions and helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests processed",
    ("method", "route", "status"),
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ("method", "route"),
    buckets=(
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
    ),
)

ERROR_COUNTER = Counter(
    "app_internal_errors_total",
    "Number of requests ending in internal server error responses",
    ("method", "route"),
)

STAGE_EVENTS = Counter(
    "pipeline_stage_events_total",
    "Pipeline stage lifecycle events",
    ("stage", "outcome"),
)

STAGE_DURATION = Histogram(
    "pipeline_stage_duration_seconds",
    "Wall-clock duration of pipeline stage work",
    ("stage", "outcome"),
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)

PROVIDER_REQUESTS = Counter(
    "provider_requests_total",
    "Requests sent to AI providers",
    ("provider", "model", "outcome"),
)

PROVIDER_RETRIES = Counter(
    "provider_retries_total",
    "Provider request retries after transient failures",
    ("provider", "reason"),
)

INTERPRETER_RESULTS = Counter(
    "interpreter_results_total",
    "Provider responses by how they were interpreted",
    ("task", "provenance"),
)


def observe_request(
    method: str,
    route: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record metrics for a completed HTTP request."""

    safe_route = route or "unknown"
    safe_method = method or "UNKNOWN"
    status_label = str(status_code)
    observed_duration = duration_seconds if duration_seconds >= 0 else 0

    REQUEST_COUNT.labels(
        method=safe_method,
        route=safe_route,
        status=status_label,
    ).inc()
    REQUEST_LATENCY.labels(
        method=safe_method,
        route=safe_route,
    ).observe(observed_duration)

    if status_code >= 500:
        ERROR_COUNTER.labels(
            method=safe_method,
            route=safe_route,
        ).inc()


def record_stage_event(stage: str, outcome: str, duration_seconds: float | None = None) -> None:
    """Count a stage lifecycle event and, for finished work, its duration."""

    STAGE_EVENTS.labels(stage=stage, outcome=outcome).inc()
    if duration_seconds is not None:
        STAGE_DURATION.labels(stage=stage, outcome=outcome).observe(
            max(duration_seconds, 0)
        )


def record_provider_request(provider: str, model: str, outcome: str) -> None:
    PROVIDER_REQUESTS.labels(provider=provider, model=model, outcome=outcome).inc()


def record_provider_retry(provider: str, reason: str) -> None:
    PROVIDER_RETRIES.labels(provider=provider, reason=reason).inc()


def record_interpretation(task: str, provenance: str) -> None:
    INTERPRETER_RESULTS.labels(task=task, provenance=provenance).inc()
