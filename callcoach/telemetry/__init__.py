"""Telemetry helpers and metrics."""

from .metrics import (
    ERROR_COUNTER,
    INTERPRETER_RESULTS,
    PROVIDER_REQUESTS,
    PROVIDER_RETRIES,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    STAGE_DURATION,
    STAGE_EVENTS,
    observe_request,
    record_interpretation,
    record_provider_request,
    record_provider_retry,
    record_stage_event,
)

__all__ = [
    "ERROR_COUNTER",
    "INTERPRETER_RESULTS",
    "PROVIDER_REQUESTS",
    "PROVIDER_RETRIES",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "STAGE_DURATION",
    "STAGE_EVENTS",
    "observe_request",
    "record_interpretation",
    "record_provider_request",
    "record_provider_retry",
    "record_stage_event",
]
