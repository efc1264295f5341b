"""
Telemetry Module

Provides Prometheus metrics for:
- Provider ingestion (requests, errors, latency, runs)
- Oracle requests and forecast filtering
- Grading and triggered job runs
"""

from fixturecast.telemetry.metrics import (
    record_provider_request,
    record_provider_error,
    record_ingestion_run,
    record_llm_request,
    record_forecasts,
    record_grade,
    record_job_outcome,
    get_metrics_text,
)

__all__ = [
    "record_provider_request",
    "record_provider_error",
    "record_ingestion_run",
    "record_llm_request",
    "record_forecasts",
    "record_grade",
    "record_job_outcome",
    "get_metrics_text",
]
