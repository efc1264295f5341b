"""
Prometheus metrics for ingestion, forecasting and grading.

Labels are restricted to LOW-CARDINALITY values only:
- provider:     "goalserve", "football_data", "api_football"
- mode:         "upcoming", "results", "history"
- status_code:  "200", "404", "429", "500", "0"
- error_code:   "timeout", "transport", "http_4xx", "http_5xx", "rate_limit"
- model:        configured oracle model ids (bounded by FORECAST_MODELS)
- outcome:      "won", "lost"

Fixture ids, team names, URLs and raw errors belong in logs, never in labels.

Recorders are best-effort: a failing metric call logs a warning and
returns, it never interrupts a run.
"""

import logging

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY,
)

logger = logging.getLogger(__name__)

# =============================================================================
# INGESTION METRICS
# =============================================================================

provider_requests_total = Counter(
    "fixturecast_provider_requests_total",
    "Total HTTP requests to fixture providers",
    ["provider", "status_code"],
)

provider_errors_total = Counter(
    "fixturecast_provider_errors_total",
    "Total failed provider requests",
    ["provider", "error_code"],
)

provider_latency_ms = Histogram(
    "fixturecast_provider_latency_ms",
    "Provider request latency in milliseconds",
    ["provider"],
    buckets=[10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 20000],
)

ingestion_runs_total = Counter(
    "fixturecast_ingestion_runs_total",
    "Ingestion runs by mode, winning provider and status",
    ["mode", "provider", "status"],  # provider "none" when every provider failed
)

ingestion_fixtures_total = Counter(
    "fixturecast_ingestion_fixtures_total",
    "Fixtures processed by ingestion runs",
    ["mode", "result"],  # result: created/updated/skipped
)

# =============================================================================
# ORACLE METRICS
# =============================================================================

llm_requests_total = Counter(
    "fixturecast_llm_requests_total",
    "Oracle requests by model and status",
    ["model", "status"],  # status: ok/error/invalid
)

llm_latency_ms = Histogram(
    "fixturecast_llm_latency_ms",
    "Oracle request latency in milliseconds",
    ["model"],
    buckets=[500, 1000, 2000, 3000, 5000, 10000, 20000, 30000, 60000, 120000],
)

forecasts_total = Counter(
    "fixturecast_forecasts_total",
    "Forecasts produced by the generator",
    ["result"],  # accepted/filtered/invalid
)

# =============================================================================
# GRADING + JOBS
# =============================================================================

grades_total = Counter(
    "fixturecast_grades_total",
    "Forecasts graded",
    ["outcome"],
)

job_runs_total = Counter(
    "fixturecast_job_runs_total",
    "Triggered job runs by job and status",
    ["job", "status"],
)

job_duration_ms = Histogram(
    "fixturecast_job_duration_ms",
    "Triggered job duration in milliseconds",
    ["job"],
    buckets=[100, 500, 1000, 5000, 10000, 30000, 60000, 300000, 600000],
)


# =============================================================================
# HELPER FUNCTIONS (for instrumentation)
# =============================================================================


def record_provider_request(provider: str, status_code: int, latency_ms: float) -> None:
    """Record a provider request with its latency."""
    try:
        provider_requests_total.labels(provider=provider, status_code=str(status_code)).inc()
        provider_latency_ms.labels(provider=provider).observe(latency_ms)
    except Exception as e:
        logger.warning(f"Failed to record provider request metric: {e}")


def record_provider_error(provider: str, error_code: str) -> None:
    """Record a provider error."""
    try:
        provider_errors_total.labels(provider=provider, error_code=error_code).inc()
    except Exception as e:
        logger.warning(f"Failed to record provider error metric: {e}")


def record_ingestion_run(mode: str, provider: str | None, status: str, created: int = 0,
                         updated: int = 0, skipped: int = 0) -> None:
    try:
        ingestion_runs_total.labels(mode=mode, provider=provider or "none", status=status).inc()
        if created:
            ingestion_fixtures_total.labels(mode=mode, result="created").inc(created)
        if updated:
            ingestion_fixtures_total.labels(mode=mode, result="updated").inc(updated)
        if skipped:
            ingestion_fixtures_total.labels(mode=mode, result="skipped").inc(skipped)
    except Exception as e:
        logger.warning(f"Failed to record ingestion run metric: {e}")


def record_llm_request(model: str, status: str, latency_ms: float) -> None:
    """
    Record one oracle request.

    Args:
        model: Model id that served (or failed) the request
        status: "ok", "error", "invalid"
        latency_ms: End-to-end latency in milliseconds
    """
    try:
        llm_requests_total.labels(model=model, status=status).inc()
        if status != "error" and latency_ms > 0:
            llm_latency_ms.labels(model=model).observe(latency_ms)
    except Exception as e:
        logger.warning(f"Failed to record LLM request metric: {e}")


def record_forecasts(accepted: int = 0, filtered: int = 0, invalid: int = 0) -> None:
    try:
        if accepted:
            forecasts_total.labels(result="accepted").inc(accepted)
        if filtered:
            forecasts_total.labels(result="filtered").inc(filtered)
        if invalid:
            forecasts_total.labels(result="invalid").inc(invalid)
    except Exception as e:
        logger.warning(f"Failed to record forecast metric: {e}")


def record_grade(outcome: str) -> None:
    try:
        grades_total.labels(outcome=outcome).inc()
    except Exception as e:
        logger.warning(f"Failed to record grade metric: {e}")


def record_job_outcome(job: str, status: str, duration_ms: float) -> None:
    try:
        job_runs_total.labels(job=job, status=status).inc()
        job_duration_ms.labels(job=job).observe(duration_ms)
    except Exception as e:
        logger.warning(f"Failed to record job run metric: {e}")


def get_metrics_text() -> tuple[str, str]:
    """
    Generate Prometheus metrics text output.

    Returns:
        Tuple of (content, content_type)
    """
    return generate_latest(REGISTRY).decode("utf-8"), CONTENT_TYPE_LATEST
