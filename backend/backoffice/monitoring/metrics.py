"""Prometheus metrics for back-office operations.

Provides counters for test runs, reports, invoices and blob cleanup.
Feature-flagged via ENABLE_PROMETHEUS_METRICS.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    generate_latest,
)

from backoffice.core.config import settings

logger = structlog.get_logger()

# Create custom registry to avoid conflicts
REGISTRY = CollectorRegistry(auto_describe=True)

TEST_RUNS_CREATED = Counter(
    "backoffice_test_runs_created_total",
    "Total number of QA test runs created",
    registry=REGISTRY,
)

TEST_RUNS_DELETED = Counter(
    "backoffice_test_runs_deleted_total",
    "Total number of QA test runs deleted",
    ["status"],
    registry=REGISTRY,
)

TEST_RUN_TRANSITIONS = Counter(
    "backoffice_test_run_transitions_total",
    "Test run status transitions",
    ["to_status"],
    registry=REGISTRY,
)

REPORTS_GENERATED = Counter(
    "backoffice_reports_generated_total",
    "QA reports generated",
    ["format"],
    registry=REGISTRY,
)

INVOICES_UPLOADED = Counter(
    "backoffice_invoices_uploaded_total",
    "Invoices uploaded",
    registry=REGISTRY,
)

BLOB_CLEANUP_FAILURES = Counter(
    "backoffice_blob_cleanup_failures_total",
    "Blob compensation or cleanup steps that failed",
    ["step"],
    registry=REGISTRY,
)


def record_test_run_created() -> None:
    if not settings.ENABLE_PROMETHEUS_METRICS:
        return

    TEST_RUNS_CREATED.inc()
    logger.debug("metric_test_run_created")


def record_test_run_deleted(status: str) -> None:
    """Record a test run deletion.

    Args:
        status: Terminal status the run had when deleted.
    """
    if not settings.ENABLE_PROMETHEUS_METRICS:
        return

    TEST_RUNS_DELETED.labels(status=status).inc()
    logger.debug("metric_test_run_deleted", status=status)


def record_test_run_transition(to_status: str) -> None:
    if not settings.ENABLE_PROMETHEUS_METRICS:
        return

    TEST_RUN_TRANSITIONS.labels(to_status=to_status).inc()


def record_report_generated(fmt: str) -> None:
    """Record a generated QA report.

    Args:
        fmt: Export format, pdf or csv.
    """
    if not settings.ENABLE_PROMETHEUS_METRICS:
        return

    REPORTS_GENERATED.labels(format=fmt).inc()
    logger.debug("metric_report_generated", format=fmt)


def record_invoice_uploaded() -> None:
    if not settings.ENABLE_PROMETHEUS_METRICS:
        return

    INVOICES_UPLOADED.inc()


def record_blob_cleanup_failed(step: str) -> None:
    """Record a compensation or cleanup step that failed.

    Args:
        step: Operation whose cleanup failed, e.g. invoice_upload.
    """
    if not settings.ENABLE_PROMETHEUS_METRICS:
        return

    BLOB_CLEANUP_FAILURES.labels(step=step).inc()
    logger.debug("metric_blob_cleanup_failed", step=step)


def get_metrics_router() -> APIRouter:
    """Get router with /metrics endpoint.

    Returns:
        FastAPI router with Prometheus metrics endpoint.
    """
    router = APIRouter()

    @router.get("/metrics")
    async def metrics() -> Response:
        """Prometheus metrics endpoint."""
        if not settings.ENABLE_PROMETHEUS_METRICS:
            return Response(
                content="Prometheus metrics disabled",
                status_code=503,
            )

        return Response(
            content=generate_latest(REGISTRY),
            media_type=CONTENT_TYPE_LATEST,
        )

    return router


__all__ = [
    "BLOB_CLEANUP_FAILURES",
    "INVOICES_UPLOADED",
    "REPORTS_GENERATED",
    "TEST_RUNS_CREATED",
    "TEST_RUNS_DELETED",
    "TEST_RUN_TRANSITIONS",
    "get_metrics_router",
    "record_blob_cleanup_failed",
    "record_invoice_uploaded",
    "record_report_generated",
    "record_test_run_created",
    "record_test_run_deleted",
    "record_test_run_transition",
]
