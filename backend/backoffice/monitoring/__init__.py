"""Monitoring module for Prometheus metrics."""

from backoffice.monitoring.metrics import (
    BLOB_CLEANUP_FAILURES,
    INVOICES_UPLOADED,
    REPORTS_GENERATED,
    TEST_RUN_TRANSITIONS,
    TEST_RUNS_CREATED,
    TEST_RUNS_DELETED,
    get_metrics_router,
    record_blob_cleanup_failed,
    record_invoice_uploaded,
    record_report_generated,
    record_test_run_created,
    record_test_run_deleted,
    record_test_run_transition,
)

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
