"""QA test run services."""

from backoffice.services.qa.lifecycle import (
    QuestionDraft,
    QuestionResult,
    RunMetrics,
    TestRunManager,
    build_progress,
    progress_percent,
)
from backoffice.services.qa.overview import get_global_qa_stats, get_tenants_test_overview
from backoffice.services.qa.report import (
    ExportFormat,
    content_type,
    generate_report,
    report_filename,
)
from backoffice.services.qa.run_config import (
    DEFAULT_CATEGORY_DISTRIBUTION,
    QuestionCategory,
    Strictness,
    TestRunConfig,
    calculate_category_distribution,
    calculate_total_questions,
)

__all__ = [
    "DEFAULT_CATEGORY_DISTRIBUTION",
    "ExportFormat",
    "QuestionCategory",
    "QuestionDraft",
    "QuestionResult",
    "RunMetrics",
    "Strictness",
    "TestRunConfig",
    "TestRunManager",
    "build_progress",
    "calculate_category_distribution",
    "calculate_total_questions",
    "content_type",
    "generate_report",
    "get_global_qa_stats",
    "get_tenants_test_overview",
    "progress_percent",
    "report_filename",
]
