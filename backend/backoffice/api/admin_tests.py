"""Admin API routes for tenant QA test runs.

Provides endpoints for starting, inspecting, polling, exporting and
deleting test runs, managing hand-written question templates, plus the
cross-tenant overview.
"""

import uuid
from datetime import datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.common import attachment_headers, parse_uuid
from backoffice.core.auth import CurrentAdmin, admin_context
from backoffice.db.session import get_db
from backoffice.models.test_run import TestQuestion, TestRun
from backoffice.services.qa.lifecycle import TestRunManager
from backoffice.services.qa.overview import get_global_qa_stats, get_tenants_test_overview
from backoffice.services.qa.report import ExportFormat
from backoffice.services.qa.run_config import TestRunConfig
from backoffice.services.qa.templates import (
    TestTemplateCreate,
    TestTemplateService,
    TestTemplateUpdate,
)

router = APIRouter(prefix="/api/v1/admin/tests", tags=["admin-tests"])
logger = structlog.get_logger()


# =============================================================================
# Pydantic Schemas
# =============================================================================


class TestRunResponse(BaseModel):
    """Test run response."""

    __test__ = False

    id: uuid.UUID
    tenant_id: str
    status: str
    config: dict[str, Any]
    total_questions: int
    questions_completed: int
    overall_score: float | None
    scores_by_category: dict[str, float] | None
    total_cost: float | None
    duration_seconds: int | None
    summary: dict[str, list[str]] | None
    error_message: str | None
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None

    model_config = {"from_attributes": True}


class TestQuestionResponse(BaseModel):
    """Test question response."""

    __test__ = False

    id: uuid.UUID
    position: int
    category: str
    question: str
    expected_answer: str | None
    actual_answer: str | None
    score: float | None
    passed: bool | None
    evaluation: dict[str, Any] | None
    source_document: str | None
    source_page: int | None
    response_time_ms: int | None

    model_config = {"from_attributes": True}


class TestRunListResponse(BaseModel):
    tenant_id: str
    test_runs: list[TestRunResponse]
    document_count: int


class TestRunCreatedResponse(BaseModel):
    test_run: TestRunResponse
    estimated_questions: int
    document_count: int


class TestRunDetailResponse(BaseModel):
    test_run: TestRunResponse
    questions: list[TestQuestionResponse] | None = None
    question_count: int | None = None


class TestTemplateResponse(BaseModel):
    """Test template response."""

    __test__ = False

    id: uuid.UUID
    tenant_id: str
    category: str
    question: str
    expected_answer: str | None
    expected_sources: list[dict[str, Any]] | None
    language: str
    is_active: bool
    notes: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TestTemplateListResponse(BaseModel):
    templates: list[TestTemplateResponse]


class TenantTestOverview(BaseModel):
    tenant_id: str
    tenant_name: str
    last_test_date: datetime | None
    last_score: float | None
    test_count: int
    total_test_cost: float
    avg_score: float | None
    is_active: bool


class TestsOverviewResponse(BaseModel):
    tenants: list[TenantTestOverview]


class GlobalQAStatsResponse(BaseModel):
    total_tests: int
    total_cost: float
    avg_score: float | None
    tests_this_week: int


def _run_response(run: TestRun) -> TestRunResponse:
    return TestRunResponse.model_validate(run)


def _question_responses(questions: list[TestQuestion]) -> list[TestQuestionResponse]:
    return [TestQuestionResponse.model_validate(q) for q in questions]


# =============================================================================
# Overview Endpoints
# =============================================================================


@router.get("/overview", response_model=TestsOverviewResponse)
async def tests_overview(
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> TestsOverviewResponse:
    """Completed-test summary for every tenant."""
    tenants = await get_tenants_test_overview(db)
    return TestsOverviewResponse(tenants=[TenantTestOverview(**row) for row in tenants])


@router.get("/stats", response_model=GlobalQAStatsResponse)
async def tests_stats(
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> GlobalQAStatsResponse:
    """Totals over all completed test runs."""
    return GlobalQAStatsResponse(**await get_global_qa_stats(db))


# =============================================================================
# Template Endpoints
# =============================================================================


@router.get("/{tenant_id}/templates", response_model=TestTemplateListResponse)
async def list_test_templates(
    tenant_id: str,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
    active_only: bool = Query(default=False),
) -> TestTemplateListResponse:
    """Hand-written QA questions of a tenant, newest first."""
    ctx = admin_context(tenant_id, admin)
    templates = await TestTemplateService(db).list_templates(ctx, active_only=active_only)
    return TestTemplateListResponse(
        templates=[TestTemplateResponse.model_validate(t) for t in templates]
    )


@router.post(
    "/{tenant_id}/templates",
    response_model=TestTemplateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_test_template(
    tenant_id: str,
    data: TestTemplateCreate,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> TestTemplateResponse:
    ctx = admin_context(tenant_id, admin)
    template = await TestTemplateService(db).create_template(ctx, data)
    return TestTemplateResponse.model_validate(template)


@router.put("/{tenant_id}/templates/{template_id}", response_model=TestTemplateResponse)
async def update_test_template(
    tenant_id: str,
    template_id: str,
    data: TestTemplateUpdate,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> TestTemplateResponse:
    """Apply the fields present in the body; ``is_active`` toggles the template."""
    ctx = admin_context(tenant_id, admin)
    template = await TestTemplateService(db).update_template(
        ctx, parse_uuid(template_id, "template ID"), data
    )
    return TestTemplateResponse.model_validate(template)


@router.delete("/{tenant_id}/templates/{template_id}")
async def delete_test_template(
    tenant_id: str,
    template_id: str,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> dict[str, bool]:
    ctx = admin_context(tenant_id, admin)
    await TestTemplateService(db).delete_template(ctx, parse_uuid(template_id, "template ID"))
    return {"success": True}


# =============================================================================
# Test Run Endpoints
# =============================================================================


@router.get("/{tenant_id}", response_model=TestRunListResponse)
async def list_test_runs(
    tenant_id: str,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
    limit: int = Query(default=20, ge=1, le=100),
) -> TestRunListResponse:
    """Recent test runs of a tenant with its processed document count."""
    ctx = admin_context(tenant_id, admin)
    manager = TestRunManager(db)
    runs = await manager.list_runs(ctx, limit=limit)
    document_count = await manager.count_completed_documents(ctx)
    return TestRunListResponse(
        tenant_id=tenant_id,
        test_runs=[_run_response(run) for run in runs],
        document_count=document_count,
    )


@router.post(
    "/{tenant_id}",
    response_model=TestRunCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_test_run(
    tenant_id: str,
    admin: CurrentAdmin,
    config: TestRunConfig | None = None,
    db: AsyncSession = Depends(get_db),
) -> TestRunCreatedResponse:
    """Register a new test run in ``generating`` state for the execution engine."""
    ctx = admin_context(tenant_id, admin)
    run, document_count = await TestRunManager(db).create_run(ctx, config)
    return TestRunCreatedResponse(
        test_run=_run_response(run),
        estimated_questions=run.total_questions,
        document_count=document_count,
    )


@router.get("/{tenant_id}/{run_id}", response_model=TestRunDetailResponse)
async def get_test_run(
    tenant_id: str,
    run_id: str,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
    include_questions: bool = Query(default=True),
    category: str | None = Query(default=None),
    passed: bool | None = Query(default=None),
) -> TestRunDetailResponse:
    """Run detail, optionally with its questions filtered by category or outcome."""
    ctx = admin_context(tenant_id, admin)
    run_uuid = parse_uuid(run_id, "run ID")
    manager = TestRunManager(db)

    run = await manager.get_run(ctx, run_uuid)
    if not include_questions:
        return TestRunDetailResponse(test_run=_run_response(run))

    questions = await manager.get_questions(ctx, run_uuid, category=category, passed=passed)
    return TestRunDetailResponse(
        test_run=_run_response(run),
        questions=_question_responses(questions),
        question_count=len(questions),
    )


@router.delete("/{tenant_id}/{run_id}")
async def delete_test_run(
    tenant_id: str,
    run_id: str,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> dict[str, bool]:
    """Delete a finished test run and its questions."""
    ctx = admin_context(tenant_id, admin)
    await TestRunManager(db).delete_run(ctx, parse_uuid(run_id, "run ID"))
    return {"success": True}


@router.get("/{tenant_id}/{run_id}/progress")
async def get_test_run_progress(
    tenant_id: str,
    run_id: str,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Polling endpoint: status, phase and question progress of a run."""
    ctx = admin_context(tenant_id, admin)
    return await TestRunManager(db).get_progress(ctx, parse_uuid(run_id, "run ID"))


@router.get("/{tenant_id}/{run_id}/report")
async def download_test_report(
    tenant_id: str,
    run_id: str,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
    format: ExportFormat = Query(default=ExportFormat.PDF),  # noqa: A002
) -> Response:
    """Download the PDF or CSV report of a completed run."""
    ctx = admin_context(tenant_id, admin)
    filename, media_type, data = await TestRunManager(db).export_report(
        ctx, parse_uuid(run_id, "run ID"), format
    )
    return Response(content=data, media_type=media_type, headers=attachment_headers(filename))
