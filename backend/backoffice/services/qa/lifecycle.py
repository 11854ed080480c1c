"""Test run lifecycle: lookup, progress, deletion, state transitions and export.

Runs are created in ``generating`` state and advanced by the execution
engine through ``running`` and ``evaluating`` to ``completed``. Any
non-terminal run may fail. Every lookup checks the run's tenant against the
caller's ``TenantContext`` before anything else happens.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import settings
from backoffice.core.context import TenantContext
from backoffice.core.errors import (
    DependencyFailure,
    Forbidden,
    InvalidState,
    NotFound,
    ValidationFailed,
)
from backoffice.models.document import Document, DocumentStatus
from backoffice.models.tenant import Tenant
from backoffice.models.test_run import TestQuestion, TestRun, TestRunPhase, TestRunStatus
from backoffice.monitoring.metrics import (
    record_report_generated,
    record_test_run_created,
    record_test_run_deleted,
    record_test_run_transition,
)
from backoffice.services.qa.report import (
    ExportFormat,
    content_type,
    generate_report,
    report_filename,
)
from backoffice.services.qa.run_config import (
    TestRunConfig,
    calculate_category_distribution,
    calculate_total_questions,
)

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class RunMetrics:
    """Results recorded when a run completes."""

    overall_score: float
    scores_by_category: dict[str, float]
    total_cost: float
    duration_seconds: int
    summary: dict[str, list[str]] | None = None


@dataclass(frozen=True, slots=True)
class QuestionDraft:
    """A generated question before it is executed."""

    category: str
    question: str
    expected_answer: str | None = None
    source_document: str | None = None
    source_page: int | None = None


@dataclass(frozen=True, slots=True)
class QuestionResult:
    """Execution and evaluation outcome of one question."""

    actual_answer: str
    score: float
    passed: bool
    evaluation: dict[str, Any] | None = None
    response_time_ms: int | None = None


def progress_percent(completed: int, total: int) -> float:
    """``completed / total * 100``, or 0 for a run with no planned questions."""
    if total <= 0:
        return 0.0
    return completed * 100 / total


def build_progress(run: TestRun) -> dict[str, Any]:
    """Polling payload for one run.

    Metrics are only included for completed runs and the error message only
    for failed runs.
    """
    status = run.run_status
    progress: dict[str, Any] = {
        "status": status.value,
        "phase": TestRunPhase.for_status(status).value,
        "completed": run.questions_completed,
        "total": run.total_questions,
        "percent": progress_percent(run.questions_completed, run.total_questions),
    }
    match status:
        case TestRunStatus.COMPLETED:
            progress.update(
                overall_score=run.overall_score,
                scores_by_category=run.scores_by_category,
                total_cost=run.total_cost,
                duration_seconds=run.duration_seconds,
            )
        case TestRunStatus.FAILED:
            progress["error_message"] = run.error_message
        case TestRunStatus.GENERATING | TestRunStatus.RUNNING | TestRunStatus.EVALUATING:
            pass
    return progress


class TestRunManager:
    """Tenant-scoped operations on QA test runs."""

    __test__ = False

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(component="test_run_manager")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_run(self, ctx: TenantContext, run_id: uuid.UUID) -> TestRun:
        """Fetch a run owned by the context's tenant.

        Raises:
            NotFound: No run with this id.
            Forbidden: The run belongs to another tenant.
        """
        run = await self.db.get(TestRun, run_id)
        if run is None:
            raise NotFound("Test run not found")
        if run.tenant_id != ctx.tenant_id:
            self.logger.warning(
                "test_run_tenant_mismatch",
                run_id=str(run_id),
                tenant_id=ctx.tenant_id,
            )
            raise Forbidden("Test run does not belong to this tenant")
        return run

    async def get_questions(
        self,
        ctx: TenantContext,
        run_id: uuid.UUID,
        category: str | None = None,
        passed: bool | None = None,
    ) -> list[TestQuestion]:
        """Questions of a run in generation order, optionally filtered."""
        await self.get_run(ctx, run_id)

        query = select(TestQuestion).where(TestQuestion.run_id == run_id)
        if category is not None:
            query = query.where(TestQuestion.category == category)
        if passed is not None:
            query = query.where(TestQuestion.passed.is_(passed))

        result = await self.db.execute(
            query.order_by(TestQuestion.position, TestQuestion.created_at)
        )
        return list(result.scalars().all())

    async def list_runs(self, ctx: TenantContext, limit: int | None = None) -> list[TestRun]:
        """Most recent runs of the tenant, newest first."""
        result = await self.db.execute(
            select(TestRun)
            .where(TestRun.tenant_id == ctx.tenant_id)
            .order_by(TestRun.created_at.desc())
            .limit(limit or settings.QA_RECENT_RUNS_LIMIT)
        )
        return list(result.scalars().all())

    async def count_completed_documents(self, ctx: TenantContext) -> int:
        count = await self.db.scalar(
            select(func.count())
            .select_from(Document)
            .where(
                Document.tenant_id == ctx.tenant_id,
                Document.processing_status == DocumentStatus.COMPLETED.value,
            )
        )
        return count or 0

    async def get_progress(self, ctx: TenantContext, run_id: uuid.UUID) -> dict[str, Any]:
        run = await self.get_run(ctx, run_id)
        return build_progress(run)

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    async def create_run(
        self, ctx: TenantContext, config: TestRunConfig | None = None
    ) -> tuple[TestRun, int]:
        """Register a new run in ``generating`` state.

        The planned question count grows with the number of processed
        documents of the tenant.

        Returns:
            Tuple of (run, completed document count).

        Raises:
            NotFound: Tenant does not exist.
        """
        if await self.db.get(Tenant, ctx.tenant_id) is None:
            raise NotFound("Tenant not found")

        config = config or TestRunConfig()
        document_count = await self.count_completed_documents(ctx)
        total = calculate_total_questions(config, document_count)
        distribution = calculate_category_distribution(total, config.categories)

        run = TestRun(
            tenant_id=ctx.tenant_id,
            status=TestRunStatus.GENERATING.value,
            config={
                **config.model_dump(mode="json"),
                "distribution": {c.value: n for c, n in distribution.items()},
            },
            total_questions=total,
            questions_completed=0,
        )
        self.db.add(run)
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise DependencyFailure("Could not create test run") from exc
        await self.db.refresh(run)

        record_test_run_created()
        self.logger.info(
            "test_run_created",
            run_id=str(run.id),
            tenant_id=ctx.tenant_id,
            total_questions=total,
            document_count=document_count,
            requested_by=ctx.principal,
        )
        return run, document_count

    # -------------------------------------------------------------------------
    # Lifecycle writes
    # -------------------------------------------------------------------------

    async def transition(
        self,
        ctx: TenantContext,
        run_id: uuid.UUID,
        target: TestRunStatus,
        *,
        metrics: RunMetrics | None = None,
        error_message: str | None = None,
    ) -> TestRun:
        """Move a run along one edge of its lifecycle.

        ``completed`` needs ``metrics``; ``failed`` needs ``error_message``.
        The update is conditional on the status read, so two writers racing
        on the same run cannot both succeed.

        Raises:
            InvalidState: The edge does not exist, or the run moved meanwhile.
            ValidationFailed: Metrics or error message missing for the target.
        """
        run = await self.get_run(ctx, run_id)
        current = run.run_status
        if not current.can_transition_to(target):
            raise InvalidState(f"Cannot move test run from {current.value} to {target.value}")

        now = datetime.now(UTC)
        values: dict[str, Any] = {"status": target.value}
        match target:
            case TestRunStatus.RUNNING:
                values["started_at"] = now
            case TestRunStatus.COMPLETED:
                if metrics is None:
                    raise ValidationFailed("Metrics are required to complete a test run")
                values.update(
                    overall_score=metrics.overall_score,
                    scores_by_category=metrics.scores_by_category,
                    total_cost=metrics.total_cost,
                    duration_seconds=metrics.duration_seconds,
                    summary=metrics.summary,
                    completed_at=now,
                )
            case TestRunStatus.FAILED:
                if not error_message:
                    raise ValidationFailed("An error message is required to fail a test run")
                values.update(error_message=error_message, completed_at=now)
            case TestRunStatus.GENERATING | TestRunStatus.EVALUATING:
                pass

        result = await self.db.execute(
            update(TestRun)
            .where(TestRun.id == run_id, TestRun.status == current.value)
            .values(**values)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise InvalidState("Test run changed state concurrently")
        await self.db.commit()
        await self.db.refresh(run)

        record_test_run_transition(target.value)
        self.logger.info(
            "test_run_transition",
            run_id=str(run_id),
            tenant_id=ctx.tenant_id,
            from_status=current.value,
            to_status=target.value,
        )
        return run

    async def add_questions(
        self, ctx: TenantContext, run_id: uuid.UUID, drafts: list[QuestionDraft]
    ) -> list[TestQuestion]:
        """Attach generated questions to a run that is still generating."""
        run = await self.get_run(ctx, run_id)
        if run.run_status is not TestRunStatus.GENERATING:
            raise InvalidState("Questions can only be added while generating")

        start = await self.db.scalar(
            select(func.coalesce(func.max(TestQuestion.position), -1)).where(
                TestQuestion.run_id == run_id
            )
        )
        questions = [
            TestQuestion(
                run_id=run_id,
                position=start + 1 + offset,
                category=draft.category,
                question=draft.question,
                expected_answer=draft.expected_answer,
                source_document=draft.source_document,
                source_page=draft.source_page,
            )
            for offset, draft in enumerate(drafts)
        ]
        self.db.add_all(questions)
        await self.db.commit()
        self.logger.info("test_questions_added", run_id=str(run_id), count=len(questions))
        return questions

    async def record_question_result(
        self,
        ctx: TenantContext,
        run_id: uuid.UUID,
        question_id: uuid.UUID,
        outcome: QuestionResult,
    ) -> TestQuestion:
        """Store one evaluated answer and bump the run's completed counter."""
        run = await self.get_run(ctx, run_id)
        if run.run_status not in (TestRunStatus.RUNNING, TestRunStatus.EVALUATING):
            raise InvalidState("Test run is not executing")

        question = await self.db.get(TestQuestion, question_id)
        if question is None or question.run_id != run_id:
            raise NotFound("Question not found")
        first_result = question.passed is None

        question.actual_answer = outcome.actual_answer
        question.score = outcome.score
        question.passed = outcome.passed
        question.evaluation = outcome.evaluation
        question.response_time_ms = outcome.response_time_ms

        if first_result:
            await self.db.execute(
                update(TestRun)
                .where(TestRun.id == run_id, TestRun.questions_completed < TestRun.total_questions)
                .values(questions_completed=TestRun.questions_completed + 1)
            )
        await self.db.commit()
        await self.db.refresh(question)
        return question

    # -------------------------------------------------------------------------
    # Deletion
    # -------------------------------------------------------------------------

    async def delete_run(self, ctx: TenantContext, run_id: uuid.UUID) -> None:
        """Delete a terminal run together with all of its questions.

        Checks run in order: existence, tenant ownership, lifecycle state.
        Nothing is written unless all three pass. Questions and run are
        removed in one transaction.

        Raises:
            NotFound: No run with this id.
            Forbidden: The run belongs to another tenant.
            InvalidState: The run is still in progress.
            DependencyFailure: The store rejected the delete.
        """
        run = await self.get_run(ctx, run_id)
        status = run.run_status
        if not status.is_terminal:
            raise InvalidState("Cannot delete a running test")

        try:
            await self.db.execute(delete(TestQuestion).where(TestQuestion.run_id == run_id))
            await self.db.execute(
                delete(TestRun).where(
                    TestRun.id == run_id,
                    TestRun.status.in_([s.value for s in TestRunStatus if s.is_terminal]),
                )
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            self.logger.error("test_run_delete_failed", run_id=str(run_id), error=str(exc))
            raise DependencyFailure("Failed to delete test run") from exc

        record_test_run_deleted(status.value)
        self.logger.info(
            "test_run_deleted",
            run_id=str(run_id),
            tenant_id=ctx.tenant_id,
            status=status.value,
        )

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    async def export_report(
        self, ctx: TenantContext, run_id: uuid.UUID, fmt: ExportFormat
    ) -> tuple[str, str, bytes]:
        """Render a completed run as PDF or CSV.

        Returns:
            Tuple of (filename, content type, report bytes).

        Raises:
            InvalidState: The run has not completed.
        """
        run = await self.get_run(ctx, run_id)
        if run.run_status is not TestRunStatus.COMPLETED:
            raise InvalidState("Test not yet completed")

        questions = await self.get_questions(ctx, run_id)
        tenant = await self.db.get(Tenant, run.tenant_id)
        tenant_name = tenant.name if tenant else ctx.tenant_id

        # Rendering is CPU bound
        data = await asyncio.to_thread(generate_report, run, questions, tenant_name, fmt)

        record_report_generated(fmt.value)
        self.logger.info(
            "test_report_generated",
            run_id=str(run_id),
            tenant_id=ctx.tenant_id,
            format=fmt.value,
            size=len(data),
        )
        return report_filename(ctx.tenant_id, run_id, fmt), content_type(fmt), data
