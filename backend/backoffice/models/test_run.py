"""TestRun and TestQuestion models for tenant QA test runs.

A test run is one automated QA evaluation of a tenant's chat product. It is
created in ``generating`` state by the run initiator and advanced in place by
the execution engine until it reaches ``completed`` or ``failed``.
"""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON, Uuid

from backoffice.db.base import Base

if TYPE_CHECKING:
    from backoffice.models.tenant import Tenant


class TestRunStatus(str, Enum):
    """Test run status.

    Success path is generating -> running -> evaluating -> completed. Any
    non-terminal state may escape to failed.
    """

    __test__ = False

    GENERATING = "generating"
    RUNNING = "running"
    EVALUATING = "evaluating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TestRunStatus.COMPLETED, TestRunStatus.FAILED)

    def can_transition_to(self, target: "TestRunStatus") -> bool:
        """Whether ``self -> target`` is an edge of the lifecycle."""
        match self:
            case TestRunStatus.GENERATING:
                return target in (TestRunStatus.RUNNING, TestRunStatus.FAILED)
            case TestRunStatus.RUNNING:
                return target in (TestRunStatus.EVALUATING, TestRunStatus.FAILED)
            case TestRunStatus.EVALUATING:
                return target in (TestRunStatus.COMPLETED, TestRunStatus.FAILED)
            case TestRunStatus.COMPLETED | TestRunStatus.FAILED:
                return False


class TestRunPhase(str, Enum):
    """Phase reported to pollers, derived from the run status."""

    __test__ = False

    GENERATING = "generating"
    EXECUTING = "executing"
    EVALUATING = "evaluating"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def for_status(cls, status: TestRunStatus) -> "TestRunPhase":
        match status:
            case TestRunStatus.GENERATING:
                return cls.GENERATING
            case TestRunStatus.RUNNING:
                return cls.EXECUTING
            case TestRunStatus.EVALUATING:
                return cls.EVALUATING
            case TestRunStatus.COMPLETED:
                return cls.COMPLETED
            case TestRunStatus.FAILED:
                return cls.FAILED


class TestRun(Base):
    """One QA evaluation run for a tenant."""

    __tablename__ = "test_runs"
    __test__ = False

    # Primary key
    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Ownership
    tenant_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Owning tenant",
    )

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TestRunStatus.GENERATING.value,
        index=True,
        comment="Status: generating, running, evaluating, completed, failed",
    )
    config: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict, comment="Categories and question counts for this run"
    )
    total_questions: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Questions planned for this run"
    )
    questions_completed: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Questions executed and evaluated so far"
    )

    # Metrics (completed runs only)
    overall_score: Mapped[float | None] = mapped_column(
        Float, nullable=True, comment="Overall score (0-100)"
    )
    scores_by_category: Mapped[dict[str, float] | None] = mapped_column(
        JSON, nullable=True, comment="Score per question category"
    )
    total_cost: Mapped[float | None] = mapped_column(
        Float, nullable=True, comment="Model cost of the run in USD"
    )
    duration_seconds: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Wall-clock duration of the run"
    )
    summary: Mapped[dict[str, list[str]] | None] = mapped_column(
        JSON, nullable=True, comment="Strengths, weaknesses and recommendations"
    )

    # Failure detail (failed runs only)
    error_message: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Why the run failed"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
        index=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", lazy="selectin")
    questions: Mapped[list["TestQuestion"]] = relationship(
        "TestQuestion",
        back_populates="run",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TestQuestion.position",
    )

    @property
    def run_status(self) -> TestRunStatus:
        return TestRunStatus(self.status)

    def __repr__(self) -> str:
        return f"<TestRun(id={self.id}, tenant={self.tenant_id}, status={self.status})>"


class TestQuestion(Base):
    """A generated question and its evaluated answer within a run."""

    __tablename__ = "test_questions"
    __test__ = False

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("test_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Owning test run",
    )
    position: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Order within the run"
    )

    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    expected_answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    actual_answer: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Outcome (null until evaluated)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    passed: Mapped[bool | None] = mapped_column(Boolean, nullable=True, index=True)
    evaluation: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, comment="Evaluator reasoning and issues"
    )

    source_document: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source_page: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_time_ms: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Chat response latency for this question"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    run: Mapped["TestRun"] = relationship("TestRun", back_populates="questions")

    def __repr__(self) -> str:
        return f"<TestQuestion(id={self.id}, run={self.run_id}, category={self.category})>"
