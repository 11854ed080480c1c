"""Tenant-scoped CRUD for QA test templates.

Templates are questions an admin writes by hand so that every test run of a
tenant checks them, next to the generated ones.
"""

import uuid

import structlog
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.context import TenantContext
from backoffice.core.errors import DependencyFailure, Forbidden, NotFound
from backoffice.models.tenant import Tenant
from backoffice.models.test_template import TestTemplate
from backoffice.services.qa.run_config import QuestionCategory

logger = structlog.get_logger()


class ExpectedSource(BaseModel):
    document: str = Field(..., min_length=1)
    page: int | None = Field(default=None, ge=1)


class TestTemplateCreate(BaseModel):
    """Input for a new template."""

    __test__ = False

    category: QuestionCategory
    question: str = Field(..., min_length=1)
    expected_answer: str | None = None
    expected_sources: list[ExpectedSource] | None = None
    language: str = Field(default="nl", min_length=2, max_length=10)
    notes: str | None = None


class TestTemplateUpdate(BaseModel):
    """Partial update. Only fields present in the request are applied."""

    __test__ = False

    category: QuestionCategory | None = None
    question: str | None = Field(default=None, min_length=1)
    expected_answer: str | None = None
    expected_sources: list[ExpectedSource] | None = None
    language: str | None = Field(default=None, min_length=2, max_length=10)
    notes: str | None = None
    is_active: bool | None = None


# Columns that cannot be cleared, so an explicit null leaves them as they are
_REQUIRED_FIELDS = frozenset({"category", "question", "language", "is_active"})


class TestTemplateService:
    """Create, list, update and delete the templates of one tenant."""

    __test__ = False

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(component="test_template_service")

    async def _require_tenant(self, ctx: TenantContext) -> None:
        if await self.db.get(Tenant, ctx.tenant_id) is None:
            raise NotFound("Tenant not found")

    async def get_template(self, ctx: TenantContext, template_id: uuid.UUID) -> TestTemplate:
        """Fetch a template owned by the context's tenant.

        Raises:
            NotFound: No template with this id.
            Forbidden: The template belongs to another tenant.
        """
        template = await self.db.get(TestTemplate, template_id)
        if template is None:
            raise NotFound("Template not found")
        if template.tenant_id != ctx.tenant_id:
            self.logger.warning(
                "test_template_tenant_mismatch",
                template_id=str(template_id),
                tenant_id=ctx.tenant_id,
            )
            raise Forbidden("Template does not belong to this tenant")
        return template

    async def list_templates(
        self, ctx: TenantContext, active_only: bool = False
    ) -> list[TestTemplate]:
        """Templates of the tenant, newest first."""
        await self._require_tenant(ctx)

        query = select(TestTemplate).where(TestTemplate.tenant_id == ctx.tenant_id)
        if active_only:
            query = query.where(TestTemplate.is_active.is_(True))
        result = await self.db.execute(query.order_by(TestTemplate.created_at.desc()))
        return list(result.scalars().all())

    async def create_template(self, ctx: TenantContext, data: TestTemplateCreate) -> TestTemplate:
        await self._require_tenant(ctx)

        template = TestTemplate(
            tenant_id=ctx.tenant_id,
            category=data.category.value,
            question=data.question,
            expected_answer=data.expected_answer or None,
            expected_sources=(
                [s.model_dump(exclude_none=True) for s in data.expected_sources]
                if data.expected_sources
                else None
            ),
            language=data.language,
            notes=data.notes or None,
            is_active=True,
        )
        self.db.add(template)
        await self._commit("Could not create template")
        await self.db.refresh(template)

        self.logger.info(
            "test_template_created",
            template_id=str(template.id),
            tenant_id=ctx.tenant_id,
            category=template.category,
        )
        return template

    async def update_template(
        self, ctx: TenantContext, template_id: uuid.UUID, data: TestTemplateUpdate
    ) -> TestTemplate:
        template = await self.get_template(ctx, template_id)

        changes = data.model_dump(exclude_unset=True, mode="json")
        for field, value in changes.items():
            if value is None and field in _REQUIRED_FIELDS:
                continue
            if field == "expected_sources" and value:
                value = [{k: v for k, v in s.items() if v is not None} for s in value]
            setattr(template, field, value)

        await self._commit("Could not update template")
        await self.db.refresh(template)
        self.logger.info(
            "test_template_updated",
            template_id=str(template_id),
            fields=sorted(changes),
        )
        return template

    async def delete_template(self, ctx: TenantContext, template_id: uuid.UUID) -> None:
        template = await self.get_template(ctx, template_id)
        await self.db.delete(template)
        await self._commit("Could not delete template")
        self.logger.info(
            "test_template_deleted", template_id=str(template_id), tenant_id=ctx.tenant_id
        )

    async def _commit(self, failure_detail: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise DependencyFailure(failure_detail) from exc
