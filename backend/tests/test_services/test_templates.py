"""Tests for TestTemplateService: tenant-scoped template CRUD."""

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.context import TenantContext
from backoffice.core.errors import Forbidden, NotFound
from backoffice.models.test_template import TestTemplate
from backoffice.services.qa.run_config import QuestionCategory
from backoffice.services.qa.templates import (
    TestTemplateCreate,
    TestTemplateService,
    TestTemplateUpdate,
)


class TestListTemplates:
    @pytest.mark.asyncio
    async def test_newest_first_and_tenant_scoped(
        self, test_session: AsyncSession, create_template: Any, tenant_ctx: TenantContext
    ) -> None:
        now = datetime.now(UTC)
        older = await create_template(created_at=now - timedelta(days=1))
        newer = await create_template(created_at=now)
        await create_template("globex")

        templates = await TestTemplateService(test_session).list_templates(tenant_ctx)

        assert [t.id for t in templates] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_active_only(
        self, test_session: AsyncSession, create_template: Any, tenant_ctx: TenantContext
    ) -> None:
        active = await create_template()
        await create_template(is_active=False)

        templates = await TestTemplateService(test_session).list_templates(
            tenant_ctx, active_only=True
        )

        assert [t.id for t in templates] == [active.id]

    @pytest.mark.asyncio
    async def test_unknown_tenant(
        self, test_session: AsyncSession, tenant_ctx: TenantContext
    ) -> None:
        with pytest.raises(NotFound, match="Tenant not found"):
            await TestTemplateService(test_session).list_templates(tenant_ctx)


class TestCreateTemplate:
    @pytest.mark.asyncio
    async def test_defaults(
        self, test_session: AsyncSession, create_tenant: Any, tenant_ctx: TenantContext
    ) -> None:
        await create_tenant()
        data = TestTemplateCreate(
            category=QuestionCategory.CITATION,
            question="Where is the sick leave policy?",
            expected_answer="",
            expected_sources=[{"document": "handbook.pdf", "page": 4}, {"document": "faq.pdf"}],
        )

        template = await TestTemplateService(test_session).create_template(tenant_ctx, data)

        assert template.tenant_id == "acme"
        assert template.category == "citation"
        assert template.language == "nl"
        assert template.is_active is True
        assert template.expected_answer is None
        assert template.expected_sources == [
            {"document": "handbook.pdf", "page": 4},
            {"document": "faq.pdf"},
        ]

    @pytest.mark.asyncio
    async def test_unknown_tenant_writes_nothing(
        self, test_session: AsyncSession, tenant_ctx: TenantContext
    ) -> None:
        data = TestTemplateCreate(category=QuestionCategory.RETRIEVAL, question="Q?")

        with pytest.raises(NotFound):
            await TestTemplateService(test_session).create_template(tenant_ctx, data)

        count = await test_session.scalar(select(func.count()).select_from(TestTemplate))
        assert count == 0

    def test_question_required(self) -> None:
        with pytest.raises(ValidationError):
            TestTemplateCreate(category=QuestionCategory.RETRIEVAL, question="")

    def test_unknown_category(self) -> None:
        with pytest.raises(ValidationError):
            TestTemplateCreate(category="trivia", question="Q?")


class TestUpdateTemplate:
    @pytest.mark.asyncio
    async def test_partial_update(
        self, test_session: AsyncSession, create_template: Any, tenant_ctx: TenantContext
    ) -> None:
        template = await create_template(notes="keep me")

        updated = await TestTemplateService(test_session).update_template(
            tenant_ctx,
            template.id,
            TestTemplateUpdate(question="How many days off?", is_active=False),
        )

        assert updated.question == "How many days off?"
        assert updated.is_active is False
        assert updated.notes == "keep me"
        assert updated.category == "retrieval"

    @pytest.mark.asyncio
    async def test_explicit_null_clears_optional_fields_only(
        self, test_session: AsyncSession, create_template: Any, tenant_ctx: TenantContext
    ) -> None:
        template = await create_template(notes="old")

        updated = await TestTemplateService(test_session).update_template(
            tenant_ctx,
            template.id,
            TestTemplateUpdate(notes=None, expected_answer=None, question=None),
        )

        assert updated.notes is None
        assert updated.expected_answer is None
        assert updated.question == "How many vacation days do I get?"

    @pytest.mark.asyncio
    async def test_other_tenant_is_forbidden(
        self,
        test_session: AsyncSession,
        create_template: Any,
        other_tenant_ctx: TenantContext,
    ) -> None:
        template = await create_template()

        with pytest.raises(Forbidden, match="does not belong"):
            await TestTemplateService(test_session).update_template(
                other_tenant_ctx, template.id, TestTemplateUpdate(is_active=False)
            )

        await test_session.refresh(template)
        assert template.is_active is True

    @pytest.mark.asyncio
    async def test_missing_template(
        self, test_session: AsyncSession, tenant_ctx: TenantContext
    ) -> None:
        with pytest.raises(NotFound, match="Template not found"):
            await TestTemplateService(test_session).update_template(
                tenant_ctx, uuid.uuid4(), TestTemplateUpdate(is_active=False)
            )


class TestDeleteTemplate:
    @pytest.mark.asyncio
    async def test_delete(
        self, test_session: AsyncSession, create_template: Any, tenant_ctx: TenantContext
    ) -> None:
        template = await create_template()

        await TestTemplateService(test_session).delete_template(tenant_ctx, template.id)

        assert await test_session.get(TestTemplate, template.id) is None

    @pytest.mark.asyncio
    async def test_other_tenant_keeps_template(
        self,
        test_session: AsyncSession,
        create_template: Any,
        other_tenant_ctx: TenantContext,
    ) -> None:
        template = await create_template()

        with pytest.raises(Forbidden):
            await TestTemplateService(test_session).delete_template(other_tenant_ctx, template.id)

        count = await test_session.scalar(select(func.count()).select_from(TestTemplate))
        assert count == 1
