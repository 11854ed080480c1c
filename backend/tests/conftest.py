"""Pytest configuration and fixtures for backend tests."""

import logging
import os

# Test database URL (using temp file SQLite for tests)
import tempfile
import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from backoffice.core.auth import get_current_admin, get_customer_context
from backoffice.core.context import TenantContext
from backoffice.core.limiter import limiter
from backoffice.db.base import Base
from backoffice.db.session import get_db
from backoffice.main import app

# Import all models to ensure they're registered with Base.metadata
from backoffice.models import (
    AdminUser,
    ChatLog,
    CustomerUser,
    Document,
    DocumentProcessingLog,
    Invoice,
    Tenant,
    TenantProduct,
    TestQuestion,
    TestRun,
    TestTemplate,
)
from backoffice.services.storage import LocalBlobStore, get_blob_store

logger = logging.getLogger(__name__)

TENANT_ID = "acme"
OTHER_TENANT_ID = "globex"


@pytest.fixture(autouse=True)
def disable_rate_limits() -> Any:
    """Login rate limits would leak between tests sharing one client address."""
    previous = limiter.enabled
    limiter.enabled = False
    yield
    limiter.enabled = previous


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[Any, None]:
    """Create test database engine with fresh database for each test."""
    # Create a unique temp file for each test to ensure complete isolation
    test_db_fd, test_db_path = tempfile.mkstemp(suffix=".db")
    os.close(test_db_fd)
    test_db_url = f"sqlite+aiosqlite:///{test_db_path}"

    engine = create_async_engine(
        test_db_url,
        echo=False,
        poolclass=NullPool,
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection: Any, _connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()

    try:
        db_path = Path(test_db_path)
        if db_path.exists():
            db_path.unlink()
    except OSError as e:
        logger.debug("Failed to clean up test database: %s", e)


@pytest.fixture
def session_factory(test_engine: Any) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    """Filesystem blob store rooted in the test's temp directory."""
    return LocalBlobStore(tmp_path / "storage")


@pytest.fixture
def tenant_ctx() -> TenantContext:
    return TenantContext.for_admin(TENANT_ID, "ops@example.com")


@pytest.fixture
def other_tenant_ctx() -> TenantContext:
    return TenantContext.for_admin(OTHER_TENANT_ID, "ops@example.com")


# =============================================================================
# HTTP Clients
# =============================================================================


def _apply_overrides(
    session_factory: async_sessionmaker[AsyncSession], blob_store: LocalBlobStore
) -> None:
    # Fresh session for each request, like production
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store


@pytest_asyncio.fixture(scope="function")
async def test_client(
    session_factory: async_sessionmaker[AsyncSession],
    blob_store: LocalBlobStore,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with database and storage overrides but NO authentication.

    Use this for login flows and auth failure cases.
    """
    _apply_overrides(session_factory, blob_store)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def admin_user(test_session: AsyncSession) -> AdminUser:
    admin = AdminUser(
        email="ops@example.com",
        hashed_password="not-a-real-hash",  # noqa: S106
        full_name="Ops Admin",
        is_active=True,
    )
    test_session.add(admin)
    await test_session.commit()
    await test_session.refresh(admin)
    return admin


@pytest_asyncio.fixture(scope="function")
async def admin_client(
    session_factory: async_sessionmaker[AsyncSession],
    blob_store: LocalBlobStore,
    admin_user: AdminUser,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client authenticated as a back-office admin."""
    _apply_overrides(session_factory, blob_store)

    async def override_get_current_admin() -> AdminUser:
        return admin_user

    app.dependency_overrides[get_current_admin] = override_get_current_admin

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def customer_client(
    session_factory: async_sessionmaker[AsyncSession],
    blob_store: LocalBlobStore,
    create_tenant: Any,
    create_customer: Any,
) -> AsyncGenerator[tuple[AsyncClient, CustomerUser], None]:
    """HTTP client authenticated as an active portal user of ``TENANT_ID``.

    Returns a tuple of (client, customer).
    """
    await create_tenant(TENANT_ID, name="Acme")
    customer = await create_customer(TENANT_ID, email="jane@acme.test")
    _apply_overrides(session_factory, blob_store)

    async def override_get_customer_context() -> TenantContext:
        return TenantContext.for_customer(customer.tenant_id, customer.email)

    app.dependency_overrides[get_customer_context] = override_get_customer_context

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client, customer

    app.dependency_overrides.clear()


# =============================================================================
# Factory Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def create_tenant(test_session: AsyncSession) -> Any:
    """Factory fixture to create tenants with one HR bot product."""

    async def _create_tenant(
        tenant_id: str = TENANT_ID, name: str | None = None, **kwargs: Any
    ) -> Tenant:
        existing = await test_session.get(Tenant, tenant_id)
        if existing is not None:
            return existing
        tenant = Tenant(id=tenant_id, name=name or tenant_id.title(), **kwargs)
        test_session.add(tenant)
        test_session.add(
            TenantProduct(tenant_id=tenant_id, product_id="hr_bot", name=f"{tenant.name} HR Bot")
        )
        await test_session.commit()
        await test_session.refresh(tenant)
        return tenant

    return _create_tenant


@pytest_asyncio.fixture
async def create_customer(test_session: AsyncSession) -> Any:
    """Factory fixture to create portal users."""

    async def _create_customer(tenant_id: str = TENANT_ID, **kwargs: Any) -> CustomerUser:
        data = {
            "email": f"user-{uuid.uuid4().hex[:8]}@example.com",
            "hashed_password": "not-a-real-hash",
            "name": "Portal User",
            "role": "user",
            "is_active": True,
        }
        data.update(kwargs)
        customer = CustomerUser(tenant_id=tenant_id, **data)
        test_session.add(customer)
        await test_session.commit()
        await test_session.refresh(customer)
        return customer

    return _create_customer


@pytest_asyncio.fixture
async def create_test_run(test_session: AsyncSession, create_tenant: Any) -> Any:
    """Factory fixture to create test runs in any status."""

    async def _create_run(tenant_id: str = TENANT_ID, **kwargs: Any) -> TestRun:
        await create_tenant(tenant_id)
        data: dict[str, Any] = {
            "status": "generating",
            "config": {},
            "total_questions": 10,
            "questions_completed": 0,
        }
        data.update(kwargs)
        if data["status"] == "completed":
            data.setdefault("overall_score", 82.5)
            data.setdefault("scores_by_category", {"retrieval": 90.0, "accuracy": 75.0})
            data.setdefault("total_cost", 0.42)
            data.setdefault("duration_seconds", 312)
            data.setdefault("completed_at", datetime.now(UTC))
        run = TestRun(tenant_id=tenant_id, **data)
        test_session.add(run)
        await test_session.commit()
        await test_session.refresh(run)
        return run

    return _create_run


@pytest_asyncio.fixture
async def create_question(test_session: AsyncSession) -> Any:
    """Factory fixture to create questions on a run."""

    async def _create_question(run: TestRun, **kwargs: Any) -> TestQuestion:
        data: dict[str, Any] = {
            "position": 0,
            "category": "retrieval",
            "question": "How many vacation days do I get?",
            "expected_answer": "25 days per year",
        }
        data.update(kwargs)
        question = TestQuestion(run_id=run.id, **data)
        test_session.add(question)
        await test_session.commit()
        await test_session.refresh(question)
        return question

    return _create_question


@pytest_asyncio.fixture
async def create_invoice(test_session: AsyncSession, create_tenant: Any) -> Any:
    """Factory fixture to create invoice rows (without a stored file)."""

    async def _create_invoice(tenant_id: str = TENANT_ID, **kwargs: Any) -> Invoice:
        await create_tenant(tenant_id)
        data: dict[str, Any] = {
            "filename": "invoice-2026-01.pdf",
            "file_path": f"{tenant_id}/1700000000000_invoice-2026-01.pdf",
            "file_size": 1024,
            "invoice_number": "INV-2026-001",
        }
        data.update(kwargs)
        invoice = Invoice(tenant_id=tenant_id, **data)
        test_session.add(invoice)
        await test_session.commit()
        await test_session.refresh(invoice)
        return invoice

    return _create_invoice


@pytest_asyncio.fixture
async def create_document(test_session: AsyncSession, create_tenant: Any) -> Any:
    """Factory fixture to create documents on the tenant's first product."""

    async def _create_document(tenant_id: str = TENANT_ID, **kwargs: Any) -> Document:
        tenant = await create_tenant(tenant_id)
        data: dict[str, Any] = {
            "filename": "handbook.pdf",
            "processing_status": "completed",
            "tenant_product_id": tenant.products[0].id,
        }
        data.update(kwargs)
        document = Document(tenant_id=tenant_id, **data)
        test_session.add(document)
        await test_session.commit()
        await test_session.refresh(document)
        return document

    return _create_document


@pytest_asyncio.fixture
async def create_processing_log(test_session: AsyncSession) -> Any:
    """Factory fixture to create document processing log entries."""

    async def _create_log(document: Document, **kwargs: Any) -> DocumentProcessingLog:
        data: dict[str, Any] = {
            "filename": document.filename,
            "processing_status": "chunking",
            "started_at": datetime.now(UTC),
        }
        data.update(kwargs)
        log = DocumentProcessingLog(
            tenant_id=document.tenant_id, document_id=document.id, **data
        )
        test_session.add(log)
        await test_session.commit()
        await test_session.refresh(log)
        return log

    return _create_log


@pytest_asyncio.fixture
async def create_chat_log(test_session: AsyncSession) -> Any:
    """Factory fixture to create chat logs."""

    async def _create_chat_log(tenant_id: str = TENANT_ID, **kwargs: Any) -> ChatLog:
        data: dict[str, Any] = {
            "question": "Where is the office?",
            "answer": "Main street 1.",
            "language": "en",
            "total_cost": 0.002,
        }
        data.update(kwargs)
        chat_log = ChatLog(tenant_id=tenant_id, **data)
        test_session.add(chat_log)
        await test_session.commit()
        await test_session.refresh(chat_log)
        return chat_log

    return _create_chat_log


@pytest_asyncio.fixture
async def create_template(test_session: AsyncSession, create_tenant: Any) -> Any:
    """Factory fixture to create QA test templates."""

    async def _create_template(tenant_id: str = TENANT_ID, **kwargs: Any) -> TestTemplate:
        await create_tenant(tenant_id)
        data: dict[str, Any] = {
            "category": "retrieval",
            "question": "How many vacation days do I get?",
            "expected_answer": "25 days per year.",
            "language": "nl",
            "is_active": True,
        }
        data.update(kwargs)
        template = TestTemplate(tenant_id=tenant_id, **data)
        test_session.add(template)
        await test_session.commit()
        await test_session.refresh(template)
        return template

    return _create_template
