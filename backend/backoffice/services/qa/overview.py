"""QA overview across tenants.

Aggregates completed test runs for the admin test dashboard.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.models.tenant import Tenant
from backoffice.models.test_run import TestRun, TestRunStatus

logger = structlog.get_logger()


def _average(values: list[float]) -> float | None:
    return sum(values) / len(values) if values else None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=UTC)


CompletedRun = tuple[str, float | None, float | None, datetime | None]


async def _completed_runs(db: AsyncSession) -> list[CompletedRun]:
    result = await db.execute(
        select(
            TestRun.tenant_id,
            TestRun.overall_score,
            TestRun.total_cost,
            TestRun.completed_at,
        )
        .where(TestRun.status == TestRunStatus.COMPLETED.value)
        .order_by(TestRun.completed_at.desc())
    )
    return [tuple(row) for row in result.all()]


async def get_tenants_test_overview(db: AsyncSession) -> list[dict[str, Any]]:
    """Per-tenant summary of completed test runs.

    Tenants with a test come first, most recently tested first; the rest
    follow by name.

    Args:
        db: Database session

    Returns:
        List of dicts with last test date and score, test count, cost and
        average score per tenant
    """
    tenants_result = await db.execute(select(Tenant).order_by(Tenant.name))
    tenants = tenants_result.scalars().all()

    runs_by_tenant: dict[str, list[tuple[float | None, float | None, datetime | None]]] = {}
    for tenant_id, score, cost, completed_at in await _completed_runs(db):
        runs_by_tenant.setdefault(tenant_id, []).append((score, cost, completed_at))

    overview = []
    for tenant in tenants:
        runs = runs_by_tenant.get(tenant.id, [])
        last_score, _, last_date = runs[0] if runs else (None, None, None)
        scores = [score for score, _, _ in runs if score is not None]
        overview.append(
            {
                "tenant_id": tenant.id,
                "tenant_name": tenant.name,
                "last_test_date": last_date,
                "last_score": last_score,
                "test_count": len(runs),
                "total_test_cost": sum(cost or 0.0 for _, cost, _ in runs),
                "avg_score": _average(scores),
                "is_active": tenant.is_active,
            }
        )

    # Stable sorts: name first, then last test date on top
    overview.sort(key=lambda row: row["tenant_name"])
    overview.sort(
        key=lambda row: _as_utc(row["last_test_date"]).timestamp() if row["last_test_date"] else 0,
        reverse=True,
    )
    return overview


async def get_global_qa_stats(db: AsyncSession, days: int = 7) -> dict[str, Any]:
    """Totals over all completed runs plus the count of the last ``days`` days."""
    since = datetime.now(UTC) - timedelta(days=days)
    runs = await _completed_runs(db)

    scores = [score for _, score, _, _ in runs if score is not None]
    recent = [
        completed_at
        for _, _, _, completed_at in runs
        if completed_at is not None and _as_utc(completed_at) >= since
    ]

    stats = {
        "total_tests": len(runs),
        "total_cost": sum(cost or 0.0 for _, _, cost, _ in runs),
        "avg_score": _average(scores),
        "tests_this_week": len(recent),
    }
    logger.debug("global_qa_stats_computed", total_tests=stats["total_tests"])
    return stats
