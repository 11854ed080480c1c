"""Chat log browsing and usage statistics for the customer portal."""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.context import TenantContext
from backoffice.models.chat_log import ChatLog
from backoffice.models.document import Document

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class ChatLogPage:
    logs: list[ChatLog]
    total: int
    limit: int
    offset: int
    has_more: bool


async def list_chat_logs(
    db: AsyncSession,
    ctx: TenantContext,
    limit: int = 50,
    offset: int = 0,
    product_id: uuid.UUID | None = None,
) -> ChatLogPage:
    """Newest-first page of the tenant's chat logs, optionally for one product."""
    filters = [ChatLog.tenant_id == ctx.tenant_id]
    if product_id is not None:
        filters.append(ChatLog.tenant_product_id == product_id)

    total = await db.scalar(select(func.count()).select_from(ChatLog).where(*filters)) or 0

    # One extra row tells us whether another page exists
    result = await db.execute(
        select(ChatLog)
        .where(*filters)
        .order_by(ChatLog.created_at.desc())
        .offset(offset)
        .limit(limit + 1)
    )
    rows = list(result.scalars().all())

    return ChatLogPage(
        logs=rows[:limit],
        total=total,
        limit=limit,
        offset=offset,
        has_more=len(rows) > limit,
    )


async def get_usage_stats(db: AsyncSession, ctx: TenantContext) -> dict[str, Any]:
    """Document count, chat count, total chat cost and the last chat time."""
    document_count = await db.scalar(
        select(func.count()).select_from(Document).where(Document.tenant_id == ctx.tenant_id)
    )

    result = await db.execute(
        select(
            func.count(ChatLog.id),
            func.coalesce(func.sum(ChatLog.total_cost), 0.0),
            func.max(ChatLog.created_at),
        ).where(ChatLog.tenant_id == ctx.tenant_id)
    )
    chat_count, total_cost, last_chat_at = result.one()

    stats: dict[str, Any] = {
        "document_count": document_count or 0,
        "chat_count": chat_count or 0,
        "total_cost": float(total_cost or 0.0),
        "last_chat_at": last_chat_at,
    }
    logger.debug("usage_stats_computed", tenant_id=ctx.tenant_id, chat_count=stats["chat_count"])
    return stats


async def get_product_stats(
    db: AsyncSession, ctx: TenantContext, product_id: uuid.UUID
) -> dict[str, Any]:
    """Document count and chat activity for one product of the tenant.

    Args:
        db: Database session
        ctx: Tenant the product belongs to
        product_id: Tenant product to summarize

    Returns:
        Dict with documents_count, chats_last_30_days, chats_total and
        cost_this_month
    """
    now = datetime.now(UTC)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    filters = [ChatLog.tenant_id == ctx.tenant_id, ChatLog.tenant_product_id == product_id]

    documents_count = await db.scalar(
        select(func.count())
        .select_from(Document)
        .where(Document.tenant_id == ctx.tenant_id, Document.tenant_product_id == product_id)
    )
    chats_total = await db.scalar(select(func.count()).select_from(ChatLog).where(*filters))
    chats_last_30_days = await db.scalar(
        select(func.count())
        .select_from(ChatLog)
        .where(*filters, ChatLog.created_at >= now - timedelta(days=30))
    )
    cost_this_month = await db.scalar(
        select(func.coalesce(func.sum(ChatLog.total_cost), 0.0)).where(
            *filters, ChatLog.created_at >= month_start
        )
    )

    return {
        "documents_count": documents_count or 0,
        "chats_last_30_days": chats_last_30_days or 0,
        "chats_total": chats_total or 0,
        "cost_this_month": float(cost_this_month or 0.0),
    }
