"""Invoice model.

The PDF lives in the invoices bucket; this row holds its path plus the two
independent payment flags: the customer's "I have paid" and the admin's
"payment received".
"""

import uuid
from datetime import UTC, date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import Uuid

from backoffice.db.base import Base


class Invoice(Base):
    """Invoice issued to a tenant."""

    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # File reference
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(
        String(500), nullable=False, comment="Path in the invoices bucket"
    )
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Optional invoice details
    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    invoice_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Customer side
    is_paid_by_customer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    customer_paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Admin side
    is_verified_by_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    admin_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, tenant={self.tenant_id}, number={self.invoice_number})>"
