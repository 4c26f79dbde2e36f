"""Import batch audit entry, created by ingestion before matching starts."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from district_linkage.models.base import Base


class ImportBatch(Base):
    __tablename__ = "import_batches"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True)
    source_type: Mapped[str] = mapped_column(sa.String(50), default="state_registry")
    source_name: Mapped[str | None] = mapped_column(sa.String(100), nullable=True)
    source_url: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    source_file: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    record_count: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    success_count: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    error_count: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    error_log: Mapped[dict | None] = mapped_column(sa.JSON, nullable=True)
    status: Mapped[str] = mapped_column(sa.String(20), default="loaded")
    imported_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP")
    )
    imported_by: Mapped[str | None] = mapped_column(sa.String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(sa.Text, nullable=True)

    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('loaded', 'matched', 'activated', 'reverted', 'failed')",
            name="valid_batch_status",
        ),
    )
