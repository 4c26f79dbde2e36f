"""Quality flag model: diagnostics awaiting a human decision."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from district_linkage.models.base import Base

SEVERITIES = ("low", "medium", "high", "critical")


class QualityFlag(Base):
    """An ambiguous, implausible or unmatched record.

    Flags are resolved, never deleted.
    """

    __tablename__ = "quality_flags"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[str | None] = mapped_column(
        sa.String(36), sa.ForeignKey("state_registry_districts.id"), nullable=True, index=True
    )
    match_record_id: Mapped[int | None] = mapped_column(
        sa.Integer, sa.ForeignKey("match_records.id"), nullable=True
    )
    batch_id: Mapped[str | None] = mapped_column(sa.String(36), nullable=True)
    flag_type: Mapped[str] = mapped_column(sa.String(50), index=True)
    severity: Mapped[str] = mapped_column(sa.String(20))
    description: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    resolved: Mapped[bool] = mapped_column(sa.Boolean, default=False, index=True)
    resolved_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(sa.String(100), nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP")
    )

    __table_args__ = (
        sa.CheckConstraint(
            "severity IN ('low', 'medium', 'high', 'critical')", name="valid_severity"
        ),
    )
