"""Match record model: the append-only ledger of matching decisions."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from district_linkage.models.base import Base


class MatchRecord(Base):
    """One matching decision for one state registry record.

    Rows are never deleted and only the lifecycle columns (``active``,
    ``superseded_by_id``, ``verified_at``) change after insert.  A partial
    unique index guarantees at most one active row per source record.
    ``baseline_id`` is null for rejections.
    """

    __tablename__ = "match_records"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[str] = mapped_column(
        sa.String(36), sa.ForeignKey("state_registry_districts.id"), index=True
    )
    baseline_id: Mapped[str | None] = mapped_column(
        sa.String(20), sa.ForeignKey("nces_districts.nces_id"), nullable=True, index=True
    )
    batch_id: Mapped[str] = mapped_column(
        sa.String(36), sa.ForeignKey("import_batches.id"), index=True
    )

    # Decision
    method: Mapped[str] = mapped_column(sa.String(50))
    status: Mapped[str] = mapped_column(sa.String(20))
    confidence: Mapped[float] = mapped_column(sa.Numeric(5, 4, asdecimal=False))
    evidence: Mapped[dict | None] = mapped_column(sa.JSON, nullable=True)
    decided_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True))
    decided_by: Mapped[str] = mapped_column(sa.String(100))

    # Review
    verified: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    verified_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    verified_by: Mapped[str | None] = mapped_column(sa.String(100), nullable=True)
    flag_for_review: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    review_reason: Mapped[str | None] = mapped_column(sa.Text, nullable=True)

    # Lifecycle
    active: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    superseded_by_id: Mapped[int | None] = mapped_column(
        sa.Integer, sa.ForeignKey("match_records.id"), nullable=True
    )

    __table_args__ = (
        sa.Index(
            "uq_match_records_active_source",
            "source_id",
            unique=True,
            sqlite_where=sa.text("active = 1"),
            postgresql_where=sa.text("active = true"),
        ),
        sa.Index("ix_match_records_review", "active", "verified", "confidence"),
        sa.CheckConstraint(
            "status IN ('accepted', 'flagged', 'rejected')", name="valid_match_status"
        ),
        sa.CheckConstraint(
            "method IN ('exact_id', 'exact_name', 'normalized_name', 'fuzzy', 'manual', 'none')",
            name="valid_match_method",
        ),
        sa.CheckConstraint("confidence >= 0 AND confidence <= 1", name="confidence_range"),
    )
