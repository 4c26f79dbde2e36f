"""State registry district model: raw rows delivered by state import batches."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from district_linkage.models.base import Base


class StateRegistryDistrict(Base):
    """One district row as published by a state department of education.

    Append-only: a correction arrives as a new row in a later batch.
    ``nces_id`` is only set when the state file carries the federal id.
    """

    __tablename__ = "state_registry_districts"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True)
    import_batch_id: Mapped[str] = mapped_column(
        sa.String(36), sa.ForeignKey("import_batches.id"), index=True
    )
    state: Mapped[str] = mapped_column(sa.String(2), index=True)
    state_district_id: Mapped[str | None] = mapped_column(sa.String(50), nullable=True)
    nces_id: Mapped[str | None] = mapped_column(sa.String(20), nullable=True)
    district_name: Mapped[str] = mapped_column(sa.String(500))
    city: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    county: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(sa.String(50), nullable=True)
    enrollment: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    administrator_first_name: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    administrator_last_name: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    administrator_email: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    website_url: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    raw_data: Mapped[dict | None] = mapped_column(sa.JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP")
    )
