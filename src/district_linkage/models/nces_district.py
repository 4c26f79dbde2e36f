"""Baseline district model: one row per NCES local education agency."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from district_linkage.models.base import Base


class NcesDistrict(Base):
    """An authoritative district from the NCES baseline.

    Loaded by the baseline loader and only read by the matcher.
    """

    __tablename__ = "nces_districts"

    nces_id: Mapped[str] = mapped_column(sa.String(20), primary_key=True)
    name: Mapped[str] = mapped_column(sa.String(500))
    state: Mapped[str] = mapped_column(sa.String(2), index=True)
    city: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    county: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    enrollment: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    lea_type: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    website_domain: Mapped[str | None] = mapped_column(sa.String(500), nullable=True)
    superintendent_name: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    superintendent_email: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(sa.String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP")
    )
