"""SQLAlchemy model for versioned match policy overrides."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from district_linkage.models.base import Base


class PolicySettings(Base):
    """One version of the match policy overrides.

    ``policy_json`` holds only the keys that differ from
    ``config/matching.yaml``; the row with the highest ``version`` wins.
    """

    __tablename__ = "policy_settings"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    version: Mapped[int] = mapped_column(sa.Integer, unique=True)
    policy_json: Mapped[dict] = mapped_column(sa.JSON, server_default="{}", default=dict)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP")
    )
    created_by: Mapped[str] = mapped_column(sa.String(100), server_default="system")
