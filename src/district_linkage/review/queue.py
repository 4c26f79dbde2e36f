"""Review queue: the worklist of decisions a human should look at.

Least-certain decisions surface first.  Adjudication goes through the
ledger, so an accepted or rejected item leaves the queue because its
record is no longer active, not because anything was edited.
"""

from __future__ import annotations

import sqlalchemy as sa
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from district_linkage.errors import RecordNotFound
from district_linkage.ledger.match_ledger import MatchLedger
from district_linkage.models.match_record import MatchRecord
from district_linkage.models.state_registry_district import StateRegistryDistrict
from district_linkage.preprocessing.normalizer import normalize_region

logger = structlog.get_logger()


class ReviewQueue:
    """Prioritized view over active, unverified ledger records."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ledger: MatchLedger | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.ledger = ledger or MatchLedger(session_factory)

    async def pending(
        self,
        min_confidence: float | None = None,
        flagged_only: bool = False,
        region: str | None = None,
        limit: int | None = None,
    ) -> list[MatchRecord]:
        """Active, unverified, non-rejected records, lowest confidence first.

        Args:
            min_confidence: Only records at or above this confidence.
            flagged_only: Only records with ``flag_for_review`` set.
            region: Only records whose source is in this region.
            limit: Cap on the number of rows returned.

        Returns:
            Records ordered by confidence ascending, then decided_at
            ascending (then id, for a stable order).
        """
        stmt = sa.select(MatchRecord).where(
            MatchRecord.active.is_(True),
            MatchRecord.verified.is_(False),
            MatchRecord.status != "rejected",
        )
        if min_confidence is not None:
            stmt = stmt.where(MatchRecord.confidence >= min_confidence)
        if flagged_only:
            stmt = stmt.where(MatchRecord.flag_for_review.is_(True))
        if region is not None:
            stmt = stmt.join(
                StateRegistryDistrict, StateRegistryDistrict.id == MatchRecord.source_id
            ).where(StateRegistryDistrict.state == normalize_region(region))
        stmt = stmt.order_by(MatchRecord.confidence, MatchRecord.decided_at, MatchRecord.id)
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def _get(self, record_id: int) -> MatchRecord:
        async with self.session_factory() as session:
            row = await session.get(MatchRecord, record_id)
        if row is None:
            raise RecordNotFound(f"match record {record_id} not found")
        return row

    async def accept(
        self,
        record_id: int,
        actor: str,
        baseline_id: str | None = None,
        notes: str | None = None,
    ) -> MatchRecord:
        """Confirm a queued record, optionally choosing another target.

        Flagged ambiguous records carry their best candidate; pass
        ``baseline_id`` to pick one of the others.

        Raises:
            LedgerWriteConflict: The record is no longer the active one.
        """
        row = await self._get(record_id)
        target = baseline_id or row.baseline_id
        if target is None:
            raise RecordNotFound(f"match record {record_id} has no baseline entity to accept")
        return await self.ledger.adjudicate(
            row.source_id, target, actor, notes=notes, expected_active_id=row.id
        )

    async def reject(self, record_id: int, actor: str, notes: str | None = None) -> MatchRecord:
        """Record that the queued record's source matches no baseline entity."""
        row = await self._get(record_id)
        return await self.ledger.adjudicate(
            row.source_id, None, actor, notes=notes, expected_active_id=row.id
        )
