"""Append-only ledger of matching decisions.

Every decision (automatic or human) becomes a new ``MatchRecord`` row.
Rows are never deleted; the only columns that change after insert are the
lifecycle columns ``active`` and ``superseded_by_id``.  A correction
inserts a new row and marks the prior active row inactive, pointing it at
its successor, so ``history()`` only ever grows.

Each public operation runs in its own transaction.  The partial unique
index ``uq_match_records_active_source`` backs the at-most-one-active
invariant; tripping it means two writers raced on the same source record
and surfaces as ``LedgerWriteConflict``.
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from district_linkage.errors import LedgerWriteConflict, RecordNotFound, RegionMismatch, UnknownBatch
from district_linkage.matching.chain import MatchCandidate
from district_linkage.matching.conflicts import (
    AMBIGUOUS_TARGET,
    PLAUSIBILITY_CHECK_FAILED,
    POSSIBLE_DUPLICATE,
    REGION_MISMATCH,
    Accept,
    Flag,
    Reject,
    Resolution,
)
from district_linkage.matching.policy import MANUAL_METHOD
from district_linkage.models.import_batch import ImportBatch
from district_linkage.models.match_record import MatchRecord
from district_linkage.models.nces_district import NcesDistrict
from district_linkage.models.quality_flag import QualityFlag
from district_linkage.models.state_registry_district import StateRegistryDistrict
from district_linkage.preprocessing.normalizer import normalize_region
from district_linkage.records import BatchContext, utcnow

logger = structlog.get_logger()

# Method recorded when no tier produced a candidate
NO_METHOD = "none"

_SEVERITY = {
    AMBIGUOUS_TARGET: "medium",
    PLAUSIBILITY_CHECK_FAILED: "high",
    POSSIBLE_DUPLICATE: "low",
    REGION_MISMATCH: "medium",
}

_SEVERITY_RANK = sa.case(
    {"critical": 0, "high": 1, "medium": 2, "low": 3},
    value=QualityFlag.severity,
    else_=4,
)

# Sentinel: skip the expected-active check
_UNCHECKED = object()

# Keep IN lists well under SQLite's bound-parameter limit
_CHUNK = 500


def _candidate_summary(candidate: MatchCandidate) -> dict:
    return {
        "baseline_id": candidate.baseline_id,
        "name": candidate.baseline.name,
        "region": candidate.baseline.region,
        "method": candidate.method,
        "similarity": candidate.similarity,
        "confidence": candidate.confidence,
    }


def _row_for(outcome: Resolution, ctx: BatchContext) -> MatchRecord:
    """Build the ledger row for one resolution (not yet added to a session)."""
    common = {
        "source_id": outcome.record.id,
        "batch_id": ctx.batch_id,
        "decided_at": utcnow(),
        "decided_by": ctx.actor,
        "verified": False,
        "active": False,
    }

    if isinstance(outcome, Accept):
        candidate = outcome.candidate
        evidence = dict(candidate.evidence)
        evidence["similarity"] = candidate.similarity
        evidence["run_id"] = ctx.run_id
        if outcome.review_reasons:
            evidence["review_reasons"] = list(outcome.review_reasons)
        if outcome.duplicate_of:
            evidence["duplicate_of"] = outcome.duplicate_of
        return MatchRecord(
            **common,
            baseline_id=candidate.baseline_id,
            method=candidate.method,
            status="accepted",
            confidence=candidate.confidence,
            evidence=evidence,
            flag_for_review=outcome.flag_for_review,
            review_reason=",".join(outcome.review_reasons) or None,
        )

    if isinstance(outcome, Flag):
        best = outcome.candidates[0] if outcome.candidates else None
        return MatchRecord(
            **common,
            baseline_id=best.baseline_id if best else None,
            method=best.method if best else NO_METHOD,
            status="flagged",
            confidence=best.confidence if best else 0.0,
            evidence={
                "reason": outcome.reason,
                "description": outcome.description,
                "candidates": [_candidate_summary(c) for c in outcome.candidates],
                "run_id": ctx.run_id,
            },
            flag_for_review=True,
            review_reason=outcome.reason,
        )

    return MatchRecord(
        **common,
        baseline_id=None,
        method=NO_METHOD,
        status="rejected",
        confidence=0.0,
        evidence={
            "reason": outcome.reason,
            "detail": outcome.detail,
            "candidates": [_candidate_summary(c) for c in outcome.candidates],
            "run_id": ctx.run_id,
        },
        flag_for_review=False,
        review_reason=outcome.reason,
    )


def _flag_for(outcome: Resolution, row: MatchRecord) -> QualityFlag | None:
    """Quality flag that accompanies a ledger row, if any."""
    if isinstance(outcome, Accept):
        if POSSIBLE_DUPLICATE not in outcome.review_reasons:
            return None
        flag_type = POSSIBLE_DUPLICATE
        description = (
            f"{outcome.record.name!r} also linked to {outcome.candidate.baseline_id} "
            f"by source {outcome.duplicate_of} via a higher-priority method"
        )
    elif isinstance(outcome, Flag):
        flag_type = outcome.reason
        description = outcome.description
    else:
        flag_type = outcome.reason
        description = outcome.detail or f"{outcome.record.name!r} in {outcome.record.region}: {outcome.reason}"

    return QualityFlag(
        source_id=outcome.record.id,
        match_record_id=row.id,
        batch_id=row.batch_id,
        flag_type=flag_type,
        severity=_SEVERITY.get(flag_type, "low"),
        description=description,
        resolved=False,
    )


class MatchLedger:
    """Query and append matching decisions.

    Args:
        session_factory: Factory for the sessions each operation opens.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def record(
        self,
        outcome: Resolution,
        ctx: BatchContext,
        activate: bool = False,
        expected_active_id: object = _UNCHECKED,
    ) -> MatchRecord:
        """Append one decision, with its quality flag, in one transaction.

        Batch runs append inactive rows and promote them later with
        :meth:`activate_batch`.  With ``activate=True`` the row replaces
        the source's active record immediately.

        Raises:
            LedgerWriteConflict: The active record changed underneath us.
        """
        row = _row_for(outcome, ctx)
        try:
            async with self.session_factory() as session, session.begin():
                session.add(row)
                await session.flush()
                flag = _flag_for(outcome, row)
                if flag is not None:
                    session.add(flag)
                if activate:
                    await self._supersede(session, row, expected_active_id)
        except IntegrityError as exc:
            raise LedgerWriteConflict(
                f"concurrent write on the active match of source {row.source_id!r}"
            ) from exc
        return row

    async def _supersede(
        self,
        session: AsyncSession,
        row: MatchRecord,
        expected_active_id: object = _UNCHECKED,
    ) -> MatchRecord | None:
        """Make *row* the active record of its source.

        The old row is deactivated and flushed before the new one is
        activated, so the partial unique index never sees two active rows.
        """
        current = await self._active_row(session, row.source_id)
        current_id = current.id if current is not None else None
        if expected_active_id is not _UNCHECKED and current_id != expected_active_id:
            raise LedgerWriteConflict(
                f"source {row.source_id!r}: expected active record "
                f"{expected_active_id}, found {current_id}"
            )
        if current is not None:
            current.active = False
            current.superseded_by_id = row.id
            await session.flush()
        row.active = True
        await session.flush()
        return current

    async def _active_row(self, session: AsyncSession, source_id: str) -> MatchRecord | None:
        result = await session.execute(
            sa.select(MatchRecord).where(
                MatchRecord.source_id == source_id,
                MatchRecord.active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def active_match_for(self, source_id: str) -> MatchRecord | None:
        """The active, non-rejected decision for a source record."""
        async with self.session_factory() as session:
            row = await self._active_row(session, source_id)
        if row is None or row.status == "rejected":
            return None
        return row

    async def active_record_for(self, source_id: str) -> MatchRecord | None:
        """The active decision for a source record, rejections included."""
        async with self.session_factory() as session:
            return await self._active_row(session, source_id)

    async def history(self, source_id: str) -> list[MatchRecord]:
        """Every decision ever recorded for a source, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                sa.select(MatchRecord)
                .where(MatchRecord.source_id == source_id)
                .order_by(MatchRecord.decided_at, MatchRecord.id)
            )
            return list(result.scalars().all())

    async def activate_batch(self, batch_id: str) -> int:
        """Promote the latest record of every source in a batch to active.

        Runs in one transaction: either the whole batch becomes active or
        nothing does.  Sources whose active record was verified by a human
        keep it.

        Returns:
            Number of records activated.

        Raises:
            UnknownBatch: No audit entry for ``batch_id``.
            LedgerWriteConflict: Another writer activated a record meanwhile.
        """
        log = logger.bind(batch_id=batch_id)
        activated = 0
        kept_verified = 0
        try:
            async with self.session_factory() as session, session.begin():
                batch = await session.get(ImportBatch, batch_id)
                if batch is None:
                    raise UnknownBatch(batch_id)

                latest_ids = (
                    sa.select(sa.func.max(MatchRecord.id))
                    .where(MatchRecord.batch_id == batch_id)
                    .group_by(MatchRecord.source_id)
                )
                result = await session.execute(
                    sa.select(MatchRecord)
                    .where(MatchRecord.id.in_(latest_ids))
                    .order_by(MatchRecord.source_id)
                )
                latest = list(result.scalars().all())

                current_by_source = await self._active_rows(session, [r.source_id for r in latest])
                for row in latest:
                    if row.active:
                        continue
                    current = current_by_source.get(row.source_id)
                    if current is not None and current.verified:
                        kept_verified += 1
                        continue
                    await self._supersede(session, row)
                    activated += 1

                batch.status = "activated"
        except IntegrityError as exc:
            raise LedgerWriteConflict(f"concurrent activation of batch {batch_id!r}") from exc

        log.info("batch_activated", activated=activated, kept_verified=kept_verified)
        return activated

    async def _active_rows(
        self, session: AsyncSession, source_ids: Sequence[str]
    ) -> dict[str, MatchRecord]:
        found: dict[str, MatchRecord] = {}
        for start in range(0, len(source_ids), _CHUNK):
            chunk = source_ids[start : start + _CHUNK]
            result = await session.execute(
                sa.select(MatchRecord).where(
                    MatchRecord.source_id.in_(chunk),
                    MatchRecord.active.is_(True),
                )
            )
            for row in result.scalars().all():
                found[row.source_id] = row
        return found

    async def deactivate_batch(self, batch_id: str) -> int:
        """Undo a batch without deleting history.

        Every active record the batch's matching runs produced becomes
        inactive and the record it superseded, if any, is restored.
        Human-verified records stay active even when they carry the
        batch id.  Runs in one transaction.

        Returns:
            Number of records deactivated.
        """
        log = logger.bind(batch_id=batch_id)
        async with self.session_factory() as session, session.begin():
            batch = await session.get(ImportBatch, batch_id)
            if batch is None:
                raise UnknownBatch(batch_id)

            result = await session.execute(
                sa.select(MatchRecord).where(
                    MatchRecord.batch_id == batch_id,
                    MatchRecord.active.is_(True),
                    MatchRecord.verified.is_(False),
                )
            )
            rows = list(result.scalars().all())
            for row in rows:
                row.active = False
            await session.flush()

            restored = 0
            for row in rows:
                # Walk back past earlier runs of the same batch
                prior = await self._predecessor(session, row.id)
                while prior is not None and prior.batch_id == batch_id:
                    prior = await self._predecessor(session, prior.id)
                if prior is None or prior.active:
                    continue
                prior.superseded_by_id = None
                prior.active = True
                restored += 1
            await session.flush()

            batch.status = "reverted"

        log.info("batch_deactivated", deactivated=len(rows), restored=restored)
        return len(rows)

    async def _predecessor(self, session: AsyncSession, record_id: int) -> MatchRecord | None:
        result = await session.execute(
            sa.select(MatchRecord)
            .where(MatchRecord.superseded_by_id == record_id)
            .order_by(MatchRecord.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def adjudicate(
        self,
        source_id: str,
        baseline_id: str | None,
        actor: str,
        notes: str | None = None,
        expected_active_id: object = _UNCHECKED,
    ) -> MatchRecord:
        """Write a human decision for a source record.

        ``baseline_id=None`` records a verified "no match".  The new row
        uses ``method="manual"``, confidence 1.00 and ``verified=True``,
        supersedes the active record and resolves the source's open flags.

        Raises:
            RecordNotFound: Unknown source record or baseline entity.
            RegionMismatch: The baseline entity is in another region.
            LedgerWriteConflict: The active record is not the one reviewed.
        """
        log = logger.bind(source_id=source_id, actor=actor)
        now = utcnow()
        try:
            async with self.session_factory() as session, session.begin():
                source = await session.get(StateRegistryDistrict, source_id)
                if source is None:
                    raise RecordNotFound(f"state registry record {source_id!r} not found")
                if baseline_id is not None:
                    entity = await session.get(NcesDistrict, baseline_id)
                    if entity is None:
                        raise RecordNotFound(f"baseline entity {baseline_id!r} not found")
                    if normalize_region(entity.state) != normalize_region(source.state):
                        raise RegionMismatch(
                            f"baseline {baseline_id} is in {entity.state}, "
                            f"record {source_id} is in {source.state}"
                        )

                current = await self._active_row(session, source_id)
                row = MatchRecord(
                    source_id=source_id,
                    baseline_id=baseline_id,
                    batch_id=current.batch_id if current is not None else source.import_batch_id,
                    method=MANUAL_METHOD,
                    status="accepted" if baseline_id is not None else "rejected",
                    confidence=1.0,
                    evidence={
                        "previous_record_id": current.id if current is not None else None,
                        "previous_baseline_id": current.baseline_id if current is not None else None,
                        "previous_method": current.method if current is not None else None,
                        "notes": notes,
                    },
                    decided_at=now,
                    decided_by=actor,
                    verified=True,
                    verified_at=now,
                    verified_by=actor,
                    flag_for_review=False,
                    active=False,
                )
                session.add(row)
                await session.flush()
                await self._supersede(session, row, expected_active_id)

                resolution = notes or (
                    f"manual match to {baseline_id}" if baseline_id else "manual rejection"
                )
                resolved = await session.execute(
                    sa.update(QualityFlag)
                    .where(
                        QualityFlag.source_id == source_id,
                        QualityFlag.resolved.is_(False),
                    )
                    .values(
                        resolved=True,
                        resolved_at=now,
                        resolved_by=actor,
                        resolution_notes=resolution,
                    )
                )
        except IntegrityError as exc:
            raise LedgerWriteConflict(
                f"concurrent write on the active match of source {source_id!r}"
            ) from exc

        log.info(
            "match_adjudicated",
            record_id=row.id,
            baseline_id=baseline_id,
            flags_resolved=resolved.rowcount,
        )
        return row

    async def open_flags(
        self,
        batch_id: str | None = None,
        flag_type: str | None = None,
        severity: str | None = None,
        limit: int | None = None,
    ) -> list[QualityFlag]:
        """Unresolved quality flags, most severe first, then oldest first."""
        stmt = sa.select(QualityFlag).where(QualityFlag.resolved.is_(False))
        if batch_id is not None:
            stmt = stmt.where(QualityFlag.batch_id == batch_id)
        if flag_type is not None:
            stmt = stmt.where(QualityFlag.flag_type == flag_type)
        if severity is not None:
            stmt = stmt.where(QualityFlag.severity == severity)
        stmt = stmt.order_by(_SEVERITY_RANK, QualityFlag.created_at, QualityFlag.id)
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def resolve_flag(self, flag_id: int, actor: str, notes: str | None = None) -> QualityFlag:
        """Mark one quality flag resolved.  Flags are never deleted."""
        async with self.session_factory() as session, session.begin():
            flag = await session.get(QualityFlag, flag_id)
            if flag is None:
                raise RecordNotFound(f"quality flag {flag_id} not found")
            flag.resolved = True
            flag.resolved_at = utcnow()
            flag.resolved_by = actor
            flag.resolution_notes = notes

        logger.info("quality_flag_resolved", flag_id=flag_id, actor=actor)
        return flag
