"""Load ORM rows into the plain value types the matcher works on."""

from __future__ import annotations

from collections.abc import Iterable

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from district_linkage.errors import UnknownBatch
from district_linkage.models.import_batch import ImportBatch
from district_linkage.models.nces_district import NcesDistrict
from district_linkage.models.state_registry_district import StateRegistryDistrict
from district_linkage.records import BaselineEntity, SourceRecord


def baseline_from_row(row: NcesDistrict) -> BaselineEntity:
    return BaselineEntity(
        id=row.nces_id,
        name=row.name,
        region=row.state,
        city=row.city,
        enrollment=row.enrollment,
        entity_type=row.lea_type,
    )


def source_from_row(row: StateRegistryDistrict) -> SourceRecord:
    return SourceRecord(
        id=row.id,
        name=row.district_name,
        region=row.state,
        batch_id=row.import_batch_id,
        state_record_id=row.state_district_id,
        baseline_id=row.nces_id,
        city=row.city,
        enrollment=row.enrollment,
        administrator_first_name=row.administrator_first_name,
        administrator_last_name=row.administrator_last_name,
        administrator_email=row.administrator_email,
        phone=row.phone,
        address=row.address,
        website=row.website_url,
    )


async def load_baseline_entities(
    session: AsyncSession, regions: Iterable[str] | None = None
) -> list[BaselineEntity]:
    """Load the NCES baseline, optionally limited to some regions.

    The whole baseline is normally loaded: an exact-id hit may point into
    another region and has to be visible to be rejected.
    """
    stmt = sa.select(NcesDistrict).order_by(NcesDistrict.nces_id)
    if regions is not None:
        stmt = stmt.where(NcesDistrict.state.in_([r.upper() for r in regions]))
    result = await session.execute(stmt)
    return [baseline_from_row(row) for row in result.scalars().all()]


async def get_import_batch(session: AsyncSession, batch_id: str) -> ImportBatch:
    """Fetch the batch audit entry.

    Raises:
        UnknownBatch: Ingestion never recorded this batch.
    """
    batch = await session.get(ImportBatch, batch_id)
    if batch is None:
        raise UnknownBatch(batch_id)
    return batch


async def load_batch_records(session: AsyncSession, batch_id: str) -> list[SourceRecord]:
    """All state registry rows delivered by one import batch."""
    result = await session.execute(
        sa.select(StateRegistryDistrict)
        .where(StateRegistryDistrict.import_batch_id == batch_id)
        .order_by(StateRegistryDistrict.id)
    )
    return [source_from_row(row) for row in result.scalars().all()]
