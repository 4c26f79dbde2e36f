"""Unified district directory: baseline districts joined with their active match.

Each NCES district becomes one directory row.  Contact fields come from
the state registry record of its active accepted match when there is one,
falling back to the baseline's own values.  Rows carry a data-quality
tier:

    A  website + superintendent name + email
    B  website + superintendent name
    C  website only
    D  superintendent name, no website
    E  neither
"""

from __future__ import annotations

import json
from collections import Counter
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from district_linkage.matching.policy import method_priority
from district_linkage.models.match_record import MatchRecord
from district_linkage.models.nces_district import NcesDistrict
from district_linkage.models.state_registry_district import StateRegistryDistrict
from district_linkage.preprocessing.normalizer import normalize_region

EXPORT_CHUNK_SIZE = 500

QUALITY_TIERS = ("A", "B", "C", "D", "E")


def _present(value: str | None) -> bool:
    return bool(value and value.strip())


def compute_quality_tier(website: str | None, superintendent: str | None, email: str | None) -> str:
    """Classify a directory row by contact completeness."""
    has_website = _present(website)
    has_supt = _present(superintendent)
    if has_website and has_supt and _present(email):
        return "A"
    if has_website and has_supt:
        return "B"
    if has_website:
        return "C"
    if has_supt:
        return "D"
    return "E"


def split_full_name(full_name: str | None) -> tuple[str, str]:
    """Split a superintendent name into ``(first, last)``.

    Handles "Last, First" and "First Last"; with more than two words the
    first word is the first name and the rest the last name.  A single
    word is treated as a last name.
    """
    if not _present(full_name):
        return "", ""
    name = full_name.strip()

    if "," in name:
        last, _, first = name.partition(",")
        return first.strip(), last.strip()

    parts = name.split()
    if len(parts) == 1:
        return "", parts[0]
    return parts[0], " ".join(parts[1:])


def _join_name(first: str | None, last: str | None) -> str | None:
    joined = " ".join(p.strip() for p in (first, last) if _present(p))
    return joined or None


def _pick_match(
    current: tuple[MatchRecord, StateRegistryDistrict] | None,
    candidate: tuple[MatchRecord, StateRegistryDistrict],
) -> tuple[MatchRecord, StateRegistryDistrict]:
    """Prefer verified, then higher-priority method, then higher confidence, then newest."""
    if current is None:
        return candidate

    def rank(pair: tuple[MatchRecord, StateRegistryDistrict]) -> tuple:
        record = pair[0]
        return (
            not record.verified,
            method_priority(record.method),
            -(record.confidence or 0.0),
            -record.id,
        )

    return min(current, candidate, key=rank)


def directory_row(
    district: NcesDistrict,
    match: tuple[MatchRecord, StateRegistryDistrict] | None,
) -> dict:
    """Build one directory row for a baseline district."""
    record, source = match if match is not None else (None, None)

    superintendent = district.superintendent_name
    email = district.superintendent_email
    website = district.website_domain
    phone = district.phone
    if source is not None:
        superintendent = (
            _join_name(source.administrator_first_name, source.administrator_last_name)
            or superintendent
        )
        email = source.administrator_email or email
        website = source.website_url or website
        phone = source.phone or phone

    first, last = split_full_name(superintendent)
    return {
        "nces_id": district.nces_id,
        "state": district.state,
        "district_name": district.name,
        "superintendent_name": superintendent,
        "superintendent_first_name": first,
        "superintendent_last_name": last,
        "superintendent_email": email,
        "website": website,
        "phone": phone,
        "city": district.city,
        "county": district.county,
        "enrollment": district.enrollment,
        "source_id": source.id if source is not None else None,
        "match_method": record.method if record is not None else None,
        "match_confidence": record.confidence if record is not None else None,
        "match_verified": record.verified if record is not None else False,
        "quality_tier": compute_quality_tier(website, superintendent, email),
    }


async def build_directory(session: AsyncSession, region: str | None = None) -> list[dict]:
    """Materialize the unified directory, ordered by state then name.

    Args:
        session: Async SQLAlchemy session.
        region: Only districts of this state.

    Returns:
        One row per NCES district; districts without an active accepted
        match keep their baseline contact data.
    """
    district_stmt = sa.select(NcesDistrict)
    match_stmt = (
        sa.select(MatchRecord, StateRegistryDistrict)
        .join(StateRegistryDistrict, StateRegistryDistrict.id == MatchRecord.source_id)
        .where(
            MatchRecord.active.is_(True),
            MatchRecord.status == "accepted",
            MatchRecord.baseline_id.is_not(None),
        )
    )
    if region is not None:
        state = normalize_region(region)
        district_stmt = district_stmt.where(NcesDistrict.state == state)
        match_stmt = match_stmt.where(StateRegistryDistrict.state == state)
    district_stmt = district_stmt.order_by(NcesDistrict.state, NcesDistrict.name, NcesDistrict.nces_id)

    districts = (await session.execute(district_stmt)).scalars().all()
    matches: dict[str, tuple[MatchRecord, StateRegistryDistrict]] = {}
    for record, source in (await session.execute(match_stmt)).all():
        matches[record.baseline_id] = _pick_match(matches.get(record.baseline_id), (record, source))

    return [directory_row(d, matches.get(d.nces_id)) for d in districts]


def tier_counts(rows: list[dict]) -> dict[str, int]:
    counts = Counter(row["quality_tier"] for row in rows)
    return {tier: counts.get(tier, 0) for tier in QUALITY_TIERS}


def chunk_rows(
    rows: list[dict],
    chunk_size: int = EXPORT_CHUNK_SIZE,
    filters: dict | None = None,
) -> list[tuple[str, str]]:
    """Split directory rows into named JSON chunks.

    Returns a list of ``(filename, json_content)`` tuples.  Each chunk is a
    complete JSON document with a ``districts`` array and ``metadata`` block.

    When *rows* is empty a single file with an empty ``districts`` array is
    returned (never an empty list).
    """
    now = datetime.now(timezone.utc)
    timestamp = now.strftime("%Y-%m-%dT%H-%M")
    suffix = f"_{filters['region']}" if filters and filters.get("region") else ""

    chunks = [rows[i : i + chunk_size] for i in range(0, len(rows), chunk_size)] or [[]]
    files: list[tuple[str, str]] = []
    for part, chunk in enumerate(chunks, start=1):
        content = json.dumps(
            {
                "districts": chunk,
                "metadata": {
                    "exportedAt": now.isoformat(),
                    "districtCount": len(chunk),
                    "tierCounts": tier_counts(chunk),
                    "part": part,
                    "totalParts": len(chunks),
                    "filters": filters,
                },
            },
            ensure_ascii=False,
            indent=2,
        )
        files.append((f"directory{suffix}_{timestamp}_part_{part}.json", content))
    return files
