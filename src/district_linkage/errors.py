"""Error taxonomy for the matching engine.

Per-record errors (``InvalidRecord``, ``NoCandidateRegion``) are recovered
by the batch runner and counted in the batch summary.  Batch-level errors
(``IndexBuildError``, ``LedgerWriteConflict``, ``UnknownBatch``) abort the
batch before anything is activated.

Ambiguity is not an error: it surfaces as an ``ambiguous_target`` flag.
"""

from __future__ import annotations


class DistrictLinkageError(Exception):
    """Base class for all matching engine errors."""


class InvalidRecord(DistrictLinkageError):
    """A source record is malformed and cannot enter the strategy chain."""

    def __init__(self, source_id: str | None, reason: str) -> None:
        super().__init__(f"invalid source record {source_id!r}: {reason}")
        self.source_id = source_id
        self.reason = reason


class NoCandidateRegion(DistrictLinkageError):
    """The record's region has no baseline entities in the candidate index."""

    def __init__(self, region: str) -> None:
        super().__init__(f"no baseline entities indexed for region {region!r}")
        self.region = region


class IndexBuildError(DistrictLinkageError):
    """The candidate index could not be built from the baseline set."""


class LedgerWriteConflict(DistrictLinkageError):
    """Two writers raced on the active match of the same source record.

    Indicates that ledger writes were not serialized; the batch must stop.
    """


class UnknownBatch(DistrictLinkageError):
    """The import batch audit entry does not exist."""

    def __init__(self, batch_id: str) -> None:
        super().__init__(f"import batch {batch_id!r} has no audit entry")
        self.batch_id = batch_id


class RecordNotFound(DistrictLinkageError):
    """A source record or baseline entity referenced by an adjudication is missing."""


class RegionMismatch(DistrictLinkageError):
    """An adjudication tried to pair records from different regions."""
