"""Conflict resolver.

Turns the candidates of the deciding chain tier into one of three
resolutions:

* ``Accept``: a single plausible same-region candidate
* ``Flag``: a decision a human has to make (ambiguous target, failed
  plausibility check)
* ``Reject``: no usable candidate, or a region mismatch

``resolve_batch`` is the second pass over a whole import batch.  It sees
every accepted record at once, so many-to-one groups (several sources of
one batch accepted onto the same baseline entity) are judged together
instead of by whichever worker finished first.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace

import structlog

from district_linkage.matching.chain import NO_CANDIDATE, UNMATCHED, ChainResult, MatchCandidate
from district_linkage.matching.policy import MatchPolicy, method_priority
from district_linkage.preprocessing.normalizer import normalize_region
from district_linkage.records import SourceRecord

logger = structlog.get_logger()

AMBIGUOUS_TARGET = "ambiguous_target"
PLAUSIBILITY_CHECK_FAILED = "plausibility_check_failed"
POSSIBLE_DUPLICATE = "possible_duplicate"
REGION_MISMATCH = "region_mismatch"
NO_CANDIDATE_REGION = "no_candidate_region"
LOW_CONFIDENCE_FUZZY = "low_confidence_fuzzy"

__all__ = [
    "AMBIGUOUS_TARGET",
    "Accept",
    "ConflictResolver",
    "Flag",
    "LOW_CONFIDENCE_FUZZY",
    "NO_CANDIDATE",
    "NO_CANDIDATE_REGION",
    "PLAUSIBILITY_CHECK_FAILED",
    "POSSIBLE_DUPLICATE",
    "REGION_MISMATCH",
    "Reject",
    "Resolution",
    "UNMATCHED",
]


@dataclass(frozen=True)
class Accept:
    """The record is linked to ``candidate``.

    ``review_reasons`` lists why a human should still look at it
    (``low_confidence_fuzzy``, ``possible_duplicate``); ``duplicate_of``
    names the source that won a many-to-one group.
    """

    record: SourceRecord
    candidate: MatchCandidate
    review_reasons: tuple[str, ...] = ()
    duplicate_of: str | None = None

    @property
    def flag_for_review(self) -> bool:
        return bool(self.review_reasons)


@dataclass(frozen=True)
class Flag:
    """The record needs human adjudication; nothing is auto-accepted."""

    record: SourceRecord
    reason: str
    candidates: tuple[MatchCandidate, ...] = ()
    description: str = ""


@dataclass(frozen=True)
class Reject:
    """The record is linked to nothing."""

    record: SourceRecord
    reason: str
    detail: str = ""
    candidates: tuple[MatchCandidate, ...] = ()


Resolution = Accept | Flag | Reject


def enrollment_diverges(source: int | None, baseline: int | None, ratio: float) -> bool:
    """True if two enrollment counts differ by more than *ratio* times.

    Absent values on either side never diverge; zero against a positive
    count always does.
    """
    if source is None or baseline is None:
        return False
    low, high = sorted((source, baseline))
    if low <= 0:
        return high > 0
    return high > ratio * low


class ConflictResolver:
    """Apply the conflict policy to chain results."""

    def __init__(self, policy: MatchPolicy | None = None) -> None:
        self.policy = policy or MatchPolicy()

    def resolve(self, record: SourceRecord, candidates: Sequence[MatchCandidate]) -> Resolution:
        """Resolve one record against the candidates of its deciding tier."""
        if not candidates:
            return Reject(record=record, reason=NO_CANDIDATE)

        candidates = tuple(candidates)
        best = candidates[0]
        region = normalize_region(record.region)
        if normalize_region(best.baseline.region) != region:
            return Reject(
                record=record,
                reason=REGION_MISMATCH,
                detail=(
                    f"baseline {best.baseline_id} is in {best.baseline.region}, "
                    f"record is in {record.region}"
                ),
                candidates=candidates,
            )

        if len(candidates) > 1:
            names = ", ".join(f"{c.baseline_id} ({c.baseline.name})" for c in candidates)
            return Flag(
                record=record,
                reason=AMBIGUOUS_TARGET,
                candidates=candidates,
                description=f"{len(candidates)} plausible targets via {best.method}: {names}",
            )

        ratio = self.policy.conflict.plausibility_ratio
        if enrollment_diverges(record.enrollment, best.baseline.enrollment, ratio):
            return Flag(
                record=record,
                reason=PLAUSIBILITY_CHECK_FAILED,
                candidates=candidates,
                description=(
                    f"enrollment {record.enrollment} vs baseline "
                    f"{best.baseline.enrollment} differs by more than {ratio:g}x"
                ),
            )

        reasons = (LOW_CONFIDENCE_FUZZY,) if best.review_required else ()
        return Accept(record=record, candidate=best, review_reasons=reasons)

    def resolve_result(self, result: ChainResult) -> Resolution:
        """Resolve a chain result, keeping the chain's rejection reason."""
        if not result.candidates:
            detail = ""
            if result.best_similarity is not None:
                detail = f"best similarity {result.best_similarity}"
            return Reject(record=result.record, reason=result.reason or NO_CANDIDATE, detail=detail)
        return self.resolve(result.record, result.candidates)

    def resolve_batch(self, results: Iterable[ChainResult]) -> list[Resolution]:
        """Resolve every result of one batch, then judge many-to-one groups.

        A group qualifies when at least one member reaches
        ``duplicate_min_confidence``.  Its members all stay accepted; when
        they used different methods, members not using the group's
        highest-priority method are marked ``possible_duplicate``.
        """
        resolutions = [self.resolve_result(result) for result in results]

        groups: dict[tuple[str, str], list[int]] = {}
        for position, resolution in enumerate(resolutions):
            if isinstance(resolution, Accept):
                key = (resolution.candidate.baseline_id, resolution.record.batch_id)
                groups.setdefault(key, []).append(position)

        threshold = self.policy.conflict.duplicate_min_confidence
        duplicate_groups = 0
        for positions in groups.values():
            if len(positions) < 2:
                continue
            members = [resolutions[p] for p in positions]
            if max(m.candidate.confidence for m in members) < threshold:
                continue
            if len({m.candidate.method for m in members}) < 2:
                continue

            duplicate_groups += 1
            top = min(method_priority(m.candidate.method) for m in members)
            winner = min(
                (m for m in members if method_priority(m.candidate.method) == top),
                key=lambda m: (-m.candidate.confidence, m.record.id),
            )
            for position, member in zip(positions, members):
                if method_priority(member.candidate.method) == top:
                    continue
                resolutions[position] = replace(
                    member,
                    review_reasons=member.review_reasons + (POSSIBLE_DUPLICATE,),
                    duplicate_of=winner.record.id,
                )

        logger.info(
            "batch_conflicts_resolved",
            accepted=sum(isinstance(r, Accept) for r in resolutions),
            flagged=sum(isinstance(r, Flag) for r in resolutions),
            rejected=sum(isinstance(r, Reject) for r in resolutions),
            duplicate_groups=duplicate_groups,
        )
        return resolutions
