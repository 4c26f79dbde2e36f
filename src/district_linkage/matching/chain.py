"""Match strategy chain.

Applies the match methods in fixed priority order and stops at the first
tier that produces a candidate:

    1. exact_id         record carries an NCES id found in the index
    2. exact_name       normalized names equal and raw names trivially equal
    3. normalized_name  normalized names equal only after normalization
    4. fuzzy            best Jaro-Winkler similarity within the region
    5. none             no candidate

exact_name and normalized_name are one comparison with two audit labels.
The chain is PURE: it reads the candidate index and the policy, never the
database, so any number of worker threads can share one instance.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from district_linkage.errors import InvalidRecord
from district_linkage.matching.candidate_index import CandidateIndex
from district_linkage.matching.policy import MatchPolicy
from district_linkage.matching.similarity import jaro_winkler
from district_linkage.preprocessing.normalizer import (
    basic_form,
    normalize_city,
    normalize_region,
    normalize_with_trace,
)
from district_linkage.records import BaselineEntity, SourceRecord

# Rejection reasons produced by the chain itself
NO_CANDIDATE = "no_candidate"
UNMATCHED = "unmatched"

# Float slack when comparing similarities against the tie margin
_EPSILON = 1e-9


@dataclass(frozen=True)
class MatchCandidate:
    """A transient pairing of one source record with one baseline entity.

    Attributes:
        source_id: Source record id.
        baseline: The proposed baseline entity.
        method: One of ``MATCH_METHODS``.
        similarity: Raw name similarity in [0, 1] (1.0 for exact tiers).
        confidence: Method-specific confidence, rounded to 4 places.
        evidence: JSON-serializable details explaining the decision.
        review_required: True for fuzzy matches without corroboration.
    """

    source_id: str
    baseline: BaselineEntity
    method: str
    similarity: float
    confidence: float
    evidence: dict = field(default_factory=dict)
    review_required: bool = False

    @property
    def baseline_id(self) -> str:
        return self.baseline.id


@dataclass(frozen=True)
class ChainResult:
    """Everything the deciding tier produced for one record.

    Attributes:
        record: The evaluated source record.
        candidates: Candidates of the deciding tier, best first.  More than
            one means the tier could not tell them apart.
        reason: Why there is no candidate (``"no_candidate"`` or
            ``"unmatched"``); ``None`` when candidates exist.
        best_similarity: Highest fuzzy similarity seen, for unmatched
            records; ``None`` otherwise.
    """

    record: SourceRecord
    candidates: tuple[MatchCandidate, ...] = ()
    reason: str | None = None
    best_similarity: float | None = None

    @property
    def best(self) -> MatchCandidate | None:
        return self.candidates[0] if self.candidates else None

    @property
    def is_ambiguous(self) -> bool:
        return len(self.candidates) > 1


class MatchStrategyChain:
    """Evaluate source records against a candidate index under a policy."""

    def __init__(
        self,
        index: CandidateIndex,
        policy: MatchPolicy | None = None,
        similarity: Callable[[str, str], float] = jaro_winkler,
    ) -> None:
        self.index = index
        self.policy = policy or MatchPolicy()
        self.similarity = similarity

    def match(self, record: SourceRecord) -> MatchCandidate | None:
        """Return the single candidate of the first tier that fires.

        Returns ``None`` when no tier produced a candidate or when the
        deciding tier produced several; use :meth:`evaluate` to see them.

        Raises:
            InvalidRecord: Blank name or region.
            NoCandidateRegion: Region absent from the candidate index.
        """
        result = self.evaluate(record)
        if len(result.candidates) != 1:
            return None
        return result.candidates[0]

    def evaluate(self, record: SourceRecord) -> ChainResult:
        """Run the tiers in priority order and report the deciding tier.

        Raises:
            InvalidRecord: Blank name or region.
            NoCandidateRegion: Region absent from the candidate index.
        """
        normalized, source_rules = normalize_with_trace(record.name, self.index.rules)
        if not normalized:
            raise InvalidRecord(record.id, "blank name after normalization")
        region = normalize_region(record.region)
        if not region:
            raise InvalidRecord(record.id, "blank region")

        exact = self._exact_id(record, region)
        if exact is not None:
            return ChainResult(record=record, candidates=(exact,))

        regional = self.index.candidates_for(region)

        named = self._name_tier(record, regional, normalized, source_rules)
        if named:
            return ChainResult(record=record, candidates=named)

        return self._fuzzy_tier(record, regional, normalized)

    def _exact_id(self, record: SourceRecord, region: str) -> MatchCandidate | None:
        entity = self.index.by_exact_id(record.baseline_id)
        if entity is None:
            return None
        return MatchCandidate(
            source_id=record.id,
            baseline=entity,
            method="exact_id",
            similarity=1.0,
            confidence=round(self.policy.confidence.exact_id, 4),
            evidence={
                "baseline_id": entity.id,
                "region_match": normalize_region(entity.region) == region,
                "policy_version": self.policy.version,
            },
        )

    def _name_tier(
        self,
        record: SourceRecord,
        regional: Sequence[BaselineEntity],
        normalized: str,
        source_rules: tuple[str, ...],
    ) -> tuple[MatchCandidate, ...]:
        raw = basic_form(record.name)
        found: list[MatchCandidate] = []
        for entity in regional:
            if self.index.normalized_name(entity.id) != normalized:
                continue
            if basic_form(entity.name) == raw:
                method = "exact_name"
                confidence = self.policy.confidence.exact_name
            else:
                method = "normalized_name"
                confidence = self.policy.confidence.normalized_name
            found.append(
                MatchCandidate(
                    source_id=record.id,
                    baseline=entity,
                    method=method,
                    similarity=1.0,
                    confidence=round(confidence, 4),
                    evidence={
                        "normalized_name": normalized,
                        "source_rules": list(source_rules),
                        "baseline_rules": list(self.index.applied_rules(entity.id)),
                        "policy_version": self.policy.version,
                    },
                )
            )
        # exact_name before normalized_name, then by id
        found.sort(key=lambda c: (c.method != "exact_name", c.baseline_id))
        return tuple(found)

    def _fuzzy_tier(
        self,
        record: SourceRecord,
        regional: Sequence[BaselineEntity],
        normalized: str,
    ) -> ChainResult:
        fuzzy = self.policy.fuzzy
        scored = [
            (self.similarity(normalized, self.index.normalized_name(e.id)), e)
            for e in regional
            if self.index.normalized_name(e.id)
        ]
        if not scored:
            return ChainResult(record=record, reason=NO_CANDIDATE)

        scored.sort(key=lambda pair: (-pair[0], pair[1].id))
        best = scored[0][0]
        if best < fuzzy.review_similarity:
            return ChainResult(record=record, reason=UNMATCHED, best_similarity=round(best, 4))

        rivals = [pair for pair in scored if best - pair[0] <= fuzzy.tie_margin + _EPSILON]
        candidates = tuple(
            self._fuzzy_candidate(record, entity, sim, normalized, len(rivals) - 1)
            for sim, entity in rivals
        )
        return ChainResult(record=record, candidates=candidates)

    def _fuzzy_candidate(
        self,
        record: SourceRecord,
        entity: BaselineEntity,
        sim: float,
        normalized: str,
        rival_count: int,
    ) -> MatchCandidate:
        fuzzy = self.policy.fuzzy
        source_city = normalize_city(record.city, self.index.rules)
        baseline_city = normalize_city(entity.city, self.index.rules)
        city_known = bool(source_city and baseline_city)
        same_city = city_known and source_city == baseline_city

        if sim >= fuzzy.accept_similarity:
            band, factor, review = "accept", fuzzy.accept_factor, False
        elif sim >= fuzzy.city_similarity and same_city:
            band, factor, review = "city", fuzzy.city_factor, False
        else:
            band, factor, review = "review", fuzzy.review_factor, True

        return MatchCandidate(
            source_id=record.id,
            baseline=entity,
            method="fuzzy",
            similarity=round(sim, 4),
            confidence=round(sim * factor, 4),
            evidence={
                "similarity": round(sim, 4),
                "source_normalized": normalized,
                "baseline_normalized": self.index.normalized_name(entity.id),
                "band": band,
                "city_corroborated": same_city if city_known else None,
                "near_tie_rivals": rival_count,
                "policy_version": self.policy.version,
            },
            review_required=review,
        )
