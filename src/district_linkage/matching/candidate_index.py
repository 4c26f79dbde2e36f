"""Region-partitioned candidate index over the baseline entity set.

Built once per batch from the full baseline, then only read.  Matching a
source record compares it against the entities of its own region, never
the whole country, which keeps the fuzzy tier at O(region size) per
record instead of O(n x m) overall.

All containers are tuples or ``MappingProxyType`` views, so worker
threads can share one index without locking.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from types import MappingProxyType

import structlog

from district_linkage.errors import IndexBuildError, NoCandidateRegion
from district_linkage.preprocessing.normalizer import (
    NormalizationRules,
    normalize_region,
    normalize_with_trace,
)
from district_linkage.records import BaselineEntity

logger = structlog.get_logger()


@dataclass(frozen=True)
class IndexStats:
    """Statistics about the built index.

    Attributes:
        total_entities: Number of indexed baseline entities.
        region_count: Number of distinct region codes.
        largest_region: Entity count of the biggest partition.
        blank_normalized: Entities whose name normalizes to ``""``; these
            can still match by exact id but never by name.
    """

    total_entities: int
    region_count: int
    largest_region: int
    blank_normalized: int


class CandidateIndex:
    """Read-only lookup of baseline entities by region and by exact id."""

    def __init__(
        self,
        entities: Iterable[BaselineEntity],
        rules: NormalizationRules | None = None,
    ) -> None:
        self.rules = rules
        by_id: dict[str, BaselineEntity] = {}
        by_region: dict[str, list[BaselineEntity]] = {}
        normalized: dict[str, tuple[str, tuple[str, ...]]] = {}

        for entity in entities:
            entity_id = (entity.id or "").strip()
            region = normalize_region(entity.region)
            if not entity_id:
                raise IndexBuildError(f"baseline entity with blank id: {entity.name!r}")
            if not region:
                raise IndexBuildError(f"baseline entity {entity_id!r} has no region")
            if entity_id in by_id:
                raise IndexBuildError(f"duplicate baseline id {entity_id!r}")
            if entity.id != entity_id:
                entity = replace(entity, id=entity_id)

            by_id[entity_id] = entity
            by_region.setdefault(region, []).append(entity)
            normalized[entity_id] = normalize_with_trace(entity.name, rules)

        self._by_id = MappingProxyType(by_id)
        self._by_region = MappingProxyType(
            {
                region: tuple(sorted(members, key=lambda e: e.id))
                for region, members in sorted(by_region.items())
            }
        )
        self._normalized = MappingProxyType(normalized)

        stats = self.stats()
        logger.info(
            "candidate_index_built",
            entities=stats.total_entities,
            regions=stats.region_count,
            largest_region=stats.largest_region,
            blank_normalized=stats.blank_normalized,
        )

    def candidates_for(self, region: str) -> Sequence[BaselineEntity]:
        """Baseline entities of *region*, ordered by id.

        Raises:
            NoCandidateRegion: If the region has no indexed entities.
        """
        key = normalize_region(region)
        try:
            return self._by_region[key]
        except KeyError:
            raise NoCandidateRegion(key) from None

    def by_exact_id(self, entity_id: str | None) -> BaselineEntity | None:
        """Look up a baseline entity by its identifier."""
        if not entity_id:
            return None
        return self._by_id.get(entity_id.strip())

    def normalized_name(self, entity_id: str) -> str:
        """Pre-computed normalized name of an indexed entity."""
        return self._normalized[entity_id][0]

    def applied_rules(self, entity_id: str) -> tuple[str, ...]:
        """Normalization rules that fired on an indexed entity's name."""
        return self._normalized[entity_id][1]

    @property
    def regions(self) -> tuple[str, ...]:
        return tuple(self._by_region)

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._by_id

    def stats(self) -> IndexStats:
        sizes = [len(members) for members in self._by_region.values()]
        return IndexStats(
            total_entities=len(self._by_id),
            region_count=len(sizes),
            largest_region=max(sizes, default=0),
            blank_normalized=sum(1 for name, _ in self._normalized.values() if not name),
        )
