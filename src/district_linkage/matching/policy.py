"""Match policy table with sensible defaults.

Thresholds and confidences are data: they are loaded from
``config/matching.yaml`` and may be overridden per run by the newest row
of the ``policy_settings`` table.  The *shape* of the policy, the ordered
list of match methods, is fixed here in code.
"""

from __future__ import annotations

from pathlib import Path

import sqlalchemy as sa
import structlog
import yaml
from pydantic import BaseModel, model_validator
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from district_linkage.models.policy_settings import PolicySettings

logger = structlog.get_logger()

# Chain priority order, highest first
MATCH_METHODS: tuple[str, ...] = ("exact_id", "exact_name", "normalized_name", "fuzzy")

# Human adjudication; outranks every automatic method
MANUAL_METHOD = "manual"


def method_priority(method: str) -> int:
    """Rank of a match method; lower is stronger.

    ``manual`` ranks ahead of every automatic method and unknown methods
    rank last.
    """
    if method == MANUAL_METHOD:
        return -1
    try:
        return MATCH_METHODS.index(method)
    except ValueError:
        return len(MATCH_METHODS)


class MethodConfidence(BaseModel):
    """Fixed confidence assigned by the deterministic tiers."""

    exact_id: float = 1.00
    exact_name: float = 0.95
    normalized_name: float = 0.90


class FuzzyPolicy(BaseModel):
    """Similarity thresholds and scaling factors for the fuzzy tier."""

    accept_similarity: float = 0.90
    accept_factor: float = 0.95
    city_similarity: float = 0.85
    city_factor: float = 0.95
    review_similarity: float = 0.80
    review_factor: float = 0.90
    tie_margin: float = 0.02

    @model_validator(mode="after")
    def check_threshold_order(self) -> "FuzzyPolicy":
        """Thresholds must descend: accept >= city >= review."""
        if not (self.accept_similarity >= self.city_similarity >= self.review_similarity):
            raise ValueError(
                "fuzzy thresholds must satisfy accept_similarity >= "
                "city_similarity >= review_similarity"
            )
        if self.tie_margin < 0:
            raise ValueError("tie_margin must not be negative")
        return self


class ConflictPolicy(BaseModel):
    """Parameters for the conflict resolver."""

    duplicate_min_confidence: float = 0.95
    plausibility_ratio: float = 10.0


class MatchPolicy(BaseModel):
    """Top-level policy table combining all sub-policies."""

    version: int = 1
    confidence: MethodConfidence = MethodConfidence()
    fuzzy: FuzzyPolicy = FuzzyPolicy()
    conflict: ConflictPolicy = ConflictPolicy()


def _deep_merge(base: dict, updates: dict) -> dict:
    """Recursively merge *updates* into *base*, only overwriting leaves."""
    merged = dict(base)
    for key, value in updates.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_match_policy(path: Path) -> MatchPolicy:
    """Load the match policy from a YAML file.

    If the file does not exist, returns a ``MatchPolicy`` with all
    default values.  Partial overrides are supported -- only the keys
    present in the YAML file will override defaults.
    """
    if not path.exists():
        return MatchPolicy()

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return MatchPolicy(**data)


async def load_policy_for_run(
    session_factory: async_sessionmaker[AsyncSession], fallback_path: Path
) -> MatchPolicy:
    """Resolve the policy for one batch run.

    The newest ``policy_settings`` row, if any, is merged over the YAML
    policy so operators can tune thresholds without redeploying.
    """
    base = load_match_policy(fallback_path)

    async with session_factory() as session:
        result = await session.execute(
            sa.select(PolicySettings).order_by(PolicySettings.version.desc()).limit(1)
        )
        row = result.scalar_one_or_none()

    if row is None:
        return base

    merged = _deep_merge(base.model_dump(), row.policy_json or {})
    merged["version"] = row.version
    logger.info("policy_override_loaded", version=row.version, created_by=row.created_by)
    return MatchPolicy(**merged)


async def save_policy(
    session: AsyncSession, overrides: dict, created_by: str = "system"
) -> PolicySettings:
    """Append a new policy version holding *overrides*.

    The overrides are validated against ``MatchPolicy`` before they are
    stored.  Older versions stay in the table for audit.
    """
    MatchPolicy(**_deep_merge(MatchPolicy().model_dump(), overrides))

    result = await session.execute(sa.select(sa.func.max(PolicySettings.version)))
    latest = result.scalar_one_or_none() or 0

    row = PolicySettings(version=latest + 1, policy_json=overrides, created_by=created_by)
    session.add(row)
    await session.flush()
    logger.info("policy_saved", version=row.version, created_by=created_by)
    return row
