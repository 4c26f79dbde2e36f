"""Plain value types consumed by the matching engine.

The engine never touches ORM rows: the batch runner converts
``NcesDistrict`` and ``StateRegistryDistrict`` rows into these frozen
dataclasses before matching, so matching workers share nothing mutable.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BaselineEntity:
    """An authoritative district from the national baseline.

    Attributes:
        id: NCES LEA identifier.
        name: Official district name.
        region: Two-letter state code.
        city: Optional city, used to corroborate fuzzy matches.
        enrollment: Optional student count, used as a plausibility guardrail.
        entity_type: Optional LEA type label.
    """

    id: str
    name: str
    region: str
    city: str | None = None
    enrollment: int | None = None
    entity_type: str | None = None


@dataclass(frozen=True)
class SourceRecord:
    """A raw district record delivered by a state import batch.

    ``baseline_id`` is the NCES identifier when the state file carries one;
    ``state_record_id`` is the state's own identifier and is never used to
    look up baseline entities.
    """

    id: str
    name: str
    region: str
    batch_id: str
    state_record_id: str | None = None
    baseline_id: str | None = None
    city: str | None = None
    enrollment: int | None = None
    administrator_first_name: str | None = None
    administrator_last_name: str | None = None
    administrator_email: str | None = None
    phone: str | None = None
    address: str | None = None
    website: str | None = None


@dataclass(frozen=True)
class BatchContext:
    """Explicit per-batch context passed to every matcher and ledger call.

    Replaces any notion of a process-wide "current import"; two batches
    can run side by side with separate contexts.
    """

    batch_id: str
    actor: str = "district_linkage"
    started_at: datetime = field(default_factory=utcnow)
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
