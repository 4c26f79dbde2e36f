"""Batch runner: match one import batch end to end.

Four passes over one batch:

1. Evaluate every record against the read-only candidate index, N workers
   at a time (``asyncio.to_thread`` under a semaphore).
2. Resolve conflicts over the whole batch at once.
3. Append each decision to the ledger, one transaction per record, inactive.
4. Activate the batch in a single transaction.

Aborting anywhere before pass 4 leaves nothing active, so no rollback is
needed: the appended rows stay in history as an inactive run.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from district_linkage.batch.loaders import get_import_batch, load_baseline_entities, load_batch_records
from district_linkage.config.settings import get_settings
from district_linkage.errors import DistrictLinkageError, InvalidRecord, NoCandidateRegion
from district_linkage.ledger.match_ledger import MatchLedger
from district_linkage.matching.candidate_index import CandidateIndex
from district_linkage.matching.chain import ChainResult, MatchStrategyChain
from district_linkage.matching.conflicts import NO_CANDIDATE_REGION, Accept, ConflictResolver, Flag
from district_linkage.matching.policy import MatchPolicy, load_policy_for_run
from district_linkage.matching.similarity import jaro_winkler
from district_linkage.models.import_batch import ImportBatch
from district_linkage.preprocessing.normalizer import NormalizationRules
from district_linkage.records import BatchContext, SourceRecord

logger = structlog.get_logger()

MAX_ERROR_EXAMPLES = 20


@dataclass
class BatchSummary:
    """Per-outcome counts for one batch run.

    Attributes:
        batch_id: The import batch.
        run_id: Short id of this run, also stored in ledger evidence.
        total: Records delivered by the batch.
        accepted: Accepted records per match method.
        flagged: Flagged records per reason.
        rejected: Rejected records per reason.
        review_required: Accepted records still marked for review.
        errored: Records that never reached the strategy chain.
        error_examples: Up to ``MAX_ERROR_EXAMPLES`` errored records.
        activated: Ledger records made active by this run.
        status: ``"matched"`` or ``"activated"``.
    """

    batch_id: str
    run_id: str
    total: int = 0
    accepted: Counter = field(default_factory=Counter)
    flagged: Counter = field(default_factory=Counter)
    rejected: Counter = field(default_factory=Counter)
    review_required: int = 0
    errored: int = 0
    error_examples: list[dict] = field(default_factory=list)
    activated: int = 0
    status: str = "matched"

    def record_error(self, source_id: str, error: Exception) -> None:
        self.errored += 1
        if len(self.error_examples) < MAX_ERROR_EXAMPLES:
            self.error_examples.append(
                {"source_id": source_id, "error": type(error).__name__, "message": str(error)}
            )

    def as_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "run_id": self.run_id,
            "total": self.total,
            "accepted": dict(sorted(self.accepted.items())),
            "flagged": dict(sorted(self.flagged.items())),
            "rejected": dict(sorted(self.rejected.items())),
            "review_required": self.review_required,
            "errored": self.errored,
            "error_examples": list(self.error_examples),
            "activated": self.activated,
            "status": self.status,
        }


async def evaluate_records(
    chain: MatchStrategyChain,
    records: Sequence[SourceRecord],
    summary: BatchSummary,
    worker_count: int = 4,
) -> list[ChainResult]:
    """Pass 1: run the strategy chain over every record concurrently.

    Per-record errors are counted in *summary* and never abort the batch.
    A record whose region has no baseline data is counted as an error too,
    and still becomes a result with the ``no_candidate_region`` reason so
    the rejection reaches the ledger.
    """
    semaphore = asyncio.Semaphore(max(1, worker_count))

    async def evaluate_one(record: SourceRecord) -> ChainResult:
        async with semaphore:
            return await asyncio.to_thread(chain.evaluate, record)

    outcomes = await asyncio.gather(
        *[evaluate_one(record) for record in records],
        return_exceptions=True,
    )

    results: list[ChainResult] = []
    for record, outcome in zip(records, outcomes):
        if isinstance(outcome, NoCandidateRegion):
            logger.warning("no_candidate_region", source_id=record.id, region=outcome.region)
            summary.record_error(record.id, outcome)
            results.append(ChainResult(record=record, reason=NO_CANDIDATE_REGION))
        elif isinstance(outcome, InvalidRecord):
            logger.warning("invalid_record", source_id=record.id, reason=outcome.reason)
            summary.record_error(record.id, outcome)
        elif isinstance(outcome, Exception):
            logger.error("evaluate_record_failed", source_id=record.id, error=str(outcome))
            summary.record_error(record.id, outcome)
        else:
            results.append(outcome)
    return results


async def _update_batch(
    session_factory: async_sessionmaker[AsyncSession], summary: BatchSummary, status: str
) -> None:
    async with session_factory() as session, session.begin():
        batch = await session.get(ImportBatch, summary.batch_id)
        if batch is None:
            return
        if batch.record_count is None:
            batch.record_count = summary.total
        batch.success_count = summary.total - summary.errored
        batch.error_count = summary.errored
        batch.error_log = {"run_id": summary.run_id, "examples": list(summary.error_examples)}
        batch.status = status


async def run_batch(
    session_factory: async_sessionmaker[AsyncSession],
    batch_id: str,
    policy: MatchPolicy | None = None,
    actor: str = "district_linkage",
    worker_count: int = 4,
    activate: bool = True,
    rules: NormalizationRules | None = None,
    similarity: Callable[[str, str], float] = jaro_winkler,
) -> BatchSummary:
    """Match every record of an import batch and record the decisions.

    Args:
        session_factory: Async session factory for DB access.
        batch_id: Import batch to match; its audit entry must exist.
        policy: Match policy.  If ``None``, loaded from the database (or
            YAML fallback) for this run.
        actor: Name written to ``decided_by``.
        worker_count: Concurrent matching workers.
        activate: Promote the batch's records to active at the end.
        rules: Normalization rules for the baseline index.
        similarity: Name similarity function for the fuzzy tier.

    Returns:
        The batch summary.

    Raises:
        UnknownBatch: No audit entry for ``batch_id``.
        IndexBuildError: The baseline could not be indexed.
        LedgerWriteConflict: A concurrent writer touched an active record.
    """
    if policy is None:
        policy = await load_policy_for_run(session_factory, get_settings().matching_policy_path)

    ctx = BatchContext(batch_id=batch_id, actor=actor)
    summary = BatchSummary(batch_id=batch_id, run_id=ctx.run_id)
    log = logger.bind(batch_id=batch_id, run_id=ctx.run_id)

    async with session_factory() as session:
        await get_import_batch(session, batch_id)
        records = await load_batch_records(session, batch_id)
        baseline = await load_baseline_entities(session)
    summary.total = len(records)
    log.info("batch_loaded", records=len(records), baseline=len(baseline), policy_version=policy.version)

    try:
        index = CandidateIndex(baseline, rules)
        chain = MatchStrategyChain(index, policy, similarity)

        # Pass 1: match
        results = await evaluate_records(chain, records, summary, worker_count)

        # Pass 2: resolve conflicts across the whole batch
        resolutions = ConflictResolver(policy).resolve_batch(results)

        # Pass 3: append, inactive
        ledger = MatchLedger(session_factory)
        for resolution in resolutions:
            await ledger.record(resolution, ctx)
            if isinstance(resolution, Accept):
                summary.accepted[resolution.candidate.method] += 1
                if resolution.flag_for_review:
                    summary.review_required += 1
            elif isinstance(resolution, Flag):
                summary.flagged[resolution.reason] += 1
            else:
                summary.rejected[resolution.reason] += 1

        await _update_batch(session_factory, summary, "matched")

        # Pass 4: activate
        if activate:
            summary.activated = await ledger.activate_batch(batch_id)
            summary.status = "activated"
    except DistrictLinkageError as exc:
        log.error("batch_failed", error=str(exc), error_type=type(exc).__name__)
        summary.status = "failed"
        await _update_batch(session_factory, summary, "failed")
        raise

    log.info("batch_complete", **summary.as_dict())
    return summary
