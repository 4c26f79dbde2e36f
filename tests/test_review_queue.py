"""Tests for the review queue."""

import pytest

from conftest import make_source
from district_linkage.errors import LedgerWriteConflict, RecordNotFound
from district_linkage.ledger.match_ledger import MatchLedger
from district_linkage.matching.chain import MatchCandidate
from district_linkage.matching.conflicts import (
    AMBIGUOUS_TARGET,
    LOW_CONFIDENCE_FUZZY,
    PLAUSIBILITY_CHECK_FAILED,
    Accept,
    Flag,
    Reject,
)
from district_linkage.records import BaselineEntity
from district_linkage.review.queue import ReviewQueue

LA = BaselineEntity(id="0622710", name="Los Angeles USD", region="CA")
SAN_DIEGO = BaselineEntity(id="0634320", name="San Diego Unified", region="CA")
BOSTON = BaselineEntity(id="2502790", name="Boston Public Schools", region="MA")
OAK_PARK = BaselineEntity(id="1709930", name="Oak Park Elementary School District 97", region="IL")


def _accept(source_id, region, baseline, method, confidence, review_reasons=()):
    """Helper: an Accept for one seeded source."""
    record = make_source(id=source_id, region=region)
    candidate = MatchCandidate(source_id, baseline, method, confidence, confidence)
    return Accept(record=record, candidate=candidate, review_reasons=review_reasons)


@pytest.fixture
async def queued(seeded_db, ctx):
    """Three active decisions: fuzzy 0.738 (IL), normalized 0.90 (CA), exact 0.95 (MA)."""
    ledger = MatchLedger(seeded_db)
    rows = {
        "src-la": await ledger.record(
            _accept("src-la", "CA", LA, "normalized_name", 0.90), ctx, activate=True
        ),
        "src-id": await ledger.record(
            _accept("src-id", "IL", OAK_PARK, "fuzzy", 0.738, (LOW_CONFIDENCE_FUZZY,)), ctx, activate=True
        ),
        "src-bos": await ledger.record(
            _accept("src-bos", "MA", BOSTON, "exact_name", 0.95), ctx, activate=True
        ),
    }
    return rows


class TestPending:
    @pytest.mark.asyncio
    async def test_lowest_confidence_first(self, seeded_db, queued):
        """The low-confidence fuzzy accept is at the front of the queue."""
        pending = await ReviewQueue(seeded_db).pending()
        assert [r.source_id for r in pending] == ["src-id", "src-la", "src-bos"]
        assert pending[0].confidence == pytest.approx(0.738)
        assert pending[0].flag_for_review is True

    @pytest.mark.asyncio
    async def test_min_confidence(self, seeded_db, queued):
        pending = await ReviewQueue(seeded_db).pending(min_confidence=0.9)
        assert [r.source_id for r in pending] == ["src-la", "src-bos"]

    @pytest.mark.asyncio
    async def test_flagged_only(self, seeded_db, queued):
        pending = await ReviewQueue(seeded_db).pending(flagged_only=True)
        assert [r.source_id for r in pending] == ["src-id"]

    @pytest.mark.asyncio
    async def test_region(self, seeded_db, queued):
        pending = await ReviewQueue(seeded_db).pending(region="ma")
        assert [r.source_id for r in pending] == ["src-bos"]

    @pytest.mark.asyncio
    async def test_limit(self, seeded_db, queued):
        pending = await ReviewQueue(seeded_db).pending(limit=1)
        assert [r.source_id for r in pending] == ["src-id"]

    @pytest.mark.asyncio
    async def test_flagged_records_included_rejections_excluded(self, seeded_db, ctx):
        ledger = MatchLedger(seeded_db)
        await ledger.record(
            Flag(record=make_source(id="src-la", region="CA"), reason=PLAUSIBILITY_CHECK_FAILED),
            ctx,
            activate=True,
        )
        await ledger.record(
            Reject(record=make_source(id="src-wy", region="WY"), reason="no_candidate_region"),
            ctx,
            activate=True,
        )
        pending = await ReviewQueue(seeded_db).pending()
        assert [(r.source_id, r.status) for r in pending] == [("src-la", "flagged")]

    @pytest.mark.asyncio
    async def test_inactive_records_not_queued(self, seeded_db, ctx):
        await MatchLedger(seeded_db).record(_accept("src-la", "CA", LA, "fuzzy", 0.74), ctx)
        assert await ReviewQueue(seeded_db).pending() == []


class TestDecisions:
    @pytest.mark.asyncio
    async def test_accept_leaves_queue(self, seeded_db, queued):
        queue = ReviewQueue(seeded_db)
        manual = await queue.accept(queued["src-id"].id, "reviewer")

        assert manual.method == "manual"
        assert manual.baseline_id == "1709930"
        assert manual.verified is True
        assert [r.source_id for r in await queue.pending()] == ["src-la", "src-bos"]

    @pytest.mark.asyncio
    async def test_accept_other_candidate_of_ambiguous_flag(self, seeded_db, ctx):
        ledger = MatchLedger(seeded_db)
        record = make_source(id="src-la", region="CA")
        flagged = await ledger.record(
            Flag(
                record=record,
                reason=AMBIGUOUS_TARGET,
                candidates=(
                    MatchCandidate("src-la", LA, "fuzzy", 0.84, 0.756),
                    MatchCandidate("src-la", SAN_DIEGO, "fuzzy", 0.83, 0.747),
                ),
            ),
            ctx,
            activate=True,
        )

        manual = await ReviewQueue(seeded_db, ledger).accept(
            flagged.id, "reviewer", baseline_id="0634320", notes="second candidate"
        )

        assert manual.baseline_id == "0634320"
        assert (await ledger.active_match_for("src-la")).id == manual.id
        assert await ledger.open_flags() == []

    @pytest.mark.asyncio
    async def test_accept_without_target(self, seeded_db, ctx):
        ledger = MatchLedger(seeded_db)
        row = await ledger.record(
            Flag(record=make_source(id="src-la", region="CA"), reason=PLAUSIBILITY_CHECK_FAILED),
            ctx,
            activate=True,
        )
        with pytest.raises(RecordNotFound):
            await ReviewQueue(seeded_db).accept(row.id, "reviewer")

    @pytest.mark.asyncio
    async def test_stale_record_conflicts(self, seeded_db, queued, ctx):
        """Deciding on a record that was superseded meanwhile is refused."""
        ledger = MatchLedger(seeded_db)
        await ledger.record(_accept("src-la", "CA", SAN_DIEGO, "fuzzy", 0.81), ctx, activate=True)

        with pytest.raises(LedgerWriteConflict):
            await ReviewQueue(seeded_db).accept(queued["src-la"].id, "reviewer")

    @pytest.mark.asyncio
    async def test_reject(self, seeded_db, queued):
        queue = ReviewQueue(seeded_db)
        manual = await queue.reject(queued["src-bos"].id, "reviewer", notes="closed district")

        assert manual.status == "rejected"
        assert manual.baseline_id is None
        assert manual.evidence["previous_baseline_id"] == "2502790"
        assert [r.source_id for r in await queue.pending()] == ["src-id", "src-la"]

    @pytest.mark.asyncio
    async def test_unknown_record(self, seeded_db):
        with pytest.raises(RecordNotFound):
            await ReviewQueue(seeded_db).reject(999, "reviewer")
