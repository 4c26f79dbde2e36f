"""Tests for the region-partitioned candidate index."""

import pytest

from district_linkage.errors import IndexBuildError, NoCandidateRegion
from district_linkage.matching.candidate_index import CandidateIndex
from district_linkage.preprocessing.normalizer import NormalizationRules
from district_linkage.records import BaselineEntity


def test_candidates_partitioned_by_region(baseline):
    """Each region only returns its own entities, ordered by id."""
    index = CandidateIndex(baseline)
    il = index.candidates_for("IL")
    assert [e.id for e in il] == ["1709930", "1737830", "1737860"]
    assert all(e.region == "IL" for e in il)


def test_region_lookup_is_case_insensitive(baseline):
    index = CandidateIndex(baseline)
    assert index.candidates_for(" ca ") == index.candidates_for("CA")


def test_unknown_region_raises(baseline):
    index = CandidateIndex(baseline)
    with pytest.raises(NoCandidateRegion) as exc_info:
        index.candidates_for("wy")
    assert exc_info.value.region == "WY"


def test_by_exact_id(baseline):
    index = CandidateIndex(baseline)
    assert index.by_exact_id("2502790").name == "Boston Public Schools"
    assert index.by_exact_id(" 2502790 ").name == "Boston Public Schools"
    assert index.by_exact_id("9999999") is None
    assert index.by_exact_id(None) is None
    assert index.by_exact_id("") is None


def test_padded_baseline_id_is_found():
    index = CandidateIndex([BaselineEntity(id=" 0600001 ", name="Alpine Union SD", region="CA")])
    entity = index.by_exact_id("0600001")
    assert entity.id == "0600001"
    assert index.normalized_name(entity.id) == "alpine union sd"
    assert [e.id for e in index.candidates_for("CA")] == ["0600001"]


def test_padded_duplicate_id_rejected():
    with pytest.raises(IndexBuildError, match="duplicate"):
        CandidateIndex(
            [
                BaselineEntity(id="1", name="A", region="CA"),
                BaselineEntity(id="1 ", name="B", region="CA"),
            ]
        )


def test_normalized_names_precomputed(baseline):
    index = CandidateIndex(baseline)
    assert index.normalized_name("0622710") == "los angeles usd"
    assert index.normalized_name("4807560") == "st jo isd"
    assert "phrase:independent school district" in index.applied_rules("4807560")
    assert index.applied_rules("0622710") == ()


def test_custom_rules_used_for_baseline_names():
    rules = NormalizationRules(phrases=[("unified", "u")])
    index = CandidateIndex([BaselineEntity(id="1", name="San Diego Unified", region="CA")], rules)
    assert index.rules is rules
    assert index.normalized_name("1") == "san diego u"


def test_stats(baseline):
    index = CandidateIndex(baseline)
    stats = index.stats()
    assert stats.total_entities == 7
    assert stats.region_count == 4
    assert stats.largest_region == 3
    assert stats.blank_normalized == 0
    assert index.regions == ("CA", "IL", "MA", "TX")
    assert len(index) == 7
    assert "1737860" in index
    assert "0000000" not in index


def test_blank_normalized_names_counted():
    """Punctuation-only names are indexed but counted as blank."""
    index = CandidateIndex(
        [
            BaselineEntity(id="1", name="...", region="NV"),
            BaselineEntity(id="2", name="Washoe County School District", region="NV"),
        ]
    )
    assert index.stats().blank_normalized == 1
    assert index.by_exact_id("1") is not None


def test_empty_baseline():
    index = CandidateIndex([])
    assert len(index) == 0
    assert index.stats().largest_region == 0
    with pytest.raises(NoCandidateRegion):
        index.candidates_for("CA")


class TestBuildErrors:
    def test_duplicate_id(self):
        with pytest.raises(IndexBuildError, match="duplicate"):
            CandidateIndex(
                [
                    BaselineEntity(id="1", name="A", region="CA"),
                    BaselineEntity(id="1", name="B", region="CA"),
                ]
            )

    def test_blank_id(self):
        with pytest.raises(IndexBuildError, match="blank id"):
            CandidateIndex([BaselineEntity(id="  ", name="A", region="CA")])

    def test_missing_region(self):
        with pytest.raises(IndexBuildError, match="no region"):
            CandidateIndex([BaselineEntity(id="1", name="A", region="")])
