"""Tests for district name normalization."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from district_linkage.preprocessing.normalizer import (
    NormalizationRules,
    basic_form,
    default_rules,
    load_normalization_rules,
    normalize,
    normalize_city,
    normalize_region,
    normalize_with_trace,
)

NORMALIZATION_PATH = (
    Path(__file__).resolve().parents[1] / "src" / "district_linkage" / "config" / "normalization.yaml"
)


def test_lowercase_and_whitespace():
    assert normalize("  BOSTON   Public\tSchools ") == "boston ps"


def test_phrase_folding():
    assert normalize("Los Angeles Unified School District") == "los angeles usd"
    assert normalize("Los Angeles USD") == "los angeles usd"


def test_token_abbreviations():
    assert normalize("Saint Jo") == "st jo"
    assert normalize("Mount Vernon City") == "mt vernon city"
    assert normalize("Fort Worth") == "ft worth"


def test_tokens_only_match_whole_words():
    """'fort' inside 'Fortune' and 'and' inside 'Anderson' are left alone."""
    assert normalize("Fortune Anderson") == "fortune anderson"


def test_punctuation_stripped_and_separators_spaced():
    assert normalize("St. Mary's (East)") == "st marys east"
    assert normalize("Winston-Salem/Forsyth") == "winston salem forsyth"


def test_empty_and_none():
    assert normalize("") == ""
    assert normalize(None) == ""


def test_punctuation_only():
    assert normalize("..., !?") == ""


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        "#.,()!",
        "Los Angeles Unified School District",
        "Independent School District No. 625",
        "Community Consolidated School District 15 - Palatine",
        "Saint Jo Independent School District",
        "Mount Pleasant Area School District",
        "Township High School District 214",
        "Unified-School-District",
        "École Publique Montréal",
    ],
)
def test_idempotent(raw):
    once = normalize(raw)
    assert normalize(once) == once


class TestRuleOrdering:
    """Longer phrases must win over the shorter phrases they contain."""

    def test_rules_sorted_longest_first(self):
        rules = default_rules()
        lengths = [len(pattern) for pattern, _ in rules.phrases]
        assert lengths == sorted(lengths, reverse=True)

    def test_longest_first_prevents_prefix_swallowing(self):
        """Declared shortest-first, "school district" would corrupt the longer phrase."""
        rules = NormalizationRules(
            phrases=[
                ("school district", "sd"),
                ("independent school district", "isd"),
            ]
        )
        assert [p for p, _ in rules.phrases] == ["independent school district", "school district"]
        assert normalize("Dallas Independent School District", rules) == "dallas isd"

    def test_shipped_rules_fold_isd(self):
        assert normalize("Dallas Independent School District") == "dallas isd"
        assert normalize("Palatine Community Consolidated School District") == "palatine ccsd"

    def test_equal_length_patterns_keep_file_order(self):
        rules = NormalizationRules(tokens=[("abcd", "x"), ("wxyz", "y")])
        assert [p for p, _ in rules.tokens] == ["abcd", "wxyz"]


class TestRuleValidation:
    def test_replacement_must_be_shorter(self):
        with pytest.raises(ValidationError):
            NormalizationRules(tokens=[("st", "saint")])

    def test_empty_pattern_rejected(self):
        with pytest.raises(ValidationError):
            NormalizationRules(phrases=[("  ", "")])

    def test_overlapping_character_sets_rejected(self):
        with pytest.raises(ValidationError):
            NormalizationRules(strip_characters=".-", space_characters="-")

    def test_rules_are_casefolded(self):
        rules = NormalizationRules(tokens=[("SAINT", "ST")])
        assert rules.tokens == [("saint", "st")]


def test_trace_reports_fired_rules():
    normalized, applied = normalize_with_trace("Los Angeles Unified School District")
    assert normalized == "los angeles usd"
    assert applied == ("phrase:unified school district",)


def test_trace_includes_punctuation():
    _, applied = normalize_with_trace("St. Louis Public Schools")
    assert "punctuation" in applied
    assert "phrase:public schools" in applied


def test_trace_empty_for_clean_name():
    assert normalize_with_trace("boston ps") == ("boston ps", ())


def test_load_shipped_rules():
    rules = load_normalization_rules(NORMALIZATION_PATH)
    assert ("unified school district", "usd") in rules.phrases
    assert ("saint", "st") in rules.tokens
    assert ("number", "no") in rules.tokens


def test_default_rules_normalize_any_name():
    assert normalize("Number 9 School District", default_rules()) == "no 9 sd"


def test_yaml_boolean_replacement_rejected(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text("tokens:\n  - [number, no]\n")
    with pytest.raises(ValidationError, match="must be a \\[pattern, replacement\\] pair of strings"):
        load_normalization_rules(path)


def test_load_empty_yaml(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    rules = load_normalization_rules(path)
    assert rules.phrases == []
    assert normalize("Fort Worth I.S.D.", rules) == "fort worth isd"


def test_basic_form_only_folds_case_and_space():
    assert basic_form("  Los  Angeles USD ") == "los angeles usd"
    assert basic_form("St. Louis") == "st. louis"
    assert basic_form(None) == ""


def test_normalize_city():
    assert normalize_city(" St. Louis ") == "st louis"
    assert normalize_city(None) == ""


def test_normalize_region():
    assert normalize_region(" ca ") == "CA"
    assert normalize_region(None) == ""
