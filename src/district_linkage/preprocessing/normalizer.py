"""District name normalization.

Folds free-text district names into a comparable form:

    1. Unicode NFC + case folding
    2. Whitespace trimmed and collapsed
    3. Organizational phrases folded ("unified school district" -> "usd")
    4. Abbreviation tokens folded ("saint" -> "st")
    5. Denylisted punctuation stripped, separators turned into spaces

Rules are ordered ``(pattern, replacement)`` pairs loaded from
``config/normalization.yaml`` and always evaluated longest-pattern-first.
The whole pass is repeated until the text stops changing; because every
replacement is shorter than its pattern this terminates, and the result
is a fixpoint, so ``normalize(normalize(x)) == normalize(x)``.
"""

from __future__ import annotations

import re
import unicodedata
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, PrivateAttr, field_validator, model_validator

_DEFAULT_RULES_PATH = Path(__file__).resolve().parents[1] / "config" / "normalization.yaml"

# Upper bound on rule passes; valid rule sets settle in two or three
_MAX_PASSES = 16

_WHITESPACE = re.compile(r"\s+")


def _clean_pattern(text: str) -> str:
    return _WHITESPACE.sub(" ", unicodedata.normalize("NFC", text).casefold()).strip()


class NormalizationRules(BaseModel):
    """Ordered replacement rules for district names."""

    version: int = 1
    strip_characters: str = "#.,()'\"!?:;*&"
    space_characters: str = "-/"
    phrases: list[tuple[str, str]] = []
    tokens: list[tuple[str, str]] = []

    _compiled: Any = PrivateAttr(default=None)

    @field_validator("phrases", "tokens", mode="before")
    @classmethod
    def require_string_pairs(cls, rules: Any) -> Any:
        """Reject rules YAML has read as something other than text.

        Unquoted ``no``, ``on`` or ``yes`` load as booleans.
        """
        for rule in rules or []:
            if (
                not isinstance(rule, (list, tuple))
                or len(rule) != 2
                or not all(isinstance(part, str) for part in rule)
            ):
                raise ValueError(
                    f"normalization rule {rule!r} must be a [pattern, replacement] pair "
                    "of strings; quote YAML words such as \"no\""
                )
        return rules

    @field_validator("phrases", "tokens")
    @classmethod
    def order_longest_first(cls, rules: list[tuple[str, str]]) -> list[tuple[str, str]]:
        """Clean each rule and sort by pattern length, longest first.

        The sort is stable, so equal-length patterns keep their file order.
        """
        cleaned: list[tuple[str, str]] = []
        for pattern, replacement in rules:
            pattern = _clean_pattern(pattern)
            replacement = _clean_pattern(replacement)
            if not pattern:
                raise ValueError("normalization rule with an empty pattern")
            if len(replacement) >= len(pattern):
                raise ValueError(
                    f"replacement {replacement!r} is not shorter than pattern {pattern!r}"
                )
            cleaned.append((pattern, replacement))
        return sorted(cleaned, key=lambda rule: -len(rule[0]))

    @model_validator(mode="after")
    def check_character_sets(self) -> "NormalizationRules":
        overlap = set(self.strip_characters) & set(self.space_characters)
        if overlap:
            raise ValueError(f"characters both stripped and spaced: {sorted(overlap)}")
        return self


class _CompiledRules:
    """Regexes compiled once per rule set."""

    def __init__(self, rules: NormalizationRules) -> None:
        self.phrases = [
            (f"phrase:{pattern}", _word_regex(pattern), replacement)
            for pattern, replacement in rules.phrases
        ]
        self.tokens = [
            (f"token:{pattern}", _word_regex(pattern), replacement)
            for pattern, replacement in rules.tokens
        ]
        self.strip_table = str.maketrans(
            {**{ch: None for ch in rules.strip_characters}, **{ch: " " for ch in rules.space_characters}}
        )


def _word_regex(pattern: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(pattern)}(?!\w)")


def _compiled(rules: NormalizationRules) -> _CompiledRules:
    if rules._compiled is None:
        rules._compiled = _CompiledRules(rules)
    return rules._compiled


def load_normalization_rules(config_path: Path) -> NormalizationRules:
    """Load normalization rules from a YAML file.

    Args:
        config_path: Path to a ``normalization.yaml`` file.

    Returns:
        Validated rules, sorted longest-pattern-first.  An empty file
        yields a rule set that only cleans case, whitespace and punctuation.
    """
    with open(config_path, encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if not raw:
        return NormalizationRules()

    return NormalizationRules.model_validate(raw)


@lru_cache
def default_rules() -> NormalizationRules:
    """Rules shipped with the package."""
    return load_normalization_rules(_DEFAULT_RULES_PATH)


def _single_pass(text: str, compiled: _CompiledRules, applied: list[str]) -> str:
    result = unicodedata.normalize("NFC", text).casefold()
    result = _WHITESPACE.sub(" ", result).strip()

    for label, regex, replacement in compiled.phrases:
        result, count = regex.subn(replacement, result)
        if count:
            applied.append(label)

    for label, regex, replacement in compiled.tokens:
        result, count = regex.subn(replacement, result)
        if count:
            applied.append(label)

    stripped = result.translate(compiled.strip_table)
    if stripped != result:
        applied.append("punctuation")

    return _WHITESPACE.sub(" ", stripped).strip()


def normalize_with_trace(
    raw_name: str | None, rules: NormalizationRules | None = None
) -> tuple[str, tuple[str, ...]]:
    """Normalize a name and report which rules changed it.

    Returns:
        ``(normalized, applied)`` where ``applied`` lists rule labels such
        as ``"phrase:unified school district"`` or ``"punctuation"`` in the
        order they first fired.
    """
    if not raw_name:
        return "", ()

    compiled = _compiled(rules if rules is not None else default_rules())
    applied: list[str] = []
    current = raw_name
    for _ in range(_MAX_PASSES):
        nxt = _single_pass(current, compiled, applied)
        if nxt == current:
            break
        current = nxt

    return current, tuple(dict.fromkeys(applied))


def normalize(raw_name: str | None, rules: NormalizationRules | None = None) -> str:
    """Canonicalize a district name for comparison.

    Total and pure: any input, including ``None`` and the empty string,
    returns a string; blank or punctuation-only input returns ``""``.
    """
    return normalize_with_trace(raw_name, rules)[0]


def basic_form(raw_name: str | None) -> str:
    """Case-fold and collapse whitespace only.

    Two names with equal basic forms are "trivially equal"; the strategy
    chain uses this to tell exact_name from normalized_name matches.
    """
    if not raw_name:
        return ""
    return _WHITESPACE.sub(" ", unicodedata.normalize("NFC", raw_name).casefold()).strip()


def normalize_city(city: str | None, rules: NormalizationRules | None = None) -> str:
    """Normalize a city name: case, whitespace and punctuation only."""
    if not city:
        return ""
    compiled = _compiled(rules if rules is not None else default_rules())
    folded = basic_form(city).translate(compiled.strip_table)
    return _WHITESPACE.sub(" ", folded).strip()


def normalize_region(region: str | None) -> str:
    """Upper-case and trim a region code (``" ca "`` -> ``"CA"``)."""
    if not region:
        return ""
    return region.strip().upper()
