"""Name normalization for district record linkage."""

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

__all__ = [
    "basic_form",
    "default_rules",
    "load_normalization_rules",
    "normalize",
    "normalize_city",
    "normalize_region",
    "normalize_with_trace",
    "NormalizationRules",
]
