"""Name similarity using RapidFuzz.

Jaro-Winkler rewards shared prefixes, which suits district names where
the distinguishing word ("Springfield", "Oak Park") usually comes first.
"""

from __future__ import annotations

from rapidfuzz.distance import JaroWinkler


def jaro_winkler(name_a: str, name_b: str) -> float:
    """Jaro-Winkler similarity of two already-normalized names.

    Returns a float in [0, 1]; 0.0 if either name is empty.
    """
    if not name_a or not name_b:
        return 0.0
    return JaroWinkler.normalized_similarity(name_a, name_b)
