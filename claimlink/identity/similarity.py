"""Name similarity metrics used by the confidence scorer.

Two metrics are available:
- overlap: average character-overlap ratio across all word pairs. Coarse,
  and sensitive to word count and length.
- token_sort: RapidFuzz token_sort_ratio, order independent
  ("Anna Berg" == "Berg Anna").

Both return a float in [0, 1].
"""

from collections.abc import Callable
from enum import Enum

from rapidfuzz import fuzz, utils


class NameMetric(str, Enum):
    """Selectable name similarity metric."""

    TOKEN_SORT = "token_sort"
    OVERLAP = "overlap"


def _words(name: str) -> list[str]:
    return name.lower().split()


def word_overlap(a: str, b: str) -> float:
    """Share of characters of ``a`` found in ``b`` over combined length.

    Identical words score 1.0; distinct words top out at 0.5.
    """
    if a == b:
        return 1.0
    total = len(a) + len(b)
    if total == 0:
        return 1.0
    shared = sum(1 for ch in a if ch in b)
    return shared / total


def overlap_similarity(name1: str, name2: str) -> float:
    """Average word_overlap over every word pair of the two names."""
    words1 = _words(name1)
    words2 = _words(name2)
    if not words1 or not words2:
        return 0.0
    total = sum(word_overlap(w1, w2) for w1 in words1 for w2 in words2)
    return total / (len(words1) * len(words2))


def token_sort_similarity(name1: str, name2: str) -> float:
    """RapidFuzz token_sort_ratio normalized to 0..1."""
    if not name1.strip() or not name2.strip():
        return 0.0
    return fuzz.token_sort_ratio(name1, name2, processor=utils.default_process) / 100


_METRICS: dict[NameMetric, Callable[[str, str], float]] = {
    NameMetric.TOKEN_SORT: token_sort_similarity,
    NameMetric.OVERLAP: overlap_similarity,
}


def get_metric(metric: NameMetric | str) -> Callable[[str, str], float]:
    """Look up a similarity function by metric name."""
    return _METRICS[NameMetric(metric)]
