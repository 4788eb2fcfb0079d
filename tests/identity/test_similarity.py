"""Tests for name similarity metrics."""

import pytest

from claimlink.identity.similarity import (
    NameMetric,
    get_metric,
    overlap_similarity,
    token_sort_similarity,
    word_overlap,
)


class TestTokenSortSimilarity:
    """Tests for the RapidFuzz-backed metric."""

    def test_identical_names_score_1_0(self):
        """Same name scores 1.0."""
        assert token_sort_similarity("Anna Berg", "Anna Berg") == 1.0

    def test_word_order_and_case_ignored(self):
        """Word order and case do not matter."""
        assert token_sort_similarity("Anna Berg", "berg ANNA") == 1.0

    def test_partial_name_is_medium(self):
        """A longer surname lands between the medium and high cut-offs."""
        score = token_sort_similarity("Anna Berg", "Anna Bergstrom")

        assert 0.6 < score <= 0.8

    def test_unrelated_names_score_low(self):
        """Names without shared characters score 0."""
        assert token_sort_similarity("Anna Berg", "Xyz") == 0.0

    @pytest.mark.parametrize("blank", ["", "   "])
    def test_blank_input_scores_0(self, blank: str):
        """Blank names never match."""
        assert token_sort_similarity(blank, "Anna Berg") == 0.0
        assert token_sort_similarity("Anna Berg", blank) == 0.0


class TestOverlapSimilarity:
    """Tests for the word-overlap metric."""

    def test_identical_words(self):
        """Identical words score 1.0."""
        assert word_overlap("anna", "anna") == 1.0

    def test_disjoint_words(self):
        """Words with no shared characters score 0."""
        assert word_overlap("anna", "berg") == 0.0

    def test_single_word_names(self):
        """Single identical words give full similarity."""
        assert overlap_similarity("Anna", "anna") == 1.0

    def test_multi_word_names_are_diluted(self):
        """Every word pair counts, so identical two-word names reach only 0.5."""
        assert overlap_similarity("Anna Berg", "Anna Berg") == pytest.approx(0.5)

    def test_empty_name_scores_0(self):
        """Empty names score 0."""
        assert overlap_similarity("", "Anna") == 0.0


class TestGetMetric:
    """Tests for metric lookup."""

    def test_lookup_by_name(self):
        """Metrics resolve from enum or string."""
        assert get_metric("overlap") is overlap_similarity
        assert get_metric(NameMetric.TOKEN_SORT) is token_sort_similarity

    def test_unknown_metric_raises(self):
        """Unknown metric names are rejected."""
        with pytest.raises(ValueError):
            get_metric("soundex")
