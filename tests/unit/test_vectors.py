"""Tests for cosine-distance pattern lookup."""

import pytest

from fraudshield.domains.fraud.models import FraudPattern, Severity
from fraudshield.domains.fraud.vectors import cosine_distance, nearest_pattern
from tests.factories import QUERY_EMBEDDING, unit_vector


def _pattern(pattern_id: int, embedding: list[float], severity=Severity.HIGH) -> FraudPattern:
    return FraudPattern(pattern_id=pattern_id, severity=severity, embedding=embedding)


class TestCosineDistance:
    def test_identical(self):
        assert cosine_distance([1.0, 2.0], [2.0, 4.0]) == pytest.approx(0.0)

    def test_orthogonal(self):
        assert cosine_distance([1.0, 0.0], [0.0, 1.0]) == pytest.approx(1.0)

    def test_opposite(self):
        assert cosine_distance([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(2.0)

    def test_zero_vector(self):
        assert cosine_distance([0.0, 0.0], [1.0, 0.0]) == 1.0


class TestNearestPattern:
    def test_empty_catalog(self):
        assert nearest_pattern(QUERY_EMBEDDING, []) is None

    def test_picks_closest(self):
        patterns = [_pattern(1, unit_vector(0.5)), _pattern(2, unit_vector(0.9))]
        match = nearest_pattern(QUERY_EMBEDDING, patterns)
        assert match.pattern_id == 2
        assert match.distance == pytest.approx(0.1)

    def test_tie_breaks_on_lowest_id(self):
        patterns = [_pattern(9, unit_vector(0.8)), _pattern(3, unit_vector(0.8))]
        assert nearest_pattern(QUERY_EMBEDDING, patterns).pattern_id == 3

    def test_repeated_lookups_are_identical(self):
        patterns = [_pattern(i, unit_vector(0.1 * i)) for i in range(1, 9)]
        first = nearest_pattern(QUERY_EMBEDDING, patterns)
        second = nearest_pattern(QUERY_EMBEDDING, patterns)
        assert first == second

    def test_mismatched_dimensions_skipped(self):
        patterns = [_pattern(1, [1.0, 0.0]), _pattern(2, unit_vector(0.6))]
        match = nearest_pattern(QUERY_EMBEDDING, patterns)
        assert match.pattern_id == 2

    def test_zero_norm_pattern_never_wins(self):
        patterns = [_pattern(1, [0.0, 0.0, 0.0, 0.0]), _pattern(2, unit_vector(0.2))]
        match = nearest_pattern(QUERY_EMBEDDING, patterns)
        assert match.pattern_id == 2
        assert match.distance == pytest.approx(0.8)
