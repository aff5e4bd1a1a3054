"""Tests for pillar_journey.core.recommendation."""

from pillar_journey.core.pillars import PillarKey
from pillar_journey.core.recommendation import (
    _recommend_cached,
    priority_order,
    recommend,
    relevance_score,
    score_band,
)


class TestRecommend:
    def test_lowest_non_zero_is_primary(self):
        result = recommend({"self_care": 2, "skills": 8, "talent": 0})
        assert result.primary.pillar_key is PillarKey.SELF_CARE
        assert result.secondary.pillar_key is PillarKey.SKILLS

    def test_single_scored_pillar_has_no_secondary(self):
        result = recommend({PillarKey.BRAND: 5.5, PillarKey.ECONOMY: 0})
        assert result.primary.pillar_key is PillarKey.BRAND
        assert result.secondary is None

    def test_nothing_scored(self):
        result = recommend({"self_care": 0})
        assert result.primary is None
        assert result.secondary is None
        assert result.readiness_score == 0.0
        assert result.success_indicators == ()

    def test_ties_follow_canonical_order(self):
        result = recommend({"economy": 3, "skills": 3})
        assert result.primary.pillar_key is PillarKey.SKILLS
        assert result.secondary.pillar_key is PillarKey.ECONOMY

    def test_unknown_keys_ignored(self):
        result = recommend({"astrology": 1, "talent": 6})
        assert result.primary.pillar_key is PillarKey.TALENT

    def test_readiness_is_mean_of_scored(self):
        result = recommend({"self_care": 2, "skills": 8, "talent": 0})
        assert result.readiness_score == 5.0

    def test_text_and_indicators_attached(self):
        result = recommend({"self_care": 2})
        assert "Self Care" in result.primary.motivation
        assert result.primary.expected_outcome
        assert len(result.success_indicators) == 3

    def test_memoized_on_normalized_input(self):
        _recommend_cached.cache_clear()
        recommend({"skills": 4, "self_care": 6})
        recommend({PillarKey.SELF_CARE: 6, "skills": 4.0})
        info = _recommend_cached.cache_info()
        assert info.misses == 1
        assert info.hits == 1


class TestScoring:
    def test_relevance_is_inverse_distance(self):
        assert relevance_score(2) == 8.0
        assert relevance_score(10) == 0.0
        assert relevance_score(0) == 10.0

    def test_relevance_clamped(self):
        assert relevance_score(12) == 0.0
        assert relevance_score(-3) == 10.0

    def test_bands(self):
        assert score_band(3.9) == "low"
        assert score_band(4) == "mid"
        assert score_band(6.9) == "mid"
        assert score_band(7) == "high"

    def test_priority_order(self):
        order = priority_order({"brand": 7, "self_care": 2, "skills": 0, "talent": 5})
        assert order == [PillarKey.SELF_CARE, PillarKey.TALENT, PillarKey.BRAND]
