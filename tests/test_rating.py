"""
Tests for RatingEngine.

Covers K-factor priority, the logistic expectation, event outcome scores
and determinism of the computed deltas.
"""

import pytest

from track_rating.models.events import EventKind
from track_rating.rating import RatingEngine


@pytest.fixture
def engine():
    return RatingEngine()


class TestKFactor:
    """K-factor rules are evaluated in priority order."""

    def test_low_confidence_wins_over_high_rating(self, engine):
        assert engine.k_factor(2500, 10) == 32

    def test_high_rating_damps_before_established_rule(self, engine):
        assert engine.k_factor(2200, 150) == 16
        assert engine.k_factor(2101, 50) == 16

    def test_established_track(self, engine):
        assert engine.k_factor(1800, 101) == 24

    def test_default(self, engine):
        assert engine.k_factor(1500, 30) == 32
        assert engine.k_factor(2100, 100) == 32

    @pytest.mark.parametrize("rating,confidence,expected", [
        (1500, 0, 32),
        (1500, 29, 32),
        (2100.5, 30, 16),
        (1500, 100, 32),
        (1500, 500, 24),
    ])
    def test_boundaries(self, engine, rating, confidence, expected):
        assert engine.k_factor(rating, confidence) == expected


class TestRatingChange:

    def test_expected_score_at_baseline(self, engine):
        assert engine.expected_score(1500) == pytest.approx(0.5)

    def test_expected_score_grows_with_rating(self, engine):
        assert engine.expected_score(1900) == pytest.approx(1 / (1 + 10 ** (-1)))
        assert engine.expected_score(1100) < 0.5

    def test_actual_scores(self, engine):
        assert engine.actual_score(EventKind.PLAY) == 0.6
        assert engine.actual_score("skip") == 0.2
        assert engine.actual_score(EventKind.DOWNLOAD) == 0.8
        assert engine.actual_score("pause") == 0.5
        assert engine.actual_score("bogus") == 0.5

    def test_play_raises_and_skip_lowers_at_baseline(self, engine):
        assert engine.calculate_rating_change(1500, 50, "play") > 0
        assert engine.calculate_rating_change(1500, 50, "skip") < 0

    def test_exact_values_at_baseline(self, engine):
        assert engine.calculate_rating_change(1500, 0, "play") == pytest.approx(32 * 0.1)
        assert engine.calculate_rating_change(1500, 0, "skip") == pytest.approx(32 * -0.3)
        assert engine.calculate_rating_change(1500, 0, "download") == pytest.approx(32 * 0.3)
        assert engine.calculate_rating_change(1500, 200, "play") == pytest.approx(24 * 0.1)

    def test_negative_rating_is_not_floored(self, engine):
        change = engine.apply(-400, 5, "skip")
        # Expectation is near zero, so even a skip nudges it up
        assert change.rating_change == pytest.approx(32 * (0.2 - engine.expected_score(-400)))
        assert change.new_rating < 0

    def test_high_rating_is_not_capped(self, engine):
        change = engine.apply(3000, 200, "skip")
        assert change.rating_change == pytest.approx(16 * (0.2 - engine.expected_score(3000)))
        assert change.rating_change < 0
        assert change.new_rating > 2100

    def test_apply_keeps_ledger_identity(self, engine):
        change = engine.apply(1712.25, 40, EventKind.DOWNLOAD)
        assert change.new_rating == change.old_rating + change.rating_change
        assert change.confidence_at_event == 40

    def test_deterministic(self, engine):
        first = [engine.calculate_rating_change(1650, 75, kind) for kind in ("play", "skip", "download")]
        second = [RatingEngine().calculate_rating_change(1650, 75, kind) for kind in ("play", "skip", "download")]
        assert first == second
