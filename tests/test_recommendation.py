"""
Tests for RecommendationScorer.

Validates seed-driven bias (similar / contrast / none), genre and exclusion
filters, the blended score, ranking, and the full-catalog fallback.
"""

import pytest

from track_rating.models.db import TrackModel
from track_rating.services.recommendation import RecommendationScorer
from track_rating.services.storage import TrackCatalog


class FixedRandom:
    """Random source that always returns the same draw."""

    def __init__(self, value=0.5):
        self.value = value

    def random(self):
        return self.value


class SequenceRandom:
    """Random source that replays a fixed list of draws."""

    def __init__(self, values):
        self.values = list(values)

    def random(self):
        return self.values.pop(0)


def _ids(response):
    return [t.track_id for t in response.tracks]


def _add(db, track_id, **fields):
    with db.session() as session:
        TrackCatalog(session).add(track_id, **fields)


class TestScore:

    def test_blend_of_rating_popularity_and_chance(self, db):
        scorer = RecommendationScorer(db, rng=FixedRandom(0.5))
        track = TrackModel(id="t", rating=2000.0, rating_confidence=50, total_plays=9, skip_count=0)
        assert scorer.score(track) == pytest.approx(0.2 * 0.5 + 0.2 * 0.9 + 0.6 * 0.5)

    def test_missing_fields_use_neutral_values(self, db):
        scorer = RecommendationScorer(db, rng=FixedRandom(0.0))
        track = TrackModel(id="t")
        assert scorer.score(track) == pytest.approx(0.2 * (1500 / 2000) * (1 / 51))

    def test_random_term_dominates(self, db):
        popular = TrackModel(id="p", rating=2400.0, rating_confidence=1000, total_plays=1000, skip_count=0)
        obscure = TrackModel(id="o", rating=1500.0, rating_confidence=0, total_plays=0, skip_count=0)
        low_draw = RecommendationScorer(db, rng=FixedRandom(0.0)).score(popular)
        high_draw = RecommendationScorer(db, rng=FixedRandom(0.99)).score(obscure)
        assert high_draw > low_draw


class TestSeedBias:

    def test_mostly_played_seed_prefers_same_genre_or_artist(self, service, catalog):
        for _ in range(8):
            service.record_play("rock-1")
        for _ in range(2):
            service.record_skip("rock-1")

        response = service.recommend(seed_track_id="rock-1", limit=5)

        assert response.bias == "similar"
        assert response.fallback is False
        assert _ids(response) == ["rock-2"]
        assert response.based_on.track_id == "rock-1"
        assert response.based_on.play_ratio == pytest.approx(0.8)
        assert response.based_on.skip_ratio == pytest.approx(0.2)

    def test_shared_artist_is_enough(self, service, db, catalog):
        _add(db, "eno-2", genres=["electronic"], artists=["Brian Eno"])
        for _ in range(3):
            service.record_play("ambient-1")

        response = service.recommend(seed_track_id="ambient-1", limit=5)

        assert response.bias == "similar"
        assert _ids(response) == ["eno-2"]

    def test_similar_bias_with_no_match_falls_back(self, service, catalog):
        for _ in range(8):
            service.record_play("jazz-1")
        for _ in range(2):
            service.record_skip("jazz-1")

        response = service.recommend(seed_track_id="jazz-1", limit=3)

        assert response.bias == "similar"
        assert response.fallback is True
        assert len(response.tracks) == 3
        assert set(_ids(response)) <= set(catalog)

    def test_skipped_seed_prefers_other_genres_at_similar_rating(self, service, db, catalog):
        _add(db, "jazz-2", genres=["jazz"], artists=["Bill Evans"])
        _add(db, "far-pop", genres=["pop"], artists=["Someone"], rating=2000.0)
        for _ in range(5):
            service.record_play("jazz-1")
        for _ in range(5):
            service.record_skip("jazz-1")

        response = service.recommend(seed_track_id="jazz-1", limit=10)

        assert response.bias == "contrast"
        assert response.fallback is False
        assert set(_ids(response)) == {"rock-1", "rock-2", "ambient-1"}

    def test_neutral_history_only_excludes_seed(self, service, catalog):
        for _ in range(3):
            service.record_play("rock-1")
        for _ in range(1):
            service.record_skip("rock-1")
        for _ in range(6):
            service.record_download("rock-1")

        response = service.recommend(seed_track_id="rock-1", limit=10)

        assert response.bias == "none"
        assert set(_ids(response)) == {"rock-2", "jazz-1", "ambient-1"}

    def test_seed_without_history(self, service, catalog):
        response = service.recommend(seed_track_id="rock-2", limit=10)
        assert response.bias == "none"
        assert response.based_on.play_ratio == 0
        assert "rock-2" not in _ids(response)

    def test_only_recent_window_counts(self, service, catalog):
        for _ in range(10):
            service.record_skip("rock-1")
        for _ in range(10):
            service.record_play("rock-1")

        response = service.recommend(seed_track_id="rock-1", limit=10)

        assert response.based_on.play_ratio == 1.0
        assert response.bias == "similar"

    def test_unknown_seed_is_ignored(self, service, catalog):
        response = service.recommend(seed_track_id="ghost", limit=10)
        assert response.based_on is None
        assert response.bias == "none"
        assert len(response.tracks) == 4


class TestFilters:

    def test_genre_filter_is_case_insensitive(self, service, catalog):
        response = service.recommend(genre="ROCK", limit=10)
        assert set(_ids(response)) == {"rock-1", "rock-2"}
        assert response.fallback is False

    def test_genre_and_exclusions_combine(self, service, catalog):
        response = service.recommend(genre="rock", exclude_ids=["rock-1"], limit=10)
        assert _ids(response) == ["rock-2"]

    def test_genre_filter_applies_on_top_of_bias(self, service, db, catalog):
        _add(db, "radiohead-jazz", genres=["jazz"], artists=["Radiohead"])
        for _ in range(8):
            service.record_play("rock-1")

        response = service.recommend(seed_track_id="rock-1", genre="jazz", limit=10)

        assert _ids(response) == ["radiohead-jazz"]

    def test_unmatched_filters_fall_back_to_catalog(self, service, catalog):
        response = service.recommend(genre="polka", limit=2)
        assert response.fallback is True
        assert len(response.tracks) == 2

    def test_excluding_everything_still_returns_something(self, service, catalog):
        response = service.recommend(exclude_ids=catalog, limit=2)
        assert response.fallback is True
        assert len(response.tracks) == 2

    def test_empty_catalog(self, service):
        response = service.recommend(limit=5)
        assert response.tracks == []
        assert response.fallback is True


class TestRanking:

    def test_sorted_by_score_and_truncated(self, service, catalog):
        response = service.recommend(limit=3)
        scores = [t.score for t in response.tracks]
        assert len(scores) == 3
        assert scores == sorted(scores, reverse=True)

    def test_popular_tracks_win_when_chance_is_equal(self, db):
        _add(db, "hit", total_plays=90, skip_count=0, rating=1900.0, rating_confidence=200)
        _add(db, "meh", total_plays=10, skip_count=10)
        _add(db, "flop", total_plays=0, skip_count=40, rating=1200.0, rating_confidence=40)
        scorer = RecommendationScorer(db, rng=FixedRandom(0.3))

        response = scorer.recommend(limit=3)

        assert _ids(response) == ["hit", "meh", "flop"]

    def test_every_candidate_is_scored_before_truncating(self, db):
        _add(db, "a-hit", total_plays=500, skip_count=0, rating=2000.0, rating_confidence=500)
        _add(db, "m-mid", total_plays=50, skip_count=50)
        _add(db, "z-obscure", total_plays=0, skip_count=20, rating=1300.0)
        # Draws are handed out in id order
        scorer = RecommendationScorer(db, rng=SequenceRandom([0.0, 0.1, 0.99]))

        response = scorer.recommend(limit=1)

        assert _ids(response) == ["z-obscure"]

    def test_reads_do_not_write(self, service, db, catalog):
        service.recommend(seed_track_id="rock-1", limit=2)
        stats = service.rating_stats("rock-1")
        assert stats.total_changes == 0
        assert stats.current_rating == 1500
