"""Read-only "what to play next" ranking"""
import logging
import random
from typing import Iterable, List, Optional

from sqlalchemy import func, not_, or_
from sqlalchemy.orm import Session

from track_rating.db import Database
from track_rating.models.db import TrackArtistModel, TrackGenreModel, TrackModel
from track_rating.models.events import EventKind
from track_rating.models.results import RecommendationResponse, ScoredTrack, SeedSummary
from track_rating.services.storage import RatingLedger, TrackCatalog

logger = logging.getLogger(__name__)

# Score weights; the random term dominates so discovery beats popularity
RATING_WEIGHT = 0.2
PLAY_RATIO_WEIGHT = 0.2
RANDOM_WEIGHT = 0.6

SIMILAR_PLAY_RATIO = 0.7
CONTRAST_SKIP_RATIO = 0.3
CONTRAST_RATING_WINDOW = 300

# Neutral values for missing aggregate fields
NEUTRAL_RATING = 1500.0
NEUTRAL_CONFIDENCE = 1
NEUTRAL_PLAYS = 0
NEUTRAL_SKIPS = 0

BIAS_SIMILAR = "similar"
BIAS_CONTRAST = "contrast"
BIAS_NONE = "none"


def _value(value, default):
    return default if value is None else value


class RecommendationScorer:
    """
    Ranks candidate tracks by a blend of stored rating, play/skip ratio and
    randomness, optionally biased by how listeners treated a seed track.
    Holds no locks and writes nothing.
    """

    def __init__(self, db: Database, history_window: int = 10, rng: Optional[random.Random] = None):
        self.db = db
        self.history_window = history_window
        self.rng = rng or random.Random()

    def score(self, track: TrackModel) -> float:
        """
        0.2 * (rating/2000) * (confidence/(confidence+50))
        + 0.2 * (plays/(plays+skips+1))
        + 0.6 * uniform[0, 1)
        """
        rating = _value(track.rating, NEUTRAL_RATING)
        confidence = _value(track.rating_confidence, NEUTRAL_CONFIDENCE)
        plays = _value(track.total_plays, NEUTRAL_PLAYS)
        skips = _value(track.skip_count, NEUTRAL_SKIPS)

        rating_term = (rating / 2000) * (confidence / (confidence + 50))
        play_term = plays / (plays + skips + 1)
        return (RATING_WEIGHT * rating_term
                + PLAY_RATIO_WEIGHT * play_term
                + RANDOM_WEIGHT * self.rng.random())

    def recommend(self, seed_track_id: Optional[str] = None, genre: Optional[str] = None,
                  exclude_ids: Optional[Iterable[str]] = None, limit: int = 1) -> RecommendationResponse:
        """
        Return up to `limit` ranked tracks.

        If the seed, genre and exclusion filters leave nothing, the whole
        catalog is ranked instead and the response is flagged as a fallback.

        Filtering runs in the database but scoring runs here, so every
        matching track is loaded: cost is linear in the filtered catalog.
        The random term outweighs the rest of the score, so any candidate can
        win and the limit cannot be applied before scoring.
        """
        limit = max(0, int(limit))
        exclude = {track_id for track_id in (exclude_ids or ()) if track_id}

        with self.db.read_session() as session:
            catalog = TrackCatalog(session)
            criteria = []
            bias = BIAS_NONE
            based_on = None

            if seed_track_id:
                seed = catalog.get(seed_track_id)
                if seed is None:
                    logger.warning(f"Seed track {seed_track_id} not found; recommending without bias")
                else:
                    based_on = self._summarize_seed(session, seed)
                    bias = self._pick_bias(based_on)
                    criteria.append(TrackModel.id != seed.id)
                    criteria.extend(self._bias_criteria(bias, seed))

            if genre:
                criteria.append(TrackModel.genre_tags.any(TrackGenreModel.genre.icontains(genre, autoescape=True)))
            if exclude:
                criteria.append(TrackModel.id.not_in(sorted(exclude)))

            candidates = catalog.candidates(*criteria)
            fallback = False
            if not candidates:
                logger.info(
                    f"No candidates for seed={seed_track_id} genre={genre} bias={bias}; "
                    f"ranking the full catalog"
                )
                candidates = catalog.candidates()
                fallback = True

            ranked = self._rank(candidates, limit)

        return RecommendationResponse(tracks=ranked, fallback=fallback, bias=bias, based_on=based_on)

    def _summarize_seed(self, session: Session, seed: TrackModel) -> SeedSummary:
        history = RatingLedger(session).recent_for_track(seed.id, self.history_window)
        total = len(history) or 1
        plays = sum(1 for row in history if row.event_type == EventKind.PLAY.value)
        skips = sum(1 for row in history if row.event_type == EventKind.SKIP.value)
        return SeedSummary(
            track_id=seed.id,
            title=seed.title,
            artists=sorted(seed.artists),
            genres=sorted(seed.genres),
            rating=_value(seed.rating, NEUTRAL_RATING),
            confidence=_value(seed.rating_confidence, 0),
            play_ratio=plays / total,
            skip_ratio=skips / total
        )

    def _pick_bias(self, seed: SeedSummary) -> str:
        if seed.play_ratio > SIMILAR_PLAY_RATIO:
            return BIAS_SIMILAR
        elif seed.skip_ratio > CONTRAST_SKIP_RATIO:
            return BIAS_CONTRAST
        return BIAS_NONE

    def _bias_criteria(self, bias: str, seed: TrackModel) -> List:
        genres = list(seed.genres)
        artists = list(seed.artists)
        if bias == BIAS_SIMILAR:
            # Listeners keep playing it: stay close to its genres or artists
            return [or_(
                TrackModel.genre_tags.any(TrackGenreModel.genre.in_(genres)),
                TrackModel.artist_credits.any(TrackArtistModel.artist.in_(artists))
            )]
        if bias == BIAS_CONTRAST:
            # Listeners skip it: other genres at a comparable rating
            seed_rating = _value(seed.rating, NEUTRAL_RATING)
            rating = func.coalesce(TrackModel.rating, NEUTRAL_RATING)
            return [
                not_(TrackModel.genre_tags.any(TrackGenreModel.genre.in_(genres))),
                rating.between(seed_rating - CONTRAST_RATING_WINDOW, seed_rating + CONTRAST_RATING_WINDOW)
            ]
        return []

    def _rank(self, candidates: List[TrackModel], limit: int) -> List[ScoredTrack]:
        scored = [
            ScoredTrack(
                track_id=track.id,
                title=track.title,
                artists=sorted(track.artists),
                genres=sorted(track.genres),
                rating=_value(track.rating, NEUTRAL_RATING),
                rating_confidence=_value(track.rating_confidence, 0),
                total_plays=_value(track.total_plays, NEUTRAL_PLAYS),
                skip_count=_value(track.skip_count, NEUTRAL_SKIPS),
                score=self.score(track)
            )
            for track in candidates
        ]
        scored.sort(key=lambda t: t.score, reverse=True)
        return scored[:limit]
