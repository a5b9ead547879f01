"""Rating service: the one object handlers talk to"""
import logging
import random
import time
from typing import Any, Callable, Iterable, List, Optional, Union

from track_rating.config import Settings
from track_rating.db import Database
from track_rating.exceptions import NotFoundError, ValidationError
from track_rating.models.events import EventKind
from track_rating.models.results import (
    BatchResult, RatingHistoryEntry, RatingStats, RatingUpdate, RecommendationResponse
)
from track_rating.rating import BASELINE_RATING, RatingEngine
from track_rating.services.batch import BatchProcessor
from track_rating.services.recommendation import RecommendationScorer
from track_rating.services.storage import RatingLedger, TrackCatalog
from track_rating.services.updater import RatingUpdater

logger = logging.getLogger(__name__)

class TrackRatingService:
    """
    Owns the rating engine and the components built on it.

    Constructed once at startup with its settings and an initialised
    Database, then passed explicitly to whatever handles requests.
    """

    def __init__(self, settings: Settings, db: Database,
                 rng: Optional[random.Random] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.settings = settings
        self.db = db
        self.engine = RatingEngine()
        self.updater = RatingUpdater(db, self.engine, max_attempts=settings.SINGLE_EVENT_MAX_ATTEMPTS)
        self.batch = BatchProcessor(db, self.engine, settings.batch_settings, sleep=sleep)
        self.recommender = RecommendationScorer(
            db,
            history_window=settings.RECOMMENDATION_HISTORY_WINDOW,
            rng=rng
        )

    # --- Single-event operations ---

    def record_event(self, track_id: str, kind: Union[EventKind, str]) -> RatingUpdate:
        """Apply one play/skip/download. Raises NotFoundError for unknown tracks, ValidationError for a blank id or kind."""
        return self.updater.apply_event(track_id, kind)

    def record_play(self, track_id: str) -> RatingUpdate:
        return self.record_event(track_id, EventKind.PLAY)

    def record_skip(self, track_id: str) -> RatingUpdate:
        return self.record_event(track_id, EventKind.SKIP)

    def record_download(self, track_id: str) -> RatingUpdate:
        return self.record_event(track_id, EventKind.DOWNLOAD)

    # --- Batch ---

    def process_batch(self, events: Iterable[Any], user_id: Optional[str] = None) -> BatchResult:
        return self.batch.process(events, user_id=user_id)

    # --- Reads ---

    def recommend(self, seed_track_id: Optional[str] = None, genre: Optional[str] = None,
                  exclude_ids: Optional[Iterable[str]] = None, limit: int = 1) -> RecommendationResponse:
        return self.recommender.recommend(
            seed_track_id=seed_track_id,
            genre=genre,
            exclude_ids=exclude_ids,
            limit=limit
        )

    def rating_history(self, track_id: str, limit: Optional[int] = None) -> List[RatingHistoryEntry]:
        """Most recent ledger rows for a track, newest first"""
        if limit is None:
            limit = self.settings.RATING_HISTORY_LIMIT
        elif limit < 1:
            raise ValidationError(f"limit must be positive, got {limit}")
        with self.db.read_session() as session:
            if TrackCatalog(session).get(track_id) is None:
                raise NotFoundError("Track", track_id)
            rows = RatingLedger(session).recent_for_track(track_id, limit)
            return [
                RatingHistoryEntry(
                    track_id=row.track_id,
                    old_rating=row.old_rating,
                    new_rating=row.new_rating,
                    event_type=row.event_type,
                    rating_change=row.rating_change,
                    confidence_at_event=row.confidence_at_event,
                    created_at=row.created_at
                )
                for row in rows
            ]

    def rating_stats(self, track_id: str) -> RatingStats:
        with self.db.read_session() as session:
            track = TrackCatalog(session).get(track_id)
            if track is None:
                raise NotFoundError("Track", track_id)
            ledger = RatingLedger(session)
            history = ledger.all_for_track(track_id)
            changes = [row.rating_change for row in history]

            return RatingStats(
                track_id=track_id,
                current_rating=track.rating,
                confidence=track.rating_confidence,
                total_changes=len(history),
                biggest_gain=max(changes) if changes else 0.0,
                biggest_loss=min(changes) if changes else 0.0,
                events={
                    'plays': sum(1 for row in history if row.event_type == EventKind.PLAY.value),
                    'skips': sum(1 for row in history if row.event_type == EventKind.SKIP.value),
                    'downloads': sum(1 for row in history if row.event_type == EventKind.DOWNLOAD.value)
                },
                replayed_rating=BASELINE_RATING + ledger.sum_changes(track_id)
            )

    # --- Catalog seeding ---

    def add_track(self, track_id: str, title: Optional[str] = None,
                  genres: Iterable[str] = (), artists: Iterable[str] = ()) -> None:
        with self.db.session() as session:
            TrackCatalog(session).add(track_id, title=title, genres=genres, artists=artists)
