"""Single-event path: apply one listening event to one track"""
import logging
from typing import Union

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from track_rating.db import Database
from track_rating.exceptions import NotFoundError, TransientStoreError, ValidationError
from track_rating.models.db import DEFAULT_RATING, RatingEventModel
from track_rating.models.events import EventKind
from track_rating.models.results import RatingUpdate
from track_rating.rating import RatingEngine
from track_rating.services.storage import RatingLedger, TrackCatalog

logger = logging.getLogger(__name__)

# Aggregate counter bumped by each rating event
COUNTER_FIELDS = {
    EventKind.PLAY: 'total_plays',
    EventKind.SKIP: 'skip_count',
    EventKind.DOWNLOAD: 'download_count',
}

# Errors that mean "somebody else touched this row" or "storage hiccup"
CONFLICT_ERRORS = (StaleDataError, OperationalError, DBAPIError)

class RatingUpdater:
    """
    Applies one event atomically: read, rate, append ledger row, bump
    counters and confidence, write the rating back.

    The row is read with SELECT ... FOR UPDATE and written under the
    optimistic version check, so a concurrent writer either waits or makes
    this transaction fail and retry; an update is never silently lost.
    """

    def __init__(self, db: Database, engine: RatingEngine, max_attempts: int = 3):
        self.db = db
        self.engine = engine
        self.max_attempts = max_attempts

    def apply_event(self, track_id: str, kind: Union[EventKind, str]) -> RatingUpdate:
        if not track_id or not str(track_id).strip():
            raise ValidationError("track_id is required")
        kind = EventKind.parse_rated(kind)
        last_exception = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return self._apply_once(track_id, kind)
            except CONFLICT_ERRORS as e:
                last_exception = e
                logger.warning(f"Conflict applying {kind.value} to {track_id} (attempt {attempt}/{self.max_attempts}): {e}")

        logger.error(f"Giving up on {kind.value} for {track_id} after {self.max_attempts} attempts")
        raise TransientStoreError(
            f"Could not apply {kind.value} to track {track_id}: {last_exception}"
        ) from last_exception

    def _apply_once(self, track_id: str, kind: EventKind) -> RatingUpdate:
        with self.db.session() as session:
            catalog = TrackCatalog(session)
            ledger = RatingLedger(session)

            track = catalog.get_for_update(track_id)
            if track is None:
                raise NotFoundError("Track", track_id)

            current_rating = track.rating if track.rating is not None else DEFAULT_RATING
            confidence = track.rating_confidence or 0
            change = self.engine.apply(current_rating, confidence, kind)

            ledger.append(RatingEventModel(
                track_id=track_id,
                old_rating=change.old_rating,
                new_rating=change.new_rating,
                event_type=kind.value,
                rating_change=change.rating_change,
                confidence_at_event=change.confidence_at_event
            ))

            counter = COUNTER_FIELDS[kind]
            setattr(track, counter, (getattr(track, counter) or 0) + 1)
            track.rating_confidence = confidence + 1
            track.rating = change.new_rating

            update = RatingUpdate(
                track_id=track_id,
                event_type=kind.value,
                old_rating=change.old_rating,
                new_rating=change.new_rating,
                rating_change=change.rating_change,
                confidence_at_event=confidence,
                rating_confidence=confidence + 1
            )

        logger.info(f"Applied {kind.value} to {track_id}: {change.old_rating:.2f} -> {change.new_rating:.2f}")
        return update
