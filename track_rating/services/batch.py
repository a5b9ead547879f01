"""Batch ingestion: chunked, per-chunk transactional application of listening events"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from track_rating.config import BatchSettings
from track_rating.db import Database
from track_rating.exceptions import (
    NotFoundError, SubmissionExhaustedError, TransientStoreError, ValidationError
)
from track_rating.models.aggregates import PlayEntry, TrackDelta, TrackSnapshot
from track_rating.models.db import RatingEventModel
from track_rating.models.events import EventKind, ListeningEvent, parse_events, raw_track_id
from track_rating.models.results import BatchError, BatchResult, ChunkSummary, EventResult
from track_rating.rating import RatingEngine
from track_rating.services.storage import RatingLedger, TrackCatalog, UserHistoryStore
from track_rating.services.updater import COUNTER_FIELDS

logger = logging.getLogger(__name__)

SNAPSHOT_MODE = "snapshot"
SEQUENTIAL_MODE = "sequential"

APPLIED = "applied"
FAILED = "failed"

@dataclass
class _Outcome:
    """Mutable per-event status for one attempt"""
    index: int
    event: ListeningEvent
    status: str = FAILED
    rating_change: Optional[float] = None
    error: Optional[str] = None
    message: Optional[str] = None

    def fail(self, exc: Exception) -> None:
        self.status = FAILED
        self.rating_change = None
        self.error = getattr(exc, 'error_type', type(exc).__name__)
        self.message = str(exc)

@dataclass
class _StagedChunk:
    """Writes prepared for one chunk, committed together"""
    ledger_rows: List[RatingEventModel] = field(default_factory=list)
    deltas: Dict[str, TrackDelta] = field(default_factory=dict)
    history: List[PlayEntry] = field(default_factory=list)
    applied: List[Tuple[_Outcome, Optional[float]]] = field(default_factory=list)

    def delta_for(self, track_id: str) -> TrackDelta:
        if track_id not in self.deltas:
            self.deltas[track_id] = TrackDelta(track_id=track_id)
        return self.deltas[track_id]


class BatchProcessor:
    """
    Applies a list of listening events in chunks.

    Each chunk is one transaction: a snapshot of every referenced track is
    read once, ratings are computed from it, and ledger rows, counter
    increments and history entries are committed together. A failing chunk
    is rolled back alone. Only a submission in which nothing succeeded is
    retried as a whole, with a growing delay between attempts.
    """

    def __init__(self, db: Database, engine: RatingEngine, settings: BatchSettings,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        if settings.rating_mode not in (SNAPSHOT_MODE, SEQUENTIAL_MODE):
            raise ValueError(f"Invalid batch rating mode {settings.rating_mode!r}")
        self.db = db
        self.engine = engine
        self.settings = settings
        self._sleep = sleep
        self._clock = clock

    def backoff_delay(self, attempt: int) -> float:
        """Delay before the given 1-based attempt: 0, 1x, 2x the base step"""
        return self.settings.retry_base_delay_seconds * (attempt - 1)

    def process(self, raw_events: Iterable[Any], user_id: Optional[str] = None) -> BatchResult:
        """
        Apply a submission of event descriptors.

        Args:
            raw_events: mappings with track_id, event_type and optional
                timestamp, duration_ms, position_ms, context
            user_id: listener whose monthly history receives the events

        Returns:
            BatchResult with itemized per-event outcomes

        Raises:
            SubmissionExhaustedError: every attempt ended with zero successes
        """
        raw_events = list(raw_events)
        accepted, rejected = parse_events(raw_events)
        for index, _, error in rejected:
            logger.warning(f"Rejected event #{index}: {error}")

        if not accepted:
            logger.info(f"Submission of {len(raw_events)} events has nothing to apply")
            return self._build_result([], rejected, [], attempts=0)

        max_attempts = self.settings.max_attempts
        result = None
        for attempt in range(1, max_attempts + 1):
            delay = self.backoff_delay(attempt)
            if delay > 0:
                logger.info(f"Waiting {delay:.2f}s before submission attempt {attempt}/{max_attempts}")
                self._sleep(delay)

            outcomes, chunks = self._run_attempt(accepted, user_id)
            result = self._build_result(outcomes, rejected, chunks, attempts=attempt)

            if result.processed_count > 0:
                logger.info(
                    f"Submission attempt {attempt}: {result.processed_count} processed, "
                    f"{result.failed_count} failed, {result.rating_updates_applied_count} rating updates"
                )
                return result
            logger.warning(f"Submission attempt {attempt}/{max_attempts} produced no successful events")

        logger.error(f"Submission exhausted after {max_attempts} attempts")
        raise SubmissionExhaustedError(attempts=max_attempts, last_result=result)

    def _run_attempt(self, accepted: List[Tuple[int, ListeningEvent]],
                     user_id: Optional[str]) -> Tuple[List[_Outcome], List[ChunkSummary]]:
        outcomes = [_Outcome(index=index, event=event) for index, event in accepted]
        size = self.settings.chunk_size
        chunks = []
        for chunk_index, start in enumerate(range(0, len(outcomes), size)):
            chunks.append(self._process_chunk(chunk_index, outcomes[start:start + size], user_id))
        return outcomes, chunks

    def _process_chunk(self, chunk_index: int, chunk: List[_Outcome],
                       user_id: Optional[str]) -> ChunkSummary:
        timeout = self.settings.chunk_timeout_seconds
        deadline = self._clock() + timeout
        staged = _StagedChunk()

        try:
            with self.db.session() as session:
                self.db.apply_statement_timeout(session, timeout)
                catalog = TrackCatalog(session)

                snapshot = catalog.snapshot_many(o.event.track_id for o in chunk)
                self._stage(chunk, snapshot, staged, user_id)

                RatingLedger(session).append_many(staged.ledger_rows)
                catalog.apply_deltas(list(staged.deltas.values()))
                if user_id and staged.history:
                    UserHistoryStore(session).append_many(user_id, staged.history)
                session.flush()

                if self._clock() > deadline:
                    raise TransientStoreError(f"Chunk {chunk_index} exceeded its {timeout}s timeout")

        except (SQLAlchemyError, TransientStoreError) as e:
            error = e if isinstance(e, TransientStoreError) else TransientStoreError(str(e))
            logger.error(f"Chunk {chunk_index} ({len(chunk)} events) rolled back: {error}")
            # NotFound outcomes keep their own error
            for outcome in chunk:
                if outcome.error is None:
                    outcome.fail(error)
            return ChunkSummary(
                index=chunk_index,
                size=len(chunk),
                committed=False,
                failed=len(chunk),
                error=str(error)
            )

        for outcome, change in staged.applied:
            outcome.status = APPLIED
            outcome.rating_change = change

        applied = len(staged.applied)
        logger.info(f"Chunk {chunk_index} committed: {applied}/{len(chunk)} events applied")
        return ChunkSummary(
            index=chunk_index,
            size=len(chunk),
            committed=True,
            applied=applied,
            failed=len(chunk) - applied
        )

    def _stage(self, chunk: List[_Outcome], snapshot: Dict[str, TrackSnapshot],
               staged: _StagedChunk, user_id: Optional[str]) -> None:
        """
        Compute every write of the chunk without touching the database.

        In snapshot mode each event is rated from the pre-chunk state, so
        repeated events for one track in a chunk do not compound. In
        sequential mode the state is folded event by event.
        """
        running: Dict[str, TrackSnapshot] = dict(snapshot)
        now = datetime.now(timezone.utc)

        for outcome in chunk:
            event = outcome.event
            kind = event.kind
            if event.track_id not in snapshot:
                outcome.fail(NotFoundError("Track", event.track_id))
                logger.warning(f"Event #{outcome.index}: unknown track {event.track_id}")
                continue

            change_value = None
            if kind.affects_rating:
                state = running[event.track_id] if self.settings.rating_mode == SEQUENTIAL_MODE else snapshot[event.track_id]
                change = self.engine.apply(state.rating, state.rating_confidence, kind)
                change_value = change.rating_change

                staged.ledger_rows.append(RatingEventModel(
                    track_id=event.track_id,
                    old_rating=change.old_rating,
                    new_rating=change.new_rating,
                    event_type=kind.value,
                    rating_change=change.rating_change,
                    confidence_at_event=change.confidence_at_event
                ))

                delta = staged.delta_for(event.track_id)
                delta.rating += change.rating_change
                delta.rating_confidence += 1
                counter = COUNTER_FIELDS[kind]
                setattr(delta, counter, getattr(delta, counter) + 1)

                running[event.track_id] = TrackSnapshot(
                    track_id=event.track_id,
                    rating=change.new_rating,
                    rating_confidence=state.rating_confidence + 1
                )

            if user_id:
                staged.history.append(PlayEntry(
                    track_id=event.track_id,
                    event_type=kind.value,
                    played_at=event.timestamp or now,
                    duration_ms=event.duration_ms,
                    completion_rate=event.completion_rate,
                    skipped=kind is EventKind.SKIP,
                    context=event.context.model_dump() if event.context else {}
                ))

            staged.applied.append((outcome, change_value))

    def _build_result(self, outcomes: List[_Outcome],
                      rejected: List[Tuple[int, Any, ValidationError]],
                      chunks: List[ChunkSummary], attempts: int) -> BatchResult:
        results: List[EventResult] = []
        errors: List[BatchError] = []

        for outcome in outcomes:
            results.append(EventResult(
                index=outcome.index,
                track_id=outcome.event.track_id,
                event_type=outcome.event.event_type,
                status=outcome.status,
                rating_change=outcome.rating_change,
                error=outcome.error,
                message=outcome.message
            ))
            if outcome.status == FAILED:
                errors.append(BatchError(
                    index=outcome.index,
                    track_id=outcome.event.track_id,
                    error=outcome.error or TransientStoreError.error_type,
                    message=outcome.message or ""
                ))

        for index, raw, error in rejected:
            track_id = raw_track_id(raw)
            results.append(EventResult(
                index=index,
                track_id=track_id,
                status=FAILED,
                error=error.error_type,
                message=str(error)
            ))
            errors.append(BatchError(index=index, track_id=track_id, error=error.error_type, message=str(error)))

        results.sort(key=lambda r: r.index)
        errors.sort(key=lambda e: e.index)
        processed = sum(1 for o in outcomes if o.status == APPLIED)
        rating_updates = sum(1 for o in outcomes if o.status == APPLIED and o.event.kind.affects_rating)

        return BatchResult(
            processed_count=processed,
            failed_count=len(results) - processed,
            itemized_errors=errors,
            rating_updates_applied_count=rating_updates,
            attempts=attempts,
            results=results,
            chunks=chunks
        )
