"""Database storage services for the track catalog, rating ledger and play history"""
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import bindparam, func, select, update
from sqlalchemy.orm import Session

from track_rating.models.aggregates import PlayEntry, TrackDelta, TrackSnapshot
from track_rating.models.db import (
    DEFAULT_RATING, RatingEventModel, TrackArtistModel, TrackGenreModel,
    TrackModel, UserPlayHistoryModel
)

logger = logging.getLogger(__name__)

class TrackCatalog:
    """Reads and updates aggregate track state"""

    def __init__(self, session: Session):
        self.session = session

    def get(self, track_id: str) -> Optional[TrackModel]:
        return self.session.get(TrackModel, track_id)

    def get_for_update(self, track_id: str) -> Optional[TrackModel]:
        """Load a track with a row lock where the backend supports one"""
        return self.session.execute(
            select(TrackModel).where(TrackModel.id == track_id).with_for_update()
        ).scalar_one_or_none()

    def snapshot_many(self, track_ids: Iterable[str]) -> Dict[str, TrackSnapshot]:
        """Bulk-read rating state for every known id; unknown ids are simply absent"""
        ids = set(track_ids)
        if not ids:
            return {}
        rows = self.session.execute(
            select(TrackModel.id, TrackModel.rating, TrackModel.rating_confidence)
            .where(TrackModel.id.in_(sorted(ids)))
        ).all()
        return {
            row.id: TrackSnapshot(
                track_id=row.id,
                rating=row.rating if row.rating is not None else DEFAULT_RATING,
                rating_confidence=row.rating_confidence or 0
            )
            for row in rows
        }

    def apply_delta(self, delta: TrackDelta) -> None:
        self.apply_deltas([delta])

    def apply_deltas(self, deltas: Sequence[TrackDelta]) -> None:
        """
        Apply increments in one executemany statement.
        Increments commute, so concurrently committing chunks compose.
        """
        params = [
            {
                'b_track_id': d.track_id,
                'b_rating': d.rating,
                'b_confidence': d.rating_confidence,
                'b_plays': d.total_plays,
                'b_skips': d.skip_count,
                'b_downloads': d.download_count,
            }
            for d in deltas if not d.is_empty()
        ]
        if not params:
            return
        table = TrackModel.__table__
        stmt = (
            update(table)
            .where(table.c.id == bindparam('b_track_id'))
            .values(
                rating=table.c.rating + bindparam('b_rating'),
                rating_confidence=table.c.rating_confidence + bindparam('b_confidence'),
                total_plays=table.c.total_plays + bindparam('b_plays'),
                skip_count=table.c.skip_count + bindparam('b_skips'),
                download_count=table.c.download_count + bindparam('b_downloads'),
                version=table.c.version + 1
            )
        )
        self.session.connection().execute(stmt, params)

    def add(self, track_id: str, title: Optional[str] = None,
            genres: Iterable[str] = (), artists: Iterable[str] = (),
            rating: float = DEFAULT_RATING, rating_confidence: int = 0,
            total_plays: int = 0, skip_count: int = 0, download_count: int = 0) -> TrackModel:
        track = TrackModel(
            id=track_id,
            title=title,
            rating=rating,
            rating_confidence=rating_confidence,
            total_plays=total_plays,
            skip_count=skip_count,
            download_count=download_count,
            genre_tags=[TrackGenreModel(genre=g) for g in sorted(set(genres))],
            artist_credits=[TrackArtistModel(artist=a) for a in sorted(set(artists))]
        )
        self.session.add(track)
        logger.info(f"Added track {track_id} to catalog")
        return track

    def candidates(self, *criteria) -> List[TrackModel]:
        """All tracks matching every criterion (no criteria = whole catalog)"""
        stmt = select(TrackModel).order_by(TrackModel.id)
        if criteria:
            stmt = stmt.where(*criteria)
        return list(self.session.execute(stmt).scalars().all())


class RatingLedger:
    """Append-only history of rating changes"""

    def __init__(self, session: Session):
        self.session = session

    def append(self, row: RatingEventModel) -> None:
        self.session.add(row)

    def append_many(self, rows: Sequence[RatingEventModel]) -> None:
        self.session.add_all(rows)

    def recent_for_track(self, track_id: str, limit: int) -> List[RatingEventModel]:
        """Newest first"""
        return list(self.session.execute(
            select(RatingEventModel)
            .where(RatingEventModel.track_id == track_id)
            .order_by(RatingEventModel.created_at.desc(), RatingEventModel.id.desc())
            .limit(limit)
        ).scalars().all())

    def all_for_track(self, track_id: str) -> List[RatingEventModel]:
        return self.recent_for_track(track_id, limit=None)

    def sum_changes(self, track_id: str) -> float:
        total = self.session.execute(
            select(func.sum(RatingEventModel.rating_change))
            .where(RatingEventModel.track_id == track_id)
        ).scalar()
        return float(total or 0.0)


class UserHistoryStore:
    """Monthly play history buckets per user"""

    def __init__(self, session: Session):
        self.session = session

    def find_or_create(self, user_id: str, year_month: str) -> UserPlayHistoryModel:
        bucket = self.session.execute(
            select(UserPlayHistoryModel).filter_by(user_id=user_id, year_month=year_month)
        ).scalar_one_or_none()
        if bucket is None:
            logger.info(f"Creating play history bucket {year_month} for user {user_id}")
            bucket = UserPlayHistoryModel(user_id=user_id, year_month=year_month, plays=[])
            self.session.add(bucket)
        return bucket

    def append(self, user_id: str, entry: PlayEntry) -> None:
        self.append_many(user_id, [entry])

    def append_many(self, user_id: str, entries: Sequence[PlayEntry]) -> None:
        """Fetch each month's bucket once, extend it in memory, persist on flush"""
        by_month: Dict[str, List[PlayEntry]] = defaultdict(list)
        for entry in entries:
            by_month[entry.year_month].append(entry)
        for year_month, month_entries in by_month.items():
            bucket = self.find_or_create(user_id, year_month)
            bucket.plays.extend(e.to_dict() for e in month_entries)
