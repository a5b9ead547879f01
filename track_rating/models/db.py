"""SQLAlchemy database models for tracks, the rating ledger and user play history"""
import datetime

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, JSON, ForeignKey,
    CheckConstraint, UniqueConstraint, Index
)
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

DEFAULT_RATING = 1500.0


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class TrackModel(Base):
    """
    Aggregate rating state for one catalog track.
    The version column guards read-modify-write updates against lost writes.
    """
    __tablename__ = 'tracks'

    id = Column(String, primary_key=True)
    title = Column(String, nullable=True)
    rating = Column(Float, nullable=False, default=DEFAULT_RATING, index=True)
    rating_confidence = Column(Integer, nullable=False, default=0)
    total_plays = Column(Integer, nullable=False, default=0)
    skip_count = Column(Integer, nullable=False, default=0)
    download_count = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    genre_tags = relationship("TrackGenreModel", cascade="all, delete-orphan", lazy="selectin")
    artist_credits = relationship("TrackArtistModel", cascade="all, delete-orphan", lazy="selectin")

    __mapper_args__ = {"version_id_col": version}

    @property
    def genres(self) -> set[str]:
        return {tag.genre for tag in self.genre_tags}

    @property
    def artists(self) -> set[str]:
        return {credit.artist for credit in self.artist_credits}


class TrackGenreModel(Base):
    __tablename__ = 'track_genres'

    track_id = Column(String, ForeignKey('tracks.id'), primary_key=True)
    genre = Column(String, primary_key=True, index=True)


class TrackArtistModel(Base):
    __tablename__ = 'track_artists'

    track_id = Column(String, ForeignKey('tracks.id'), primary_key=True)
    artist = Column(String, primary_key=True, index=True)


class RatingEventModel(Base):
    """
    Immutable ledger row, one per rating change.
    new_rating is always old_rating + rating_change.
    """
    __tablename__ = 'rating_events'

    id = Column(Integer, primary_key=True)
    track_id = Column(String, ForeignKey('tracks.id'), nullable=False)
    old_rating = Column(Float, nullable=False)
    new_rating = Column(Float, nullable=False)
    event_type = Column(String(16), nullable=False)
    rating_change = Column(Float, nullable=False)
    confidence_at_event = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("event_type IN ('play', 'skip', 'download')", name='ck_rating_events_event_type'),
        Index('ix_rating_events_track_created', 'track_id', 'created_at'),
    )


class UserPlayHistoryModel(Base):
    """
    One bucket per user and calendar month.
    plays is append-only; entries are never edited in place.
    """
    __tablename__ = 'user_play_history'

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False)
    year_month = Column(String(7), nullable=False)  # YYYY-MM
    plays = Column(MutableList.as_mutable(JSON), nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'year_month', name='uq_user_play_history_user_month'),
    )
