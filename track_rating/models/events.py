"""Listening event variants accepted at the ingestion boundary"""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from track_rating.exceptions import ValidationError


class EventKind(str, Enum):
    PLAY = "play"
    SKIP = "skip"
    DOWNLOAD = "download"
    PAUSE = "pause"
    RESUME = "resume"

    @property
    def affects_rating(self) -> bool:
        return self in RATED_KINDS

    @classmethod
    def parse_rated(cls, value: Any) -> 'EventKind':
        """Coerce a raw kind into one of the rating-affecting kinds"""
        try:
            kind = cls(value)
        except ValueError:
            raise ValidationError(f"Unrecognized event kind: {value!r}")
        if not kind.affects_rating:
            raise ValidationError(f"Event kind {kind.value!r} does not affect ratings")
        return kind


RATED_KINDS = frozenset({EventKind.PLAY, EventKind.SKIP, EventKind.DOWNLOAD})


class PlayContext(BaseModel):
    """Where the listener started the track from (playlist, album, radio...)"""
    source: Optional[str] = None
    source_id: Optional[str] = None


class _ListeningEventBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra='ignore', str_strip_whitespace=True)

    track_id: str = Field(..., min_length=1, description="Catalog track id")
    timestamp: Optional[datetime] = Field(None, description="Client-side event time")
    duration_ms: Optional[int] = Field(None, ge=0, description="Track duration")
    position_ms: Optional[int] = Field(None, ge=0, description="Playback position at the event")
    context: Optional[PlayContext] = None

    @field_validator('timestamp')
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @property
    def kind(self) -> EventKind:
        return EventKind(self.event_type)

    @property
    def completion_rate(self) -> Optional[float]:
        """Fraction of the track heard, when the client reported enough to tell"""
        if not self.duration_ms or self.position_ms is None:
            return None
        return min(1.0, self.position_ms / self.duration_ms)


class PlayEvent(_ListeningEventBase):
    event_type: Literal["play"]


class SkipEvent(_ListeningEventBase):
    event_type: Literal["skip"]


class DownloadEvent(_ListeningEventBase):
    event_type: Literal["download"]


class PauseEvent(_ListeningEventBase):
    event_type: Literal["pause"]


class ResumeEvent(_ListeningEventBase):
    event_type: Literal["resume"]


ListeningEvent = Annotated[
    Union[PlayEvent, SkipEvent, DownloadEvent, PauseEvent, ResumeEvent],
    Field(discriminator='event_type')
]

_event_adapter = TypeAdapter(ListeningEvent)


def parse_event(raw: Any) -> ListeningEvent:
    """Validate one loosely-typed descriptor into its tagged variant"""
    if isinstance(raw, _ListeningEventBase):
        return raw
    try:
        return _event_adapter.validate_python(raw)
    except PydanticValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'event'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(details, errors=e.errors()) from e


def parse_events(raw_events: List[Any]) -> Tuple[List[Tuple[int, ListeningEvent]], List[Tuple[int, Any, ValidationError]]]:
    """
    Split a submission into accepted and rejected descriptors.

    Returns:
        (accepted, rejected) where accepted holds (index, event) and rejected
        holds (index, raw descriptor, error); indexes refer to the submission.
    """
    accepted: List[Tuple[int, ListeningEvent]] = []
    rejected: List[Tuple[int, Any, ValidationError]] = []
    for index, raw in enumerate(raw_events):
        try:
            accepted.append((index, parse_event(raw)))
        except ValidationError as e:
            rejected.append((index, raw, e))
    return accepted, rejected


def raw_track_id(raw: Any) -> Optional[str]:
    """Best-effort track id of a rejected descriptor, for error reports"""
    if isinstance(raw, dict):
        value = raw.get('track_id')
        return str(value) if value is not None else None
    return None
