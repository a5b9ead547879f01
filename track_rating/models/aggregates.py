"""Domain models passed between the stores and the write paths"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

@dataclass(frozen=True)
class TrackSnapshot:
    """Point-in-time rating state of a track, read once per chunk"""
    track_id: str
    rating: float
    rating_confidence: int

@dataclass
class TrackDelta:
    """Increments to apply to one track; applied as `x = x + delta`"""
    track_id: str
    rating: float = 0.0
    rating_confidence: int = 0
    total_plays: int = 0
    skip_count: int = 0
    download_count: int = 0

    def is_empty(self) -> bool:
        return not (self.rating or self.rating_confidence or self.total_plays
                    or self.skip_count or self.download_count)

@dataclass
class PlayEntry:
    """One line of a user's monthly play history"""
    track_id: str
    event_type: str
    played_at: datetime
    duration_ms: Optional[int] = None
    completion_rate: Optional[float] = None
    skipped: bool = False
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def year_month(self) -> str:
        return self.played_at.strftime("%Y-%m")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'track_id': self.track_id,
            'event_type': self.event_type,
            'played_at': self.played_at.isoformat(),
            'duration_ms': self.duration_ms,
            'completion_rate': self.completion_rate,
            'skipped': self.skipped,
            'context': self.context
        }
