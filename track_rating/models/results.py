"""Response models returned by the rating service"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

class RatingUpdate(BaseModel):
    """Outcome of applying one event through the single-event path"""
    track_id: str
    event_type: str
    old_rating: float
    new_rating: float
    rating_change: float
    confidence_at_event: int = Field(description="Confidence before this event")
    rating_confidence: int = Field(description="Confidence after this event")

class EventResult(BaseModel):
    """Per-event line of a batch result"""
    index: int = Field(description="Position in the submitted list")
    track_id: Optional[str] = None
    event_type: Optional[str] = None
    status: str = Field(description="'applied' or 'failed'")
    rating_change: Optional[float] = None
    error: Optional[str] = None
    message: Optional[str] = None

class BatchError(BaseModel):
    """Itemized failure of one submitted event"""
    index: int
    track_id: Optional[str] = None
    error: str = Field(description="NotFound, ValidationError or TransientStoreError")
    message: str

class ChunkSummary(BaseModel):
    index: int
    size: int
    committed: bool
    applied: int = 0
    failed: int = 0
    error: Optional[str] = None

class BatchResult(BaseModel):
    """
    Outcome of a batch submission.

    processed_count counts events that were committed (rating events and
    history-only pause/resume events alike); rating_updates_applied_count
    counts ledger rows written.
    """
    processed_count: int = 0
    failed_count: int = 0
    itemized_errors: List[BatchError] = []
    rating_updates_applied_count: int = 0
    attempts: int = 0
    results: List[EventResult] = []
    chunks: List[ChunkSummary] = []

class ScoredTrack(BaseModel):
    track_id: str
    title: Optional[str] = None
    artists: List[str] = []
    genres: List[str] = []
    rating: float
    rating_confidence: int
    total_plays: int
    skip_count: int
    score: float

class SeedSummary(BaseModel):
    """The track a recommendation was based on"""
    track_id: str
    title: Optional[str] = None
    artists: List[str] = []
    genres: List[str] = []
    rating: float
    confidence: int
    play_ratio: float
    skip_ratio: float

class RecommendationResponse(BaseModel):
    tracks: List[ScoredTrack] = []
    fallback: bool = Field(False, description="True when filters matched nothing and the whole catalog was ranked")
    bias: str = Field("none", description="'similar', 'contrast' or 'none'")
    based_on: Optional[SeedSummary] = None

class RatingHistoryEntry(BaseModel):
    track_id: str
    old_rating: float
    new_rating: float
    event_type: str
    rating_change: float
    confidence_at_event: int
    created_at: datetime

class RatingStats(BaseModel):
    """Ledger summary for one track"""
    track_id: str
    current_rating: float
    confidence: int
    total_changes: int
    biggest_gain: float
    biggest_loss: float
    events: Dict[str, int]
    replayed_rating: float = Field(description="Baseline plus the sum of every ledger change")
