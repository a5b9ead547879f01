"""Elo-style track rating: K-factor selection and rating deltas"""
from dataclasses import dataclass
from typing import Union

from track_rating.models.events import EventKind

BASELINE_RATING = 1500.0

# Outcome of a listening event against the baseline "opponent"
ACTUAL_SCORES = {
    EventKind.PLAY.value: 0.6,
    EventKind.SKIP.value: 0.2,
    EventKind.DOWNLOAD.value: 0.8,
}
NEUTRAL_SCORE = 0.5

@dataclass(frozen=True)
class RatingChange:
    """Result of rating one event"""
    old_rating: float
    new_rating: float
    rating_change: float
    confidence_at_event: int

class RatingEngine:
    """Computes rating deltas. Pure: same input, same output, no I/O."""

    def k_factor(self, current_rating: float, confidence: int) -> int:
        """
        Pick the K-factor; the first matching rule wins.

        - confidence < 30 = 32 (new tracks swing fast)
        - rating > 2100 = 16 (damps runaway high ratings)
        - confidence > 100 = 24 (established tracks)
        - otherwise = 32
        """
        if confidence < 30:
            return 32
        elif current_rating > 2100:
            return 16
        elif confidence > 100:
            return 24
        return 32

    def expected_score(self, current_rating: float) -> float:
        """Logistic expectation against the fixed 1500 baseline"""
        return 1 / (1 + 10 ** ((BASELINE_RATING - current_rating) / 400))

    def actual_score(self, kind: Union[EventKind, str]) -> float:
        key = kind.value if isinstance(kind, EventKind) else kind
        return ACTUAL_SCORES.get(key, NEUTRAL_SCORE)

    def calculate_rating_change(self, current_rating: float, confidence: int,
                                kind: Union[EventKind, str]) -> float:
        """K * (actual - expected). The resulting rating is never clamped."""
        k = self.k_factor(current_rating, confidence)
        return k * (self.actual_score(kind) - self.expected_score(current_rating))

    def apply(self, current_rating: float, confidence: int,
              kind: Union[EventKind, str]) -> RatingChange:
        change = self.calculate_rating_change(current_rating, confidence, kind)
        return RatingChange(
            old_rating=current_rating,
            new_rating=current_rating + change,
            rating_change=change,
            confidence_at_event=confidence
        )
