"""Errors raised by the rating core"""
from typing import Any, List, Optional


class TrackRatingError(Exception):
    """Base class for every error this package raises on purpose"""
    error_type = "TrackRatingError"


class NotFoundError(TrackRatingError):
    """Unknown track (or user)"""
    error_type = "NotFound"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} '{entity_id}' not found")


class ValidationError(TrackRatingError):
    """Malformed event: missing id, unrecognized kind, bad field values"""
    error_type = "ValidationError"

    def __init__(self, message: str, errors: Optional[List[dict]] = None):
        self.errors = errors or []
        super().__init__(message)


class TransientStoreError(TrackRatingError):
    """Storage timeout, write conflict or unavailable database"""
    error_type = "TransientStoreError"


class SubmissionExhaustedError(TrackRatingError):
    """Every attempt of a batch submission ended with zero successful events"""
    error_type = "Exhausted"

    def __init__(self, attempts: int, last_result: Any = None):
        self.attempts = attempts
        self.last_result = last_result
        super().__init__(f"Batch submission produced no successful events after {attempts} attempts")
