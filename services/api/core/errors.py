"""
Error taxonomy for PDF Combinator.

Only DecodeError is absorbed inside the merge run (it becomes a per-document
Failure outcome). Everything else reaches the caller, and the routers turn it
into an HTTPException with a readable detail.
"""
from __future__ import annotations

from typing import List, Optional


class CombinatorError(Exception):
    """Base class for all domain errors."""


class ValidationError(CombinatorError):
    """
    Raised at the ingestion boundary when an upload set breaks a configured
    size limit. Nothing from the rejected set enters the collection.
    """

    def __init__(self, message: str, offending: Optional[List[str]] = None):
        super().__init__(message)
        self.offending = list(offending or [])


class DecodeError(CombinatorError):
    """One document could not be read or parsed (corrupt, encrypted, ...)."""


class EncodeError(CombinatorError):
    """Saving the merged output failed."""


class DeliveryError(CombinatorError):
    """Handing a finished artifact to the delivery mechanism failed."""


class OutOfRangeError(CombinatorError, IndexError):
    """Remove/reorder called with an index outside the collection."""

    def __init__(self, index: int, size: int):
        super().__init__(f"index {index} out of range for collection of {size}")
        self.index = index
        self.size = size


class MergeInProgressError(CombinatorError, RuntimeError):
    """combine() called while a run is already in flight."""
