"""
Pydantic schemas for API request/response validation.
"""
from .session import (
    DocumentOut,
    IngestOut,
    MergeOutcomeOut,
    MergeResultOut,
    ProgressOut,
    SessionOut,
)

__all__ = [
    "DocumentOut",
    "IngestOut",
    "MergeOutcomeOut",
    "MergeResultOut",
    "ProgressOut",
    "SessionOut",
]
