# services/api/schemas/session.py
"""
Pydantic schemas for merge sessions.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class DocumentOut(BaseModel):
    """One queued document."""
    doc_id: str = Field(..., description="Stable id for the lifetime of the queue entry")
    display_name: str
    size_bytes: int = Field(..., ge=0)
    position: int = Field(..., ge=0, description="Zero-based position in the queue")


class MergeOutcomeOut(BaseModel):
    """Per-document merge outcome."""
    doc_id: str
    display_name: str
    ok: bool
    pages: Optional[int] = Field(None, description="Pages contributed (successes only)")
    reason: Optional[str] = Field(None, description="Why the document was skipped (failures only)")


class MergeResultOut(BaseModel):
    """Summary of one merge run. Output bytes are fetched via /download."""
    status: str = Field(..., description="completed | partially_completed | failed")
    progress: int = Field(..., ge=0, le=100)
    page_count: int = Field(..., ge=0)
    output_size_bytes: int = Field(..., ge=0)
    succeeded: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    outcomes: List[MergeOutcomeOut] = Field(default_factory=list)
    error: Optional[str] = None


class SessionOut(BaseModel):
    """Full state of a merge session."""
    session_id: str
    documents: List[DocumentOut] = Field(default_factory=list)
    document_count: int
    total_size_bytes: int
    total_size_display: str
    state: str = Field(..., description="idle | running | completed | partially_completed | failed")
    progress: int
    can_combine: bool
    result: Optional[MergeResultOut] = None


class IngestOut(BaseModel):
    """Response for an upload batch."""
    added: List[DocumentOut] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list, description="Non-PDF uploads that were ignored")
    session: SessionOut


class ProgressOut(BaseModel):
    session_id: str
    state: str
    progress: int
