# services/api/core/sessions.py

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

from cachetools import TTLCache

from core.codec import CancellationToken, DocumentCodec, PdfiumCodec
from core.errors import MergeInProgressError
from core.merge import DEFAULT_ENCODE_THRESHOLD, MergeOrchestrator, MergeResult, MergeState
from core.validation import IncomingFile, enforce_size_limits, filter_pdf_candidates
from models.collection import DocumentCollection
from models.document import BytesPayload, Document
from settings import get_settings

logger = logging.getLogger(__name__)


def format_file_size(size_bytes: int) -> str:
    """Human-readable size for display: B below 1 KiB, then KB, then MB."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1048576:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / 1048576:.1f} MB"


class MergeSession:
    """
    Everything one user has in flight: the queue, the merge machine, the
    latest result and the latest progress value.

    The session is also the ProgressSink handed to the orchestrator, so
    GET /progress can read `progress` while a run is awaiting the codec.
    """

    def __init__(
        self,
        session_id: str,
        codec: DocumentCodec,
        encode_threshold: int = DEFAULT_ENCODE_THRESHOLD,
    ):
        self.session_id = session_id
        self.created_at = time.time()
        self.collection = DocumentCollection()
        self.orchestrator = MergeOrchestrator(codec, encode_threshold=encode_threshold)
        self.result: Optional[MergeResult] = None
        self.progress = 0
        self.collection.subscribe(self._on_collection_changed)

    # ---- ProgressSink ----
    def report(self, percent: int) -> None:
        self.progress = percent

    @property
    def running(self) -> bool:
        return self.orchestrator.running

    @property
    def can_combine(self) -> bool:
        # a fresh result already covers the current order
        return len(self.collection) >= 2 and not self.running and self.result is None

    def _on_collection_changed(self, collection: DocumentCollection) -> None:
        if self.result is not None:
            logger.info(f"[{self.session_id}] queue changed, dropping previous merge result")
        self.result = None

    def ingest(
        self,
        files: List[IncomingFile],
        max_file_size_bytes: int = 0,
        max_total_size_bytes: int = 0,
    ) -> Tuple[List[Document], List[str]]:
        """
        Filter, size-check and append uploaded files.

        Returns (appended documents, skipped file names). Raises
        ValidationError if a size limit is broken; nothing is appended then.
        """
        kept, skipped = filter_pdf_candidates(files)
        if skipped:
            logger.info(f"[{self.session_id}] ignoring non-PDF uploads: {skipped}")

        enforce_size_limits(
            kept,
            max_file_size_bytes=max_file_size_bytes,
            max_total_size_bytes=max_total_size_bytes,
            already_queued_bytes=self.collection.total_size_bytes(),
        )

        docs = [
            self.collection.new_document(f.filename, f.size_bytes, BytesPayload(f.data))
            for f in kept
        ]
        appended = self.collection.append(docs)
        return appended, skipped

    async def combine(self, cancel_token: Optional[CancellationToken] = None) -> MergeResult:
        """
        Run the orchestrator over the current order and keep the result,
        unless the queue changed while the run was in flight.
        """
        if self.running:
            raise MergeInProgressError(f"session {self.session_id} is already merging")

        revision = self.collection.revision
        self.progress = 0
        result = await self.orchestrator.combine(
            self.collection.snapshot(),
            progress=self,
            cancel_token=cancel_token,
        )
        if self.collection.revision == revision:
            self.result = result
        else:
            logger.warning(f"[{self.session_id}] queue changed during merge; result not kept")
        return result

    def summary(self) -> Dict[str, Any]:
        total = self.collection.total_size_bytes()
        return {
            "session_id": self.session_id,
            "documents": [d.to_api() for d in self.collection],
            "document_count": len(self.collection),
            "total_size_bytes": total,
            "total_size_display": format_file_size(total),
            "state": self.orchestrator.state.value,
            "progress": self.progress,
            "can_combine": self.can_combine,
            "result": self.result.to_api() if self.result is not None else None,
        }


class SessionStore:
    """
    In-memory sessions with TTL expiry. Nothing survives a restart.
    """

    def __init__(
        self,
        codec: Optional[DocumentCodec] = None,
        max_sessions: int = 1000,
        ttl_seconds: int = 3600,
        encode_threshold: int = DEFAULT_ENCODE_THRESHOLD,
    ):
        self.codec = codec or PdfiumCodec()
        self.encode_threshold = encode_threshold
        self._sessions: TTLCache = TTLCache(maxsize=max_sessions, ttl=ttl_seconds)

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> MergeSession:
        session_id = uuid.uuid4().hex[:12]
        session = MergeSession(session_id, self.codec, encode_threshold=self.encode_threshold)
        self._sessions[session_id] = session
        logger.info(f"Created session {session_id}")
        return session

    def get(self, session_id: str) -> Optional[MergeSession]:
        session = self._sessions.get(session_id)
        if session is not None:
            # touch: keep active sessions alive
            self._sessions[session_id] = session
        return session

    def discard(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None


_store_instance: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Singleton pattern for the session store."""
    global _store_instance
    if _store_instance is None:
        settings = get_settings()
        _store_instance = SessionStore(
            max_sessions=settings.max_sessions,
            ttl_seconds=settings.session_ttl_seconds,
            encode_threshold=settings.encode_progress_threshold,
        )
    return _store_instance
