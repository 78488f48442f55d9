# services/api/routers/sessions.py
from __future__ import annotations

import io
import logging
import urllib.parse
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import StreamingResponse

from core.errors import MergeInProgressError, OutOfRangeError, ValidationError
from core.export import ArtifactHandle, export_artifact
from core.sessions import MergeSession, SessionStore, get_session_store
from core.validation import IncomingFile
from schemas.session import IngestOut, MergeResultOut, ProgressOut, SessionOut
from settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()
router = APIRouter(prefix="/sessions", tags=["sessions"])

# ---- DI alias (no default value allowed) ----
Store = Annotated[SessionStore, Depends(get_session_store)]


# ====== Helpers ======

def _get_session(store: SessionStore, session_id: str) -> MergeSession:
    session = store.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"SESSION_NOT_FOUND: {session_id}",
        )
    return session


def _ensure_idle(session: MergeSession) -> None:
    """
    The collection itself doesn't lock during a merge; the API refuses
    queue edits instead.
    """
    if session.running:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"MERGE_IN_PROGRESS: {session.session_id}",
        )


def _out_of_range(e: OutOfRangeError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"OUT_OF_RANGE: index {e.index} (queue has {e.size} document(s))",
    )


def _content_disposition(filename: str) -> str:
    ascii_name = filename.encode("ascii", "replace").decode("ascii")
    quoted = urllib.parse.quote(filename)
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quoted}"


# ====== Session lifecycle ======

@router.post("", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
async def create_session(store: Store):
    """Open a fresh, empty merge session."""
    return store.create().summary()


@router.get("/{session_id}", response_model=SessionOut)
async def get_session(session_id: str, store: Store):
    return _get_session(store, session_id).summary()


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str, store: Store):
    session = _get_session(store, session_id)
    _ensure_idle(session)
    store.discard(session_id)
    logger.info(f"Discarded session {session_id}")


# ====== Queue operations ======

@router.post("/{session_id}/documents", response_model=IngestOut)
async def upload_documents(
    session_id: str,
    store: Store,
    files: List[UploadFile] = File(..., description="PDF files, in the order they should be queued"),
):
    """
    Append uploaded files to the queue.

    - Non-PDF files (by content type and extension) are ignored and listed
      under `skipped`.
    - If size limits are configured and the batch breaks one, the whole
      batch is rejected with 413 and nothing is queued.
    """
    session = _get_session(store, session_id)
    _ensure_idle(session)

    incoming = []
    for f in files:
        data = await f.read()
        incoming.append(IncomingFile(filename=f.filename or "", content_type=f.content_type, data=data))

    try:
        added, skipped = session.ingest(
            incoming,
            max_file_size_bytes=settings.max_file_size_bytes,
            max_total_size_bytes=settings.max_total_size_bytes,
        )
    except ValidationError as e:
        logger.warning(f"[{session_id}] upload rejected: {e}")
        raise HTTPException(
            status_code=413,
            detail=f"UPLOAD_TOO_LARGE: {e}",
        )

    logger.info(f"[{session_id}] queued {len(added)} document(s), skipped {len(skipped)}")
    return {
        "added": [d.to_api() for d in added],
        "skipped": skipped,
        "session": session.summary(),
    }


@router.delete("/{session_id}/documents", response_model=SessionOut)
async def reset_documents(session_id: str, store: Store):
    """Clear the queue."""
    session = _get_session(store, session_id)
    _ensure_idle(session)
    session.collection.reset()
    return session.summary()


@router.delete("/{session_id}/documents/{index}", response_model=SessionOut)
async def remove_document(session_id: str, index: int, store: Store):
    session = _get_session(store, session_id)
    _ensure_idle(session)
    try:
        session.collection.remove_at(index)
    except OutOfRangeError as e:
        raise _out_of_range(e)
    return session.summary()


@router.post("/{session_id}/documents/{index}/move-up", response_model=SessionOut)
async def move_document_up(session_id: str, index: int, store: Store):
    """Swap with the previous document. No-op for the first one."""
    session = _get_session(store, session_id)
    _ensure_idle(session)
    try:
        session.collection.move_up(index)
    except OutOfRangeError as e:
        raise _out_of_range(e)
    return session.summary()


@router.post("/{session_id}/documents/{index}/move-down", response_model=SessionOut)
async def move_document_down(session_id: str, index: int, store: Store):
    """Swap with the next document. No-op for the last one."""
    session = _get_session(store, session_id)
    _ensure_idle(session)
    try:
        session.collection.move_down(index)
    except OutOfRangeError as e:
        raise _out_of_range(e)
    return session.summary()


# ====== Merge ======

@router.post("/{session_id}/combine", response_model=MergeResultOut)
async def combine_documents(session_id: str, store: Store, request: Request):
    """
    Merge the queue in its current order.

    Unreadable documents are skipped and reported per document; the run
    only fails outright if nothing could be read or the merged file could
    not be saved. Returns once the run is finished.
    """
    session = _get_session(store, session_id)
    _ensure_idle(session)

    sem = getattr(request.app.state, "merge_semaphore", None)
    try:
        if sem is None:
            # No semaphore configured → run directly (e.g. tests)
            result = await session.combine()
        else:
            async with sem:
                result = await session.combine()
    except MergeInProgressError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"MERGE_IN_PROGRESS: {session_id}",
        )

    return result.to_api()


@router.get("/{session_id}/progress", response_model=ProgressOut)
async def get_progress(session_id: str, store: Store):
    session = _get_session(store, session_id)
    return {
        "session_id": session_id,
        "state": session.orchestrator.state.value,
        "progress": session.progress,
    }


@router.get("/{session_id}/download")
async def download_combined(
    session_id: str,
    store: Store,
    filename: Optional[str] = Query(None, description="Suggested download name"),
):
    """
    Stream the merged PDF as an attachment.

    Only available while the result still matches the queue: any
    add/remove/reorder after the merge makes it stale (409).
    """
    session = _get_session(store, session_id)

    result = session.result
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="NO_MERGE_RESULT: combine the current queue first",
        )
    if result.output is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"MERGE_HAS_NO_OUTPUT: last run {result.status.value}",
        )

    def _deliver(handle: ArtifactHandle) -> StreamingResponse:
        return StreamingResponse(
            io.BytesIO(handle.read()),
            media_type=handle.media_type,
            headers={
                "Content-Disposition": _content_disposition(handle.filename),
                "Content-Length": str(handle.size_bytes),
                "ETag": f'"{handle.key}"',
                "Cache-Control": "no-store",
            },
        )

    outcome = await export_artifact(
        result.output,
        filename or settings.output_filename,
        _deliver,
        default_name=settings.output_filename,
    )
    if not outcome.delivered:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"DELIVERY_FAILED: {outcome.message}",
        )
    return outcome.response
