# services/api/core/codec.py

from __future__ import annotations

import asyncio
import io
import logging
from typing import Any, Optional, Protocol

import pypdfium2 as pdfium

from core.errors import DecodeError, EncodeError

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Placeholder for cooperative cancellation of a merge run.

    Threaded through the orchestrator and codec so a later change can start
    honouring it. Nothing checks it yet.
    """

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class DocumentCodec(Protocol):
    """
    Contract for the external PDF library.

    decode/copy_pages/encode are suspension points; the orchestrator awaits
    them one at a time and never overlaps two calls.
    """

    async def decode(self, data: bytes, cancel_token: Optional[CancellationToken] = None) -> Any:
        """Parse raw bytes. Raises DecodeError."""
        ...

    def create_output(self) -> Any:
        """Fresh, empty output document."""
        ...

    async def copy_pages(self, output: Any, decoded: Any, cancel_token: Optional[CancellationToken] = None) -> int:
        """Append every page of `decoded` to `output`, in order. Returns the page count. Raises DecodeError."""
        ...

    async def encode(self, output: Any, cancel_token: Optional[CancellationToken] = None) -> bytes:
        """Serialize the output document. Raises EncodeError."""
        ...

    def release(self, doc: Any) -> None:
        """Free native resources held by a decoded or output document."""
        ...


class PdfiumCodec:
    """
    DocumentCodec backed by python-pdfium2.

    pdfium is not safe to enter from several threads at once. Each call is
    pushed to a worker thread, but the orchestrator awaits them in sequence
    and the API caps parallel merges (app.state.merge_semaphore).
    """

    async def decode(self, data: bytes, cancel_token: Optional[CancellationToken] = None) -> pdfium.PdfDocument:
        try:
            return await asyncio.to_thread(pdfium.PdfDocument, data)
        except pdfium.PdfiumError as e:
            raise DecodeError(f"could not open PDF: {e}") from e

    def create_output(self) -> pdfium.PdfDocument:
        return pdfium.PdfDocument.new()

    async def copy_pages(
        self,
        output: pdfium.PdfDocument,
        decoded: pdfium.PdfDocument,
        cancel_token: Optional[CancellationToken] = None,
    ) -> int:
        page_count = len(decoded)
        if page_count == 0:
            return 0
        try:
            # pages=None imports all pages, appended after the current last page
            await asyncio.to_thread(output.import_pages, decoded)
        except pdfium.PdfiumError as e:
            raise DecodeError(f"could not copy pages: {e}") from e
        return page_count

    async def encode(self, output: pdfium.PdfDocument, cancel_token: Optional[CancellationToken] = None) -> bytes:
        buf = io.BytesIO()
        try:
            await asyncio.to_thread(output.save, buf)
        except (pdfium.PdfiumError, OSError) as e:
            raise EncodeError(f"could not save merged PDF: {e}") from e
        return buf.getvalue()

    def release(self, doc: Optional[pdfium.PdfDocument]) -> None:
        if doc is None:
            return
        try:
            doc.close()
        except Exception as e:
            logger.warning(f"pdfium close failed: {e}")
