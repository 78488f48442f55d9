# services/api/core/export.py
"""
Artifact export: wrap finished merge bytes in a short-lived handle, give it
to a delivery callable, and always release it afterwards.

Single shot. A failed delivery is reported back; nothing is retried, and the
next attempt builds a fresh handle.
"""
from __future__ import annotations

import hashlib
import inspect
import logging
import re
import tempfile
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from core.errors import DeliveryError

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
DEFAULT_FILENAME = "combined.pdf"

# Artifacts above this size spill from memory to a temp file on disk.
_SPOOL_MAX_BYTES = 8 * 1024 * 1024


def sanitize_filename(name: Optional[str], default: str = DEFAULT_FILENAME) -> str:
    """Strip path separators / control chars and make sure the name ends in .pdf."""
    cleaned = re.sub(r'[<>:"/\\|?*\x00-\x1F]', "_", (name or "").strip())
    cleaned = cleaned.strip(". ")
    if not cleaned:
        cleaned = default
    if not cleaned.lower().endswith(".pdf"):
        cleaned = f"{cleaned}.pdf"
    return cleaned


class ArtifactHandle:
    """
    Content-addressed, transient wrapper around artifact bytes.

    `key` is the SHA-256 of the content. The backing spooled temp file is
    freed by release(); reading a released handle is an error.
    """

    def __init__(self, data: bytes, filename: str, media_type: str = PDF_MEDIA_TYPE):
        self.key = hashlib.sha256(data).hexdigest()
        self.filename = filename
        self.media_type = media_type
        self.size_bytes = len(data)
        self._file = tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_BYTES)
        self._file.write(data)
        self._file.seek(0)

    @property
    def released(self) -> bool:
        return self._file is None

    def read(self) -> bytes:
        if self._file is None:
            raise DeliveryError(f"artifact {self.key[:12]} already released")
        self._file.seek(0)
        return self._file.read()

    def release(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


Deliver = Callable[[ArtifactHandle], Union[Any, Awaitable[Any]]]


@dataclass
class DeliveryOutcome:
    delivered: bool
    filename: str
    key: str
    size_bytes: int
    message: str = ""
    response: Any = None


async def export_artifact(
    data: bytes,
    suggested_name: Optional[str],
    deliver: Deliver,
    default_name: str = DEFAULT_FILENAME,
) -> DeliveryOutcome:
    """
    Materialize `data` as an ArtifactHandle and hand it to `deliver`.

    `deliver` may be sync or async; whatever it returns is passed back as
    DeliveryOutcome.response. Any exception from it turns into
    delivered=False with a readable message. The handle is released on
    every path. Empty data is never handed to `deliver`.
    """
    filename = sanitize_filename(suggested_name, default_name)
    if not data:
        logger.error(f"Refusing to deliver {filename}: artifact is empty")
        return DeliveryOutcome(
            delivered=False,
            filename=filename,
            key="",
            size_bytes=0,
            message=f"Could not deliver {filename}: nothing to export, artifact is empty",
        )

    handle = ArtifactHandle(data, filename)
    try:
        response = deliver(handle)
        if inspect.isawaitable(response):
            response = await response
    except Exception as e:
        logger.error(f"Delivery of {handle.filename} ({handle.key[:12]}) failed: {e}")
        return DeliveryOutcome(
            delivered=False,
            filename=handle.filename,
            key=handle.key,
            size_bytes=handle.size_bytes,
            message=f"Could not deliver {handle.filename}: {e}",
        )
    finally:
        handle.release()

    logger.info(f"✓ Delivered {handle.filename} ({handle.size_bytes} bytes, {handle.key[:12]})")
    return DeliveryOutcome(
        delivered=True,
        filename=handle.filename,
        key=handle.key,
        size_bytes=handle.size_bytes,
        response=response,
    )
