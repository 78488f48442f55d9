from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class Payload(Protocol):
    """Lazy handle on a document's raw bytes. Resolved only at merge time."""

    async def read(self) -> bytes:
        ...


class BytesPayload:
    """Payload already held in memory (uploads are read once at ingestion)."""

    def __init__(self, data: bytes):
        self._data = bytes(data)

    async def read(self) -> bytes:
        return self._data

    def __len__(self) -> int:
        return len(self._data)


@dataclass(frozen=True)
class Document:
    """
    Domain model for one PDF queued for merging.

    display_name and size_bytes are informational only; the merge never
    looks at them. position is owned by DocumentCollection and always equals
    the document's list index.
    """
    doc_id: str
    display_name: str
    size_bytes: int
    payload: Payload
    position: int = 0

    def to_api(self) -> dict:
        return {
            "doc_id": self.doc_id,
            "display_name": self.display_name,
            "size_bytes": self.size_bytes,
            "position": self.position,
        }
