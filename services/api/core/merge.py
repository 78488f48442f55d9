# services/api/core/merge.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol, Sequence, Union

from core.codec import CancellationToken, DocumentCodec
from core.errors import CombinatorError, DecodeError, EncodeError, MergeInProgressError
from models.document import Document

logger = logging.getLogger(__name__)

# Progress band [threshold, 100] is reserved for the final encode.
DEFAULT_ENCODE_THRESHOLD = 80


class MergeState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"


class ProgressSink(Protocol):
    def report(self, percent: int) -> None:
        ...


class NullProgressSink:
    def report(self, percent: int) -> None:
        pass


@dataclass(frozen=True)
class Success:
    doc_id: str
    display_name: str
    pages: int

    ok = True

    def to_api(self) -> dict:
        return {"doc_id": self.doc_id, "display_name": self.display_name, "ok": True, "pages": self.pages}


@dataclass(frozen=True)
class Failure:
    doc_id: str
    display_name: str
    reason: str

    ok = False

    def to_api(self) -> dict:
        return {"doc_id": self.doc_id, "display_name": self.display_name, "ok": False, "reason": self.reason}


Outcome = Union[Success, Failure]


@dataclass
class MergeResult:
    """
    Outcome of one combine() run. A new run produces a new object; results
    are never mutated after being returned.
    """
    status: MergeState
    outcomes: List[Outcome] = field(default_factory=list)
    output: Optional[bytes] = None
    progress: int = 0
    error: Optional[str] = None

    @property
    def page_count(self) -> int:
        if self.output is None:
            return 0
        return sum(o.pages for o in self.outcomes if isinstance(o, Success))

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    def to_api(self) -> dict:
        return {
            "status": self.status.value,
            "progress": self.progress,
            "page_count": self.page_count,
            "output_size_bytes": len(self.output) if self.output is not None else 0,
            "succeeded": self.succeeded,
            "failed": len(self.outcomes) - self.succeeded,
            "outcomes": [o.to_api() for o in self.outcomes],
            "error": self.error,
        }


def _round_half_up(value: float) -> int:
    # round() is banker's rounding: 2.5 -> 2
    return int(value + 0.5)


class _Progress:
    """Wraps a sink so emitted values never go backwards."""

    def __init__(self, sink: ProgressSink):
        self._sink = sink
        self.value = 0

    def emit(self, percent: int) -> None:
        percent = max(self.value, min(100, int(percent)))
        self.value = percent
        self._sink.report(percent)


class MergeOrchestrator:
    """
    Turns an ordered list of documents into one PDF.

    State machine: idle -> running -> completed | partially_completed | failed.
    Each combine() reaches exactly one terminal state; re-entering while
    running raises MergeInProgressError.

    Processing is strictly sequential: at most one decoded input plus the
    growing output is alive at any point.
    """

    def __init__(self, codec: DocumentCodec, encode_threshold: int = DEFAULT_ENCODE_THRESHOLD):
        if not (0 <= encode_threshold < 100):
            raise ValueError(f"encode_threshold must be in [0, 100), got {encode_threshold}")
        self.codec = codec
        self.encode_threshold = encode_threshold
        self.state = MergeState.IDLE

    @property
    def running(self) -> bool:
        return self.state == MergeState.RUNNING

    async def combine(
        self,
        documents: Sequence[Document],
        progress: Optional[ProgressSink] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> MergeResult:
        if self.running:
            raise MergeInProgressError("a merge is already running")

        # Snapshot: later mutations of the caller's collection don't reach us.
        docs = tuple(documents)
        self.state = MergeState.RUNNING
        try:
            result = await self._run(docs, _Progress(progress or NullProgressSink()), cancel_token)
        except BaseException:
            self.state = MergeState.FAILED
            raise
        self.state = result.status
        return result

    async def _run(
        self,
        docs: Sequence[Document],
        progress: _Progress,
        cancel_token: Optional[CancellationToken],
    ) -> MergeResult:
        if not docs:
            logger.info("Merge requested with no documents")
            return MergeResult(status=MergeState.FAILED, error="No documents to combine")

        started = time.time()
        total = len(docs)
        outcomes: List[Outcome] = []
        output = self.codec.create_output()

        try:
            for processed, doc in enumerate(docs, 1):
                outcomes.append(await self._merge_one(output, doc, cancel_token))
                progress.emit(_round_half_up(processed / total * self.encode_threshold))

            succeeded = sum(1 for o in outcomes if o.ok)
            if succeeded == 0:
                logger.warning(f"Merge failed: none of {total} document(s) could be read")
                return MergeResult(
                    status=MergeState.FAILED,
                    outcomes=outcomes,
                    progress=progress.value,
                    error="None of the documents could be read",
                )

            try:
                data = await self.codec.encode(output, cancel_token)
            except EncodeError as e:
                logger.error(f"Merge failed while saving output: {e}")
                return MergeResult(
                    status=MergeState.FAILED,
                    outcomes=outcomes,
                    progress=progress.value,
                    error=str(e),
                )
        finally:
            self.codec.release(output)

        progress.emit(100)
        status = MergeState.COMPLETED if succeeded == total else MergeState.PARTIALLY_COMPLETED
        logger.info(
            f"✓ Merge {status.value}: {succeeded}/{total} document(s), "
            f"{len(data)} bytes in {round((time.time() - started) * 1000, 2)} ms"
        )
        return MergeResult(status=status, outcomes=outcomes, output=data, progress=progress.value)

    async def _merge_one(
        self,
        output,
        doc: Document,
        cancel_token: Optional[CancellationToken],
    ) -> Outcome:
        decoded = None
        try:
            data = await doc.payload.read()
            decoded = await self.codec.decode(data, cancel_token)
            pages = await self.codec.copy_pages(output, decoded, cancel_token)
        except DecodeError as e:
            logger.warning(f"Skipping {doc.display_name} ({doc.doc_id}): {e}")
            return Failure(doc_id=doc.doc_id, display_name=doc.display_name, reason=str(e))
        except (OSError, CombinatorError) as e:
            # payload could not be resolved; same treatment as a corrupt file
            logger.warning(f"Skipping {doc.display_name} ({doc.doc_id}): payload unreadable: {e}")
            return Failure(doc_id=doc.doc_id, display_name=doc.display_name, reason=f"payload unreadable: {e}")
        finally:
            self.codec.release(decoded)
        return Success(doc_id=doc.doc_id, display_name=doc.display_name, pages=pages)
