"""
Ingestion checks for PDF Combinator.

Two gates, applied before anything enters a DocumentCollection:
- type filter: keep files declared as application/pdf or named *.pdf;
  everything else is dropped silently
- optional size limits (0 = disabled): reject the whole upload set with a
  message naming the offending files and the limit involved
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from core.errors import ValidationError

PDF_CONTENT_TYPE = "application/pdf"
PDF_EXTENSION = ".pdf"


@dataclass
class IncomingFile:
    """One candidate file as received at the upload boundary."""
    filename: str
    content_type: Optional[str]
    data: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.data)


def is_pdf_candidate(filename: Optional[str], content_type: Optional[str]) -> bool:
    """
    Superficial type check; content is not inspected.

    Returns True if the declared type is application/pdf (parameters such as
    "; charset=..." ignored) or the filename ends with .pdf, case-insensitive.
    """
    ctype = (content_type or "").split(";", 1)[0].strip().lower()
    if ctype == PDF_CONTENT_TYPE:
        return True
    return (filename or "").strip().lower().endswith(PDF_EXTENSION)


def filter_pdf_candidates(files: Iterable[IncomingFile]) -> Tuple[List[IncomingFile], List[str]]:
    """
    Split candidates into (kept, skipped_names), preserving input order
    among the kept files.
    """
    kept: List[IncomingFile] = []
    skipped: List[str] = []
    for f in files:
        if is_pdf_candidate(f.filename, f.content_type):
            kept.append(f)
        else:
            skipped.append(f.filename or "<unnamed>")
    return kept, skipped


def enforce_size_limits(
    files: List[IncomingFile],
    max_file_size_bytes: int = 0,
    max_total_size_bytes: int = 0,
    already_queued_bytes: int = 0,
) -> None:
    """
    Reject an upload set that would break a configured limit.

    Rules:
    - max_file_size_bytes > 0: no single file may be larger
    - max_total_size_bytes > 0: already_queued_bytes + sum(new files) may
      not be larger
    - a limit of 0 (the default) is off

    Raises:
        ValidationError: with every offending file and the limits in the message
    """
    problems: List[str] = []
    offending: List[str] = []

    if max_file_size_bytes > 0:
        too_big = [f for f in files if f.size_bytes > max_file_size_bytes]
        for f in too_big:
            offending.append(f.filename)
        if too_big:
            names = ", ".join(f"{f.filename} ({f.size_bytes} bytes)" for f in too_big)
            problems.append(f"files over the per-file limit of {max_file_size_bytes} bytes: {names}")

    if max_total_size_bytes > 0:
        incoming = sum(f.size_bytes for f in files)
        total = already_queued_bytes + incoming
        if total > max_total_size_bytes:
            for f in files:
                if f.filename not in offending:
                    offending.append(f.filename)
            problems.append(
                f"total size {total} bytes ({already_queued_bytes} queued + {incoming} new) "
                f"exceeds the limit of {max_total_size_bytes} bytes"
            )

    if problems:
        raise ValidationError("; ".join(problems), offending=offending)
