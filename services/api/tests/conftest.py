"""
Shared fixtures.

Run with: pytest services/api/tests -v
"""
import os
import sys
from typing import List

import pytest
import pypdfium2 as pdfium
from fpdf import FPDF

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.errors import DecodeError, EncodeError  # noqa: E402
from models.collection import DocumentCollection  # noqa: E402
from models.document import BytesPayload  # noqa: E402


def _make_pdf(label: str, pages: int) -> bytes:
    """Build a real PDF whose page i carries the text "<label>-<i>"."""
    pdf = FPDF()
    pdf.set_font("Helvetica", size=14)
    for i in range(1, pages + 1):
        pdf.add_page()
        pdf.cell(0, 10, text=f"{label}-{i}")
    return bytes(pdf.output())


def _page_labels(data: bytes) -> List[str]:
    """Text of every page of a PDF, in page order."""
    doc = pdfium.PdfDocument(data)
    try:
        labels = []
        for i in range(len(doc)):
            page = doc[i]
            textpage = page.get_textpage()
            labels.append(textpage.get_text_range().strip())
            textpage.close()
            page.close()
        return labels
    finally:
        doc.close()


@pytest.fixture
def make_pdf():
    return _make_pdf


@pytest.fixture
def page_labels():
    return _page_labels


class RecordingProgress:
    """ProgressSink that keeps every reported value."""

    def __init__(self):
        self.values: List[int] = []

    def report(self, percent: int) -> None:
        self.values.append(percent)


class FakeCodec:
    """
    In-memory codec for orchestrator tests.

    A document payload like b"A:3" decodes to pages ["A-1", "A-2", "A-3"].
    b"corrupt" (or anything unparseable) raises DecodeError. Encoding joins
    page labels with commas, or raises EncodeError when fail_encode is set.
    """

    def __init__(self, fail_encode: bool = False):
        self.fail_encode = fail_encode
        self.calls: List[str] = []
        self.released = 0

    async def decode(self, data, cancel_token=None):
        self.calls.append("decode")
        try:
            label, count = data.decode("ascii").split(":")
            return [f"{label}-{i}" for i in range(1, int(count) + 1)]
        except (UnicodeDecodeError, ValueError):
            raise DecodeError(f"not a document: {data[:10]!r}")

    def create_output(self):
        self.calls.append("create_output")
        return []

    async def copy_pages(self, output, decoded, cancel_token=None):
        self.calls.append("copy_pages")
        output.extend(decoded)
        return len(decoded)

    async def encode(self, output, cancel_token=None):
        self.calls.append("encode")
        if self.fail_encode:
            raise EncodeError("disk full")
        return ",".join(output).encode("ascii")

    def release(self, doc):
        if doc is not None:
            self.released += 1


@pytest.fixture
def progress():
    return RecordingProgress()


@pytest.fixture
def fake_codec():
    return FakeCodec()


@pytest.fixture
def build_collection():
    """Factory: build_collection([("a.pdf", b"A:3"), ...]) -> DocumentCollection."""

    def _build(entries):
        collection = DocumentCollection()
        collection.append(
            collection.new_document(name, len(data), BytesPayload(data))
            for name, data in entries
        )
        return collection

    return _build


@pytest.fixture
def failing_encode_codec():
    return FakeCodec(fail_encode=True)
