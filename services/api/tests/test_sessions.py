"""
Tests for merge sessions and the session store.

Run with: pytest tests/test_sessions.py -v
"""
import asyncio

import pytest

from core.errors import MergeInProgressError, ValidationError
from core.merge import MergeState
from core.sessions import MergeSession, SessionStore, format_file_size
from core.validation import IncomingFile


def _upload(name, data, content_type="application/pdf"):
    return IncomingFile(filename=name, content_type=content_type, data=data)


@pytest.fixture
def session(fake_codec):
    return MergeSession("s-test", fake_codec)


class TestFormatFileSize:
    """Display formatting for sizes."""

    def test_bytes(self):
        assert format_file_size(0) == "0 B"
        assert format_file_size(1023) == "1023 B"

    def test_kilobytes(self):
        assert format_file_size(1024) == "1.0 KB"
        assert format_file_size(1536) == "1.5 KB"

    def test_megabytes(self):
        assert format_file_size(1048576) == "1.0 MB"
        assert format_file_size(5 * 1048576 + 104858) == "5.1 MB"


class TestIngest:
    """Tests for MergeSession.ingest()."""

    def test_filters_and_appends(self, session):
        added, skipped = session.ingest([
            _upload("a.pdf", b"A:1"),
            _upload("readme.txt", b"hi", "text/plain"),
            _upload("b", b"B:1"),
        ])
        assert [d.display_name for d in added] == ["a.pdf", "b"]
        assert [d.position for d in added] == [0, 1]
        assert skipped == ["readme.txt"]
        assert len(session.collection) == 2

    def test_size_limit_rejects_whole_batch(self, session):
        session.ingest([_upload("a.pdf", b"A:1")])
        with pytest.raises(ValidationError):
            session.ingest(
                [_upload("b.pdf", b"B:1"), _upload("c.pdf", b"C:1")],
                max_total_size_bytes=7,
            )
        assert [d.display_name for d in session.collection] == ["a.pdf"]


class TestResultLifecycle:
    """Merge results and staleness."""

    def test_combine_keeps_result(self, session):
        session.ingest([_upload("a.pdf", b"A:1"), _upload("b.pdf", b"B:1")])
        assert session.can_combine

        result = asyncio.run(session.combine())

        assert result.status == MergeState.COMPLETED
        assert session.result is result
        assert session.progress == 100
        assert not session.can_combine

    @pytest.mark.parametrize("mutate", [
        lambda c: c.move_down(0),
        lambda c: c.move_up(1),
        lambda c: c.remove_at(0),
        lambda c: c.reset(),
    ])
    def test_mutation_invalidates_result(self, session, mutate):
        """Any structural change drops the previous result."""
        session.ingest([_upload("a.pdf", b"A:1"), _upload("b.pdf", b"B:1")])
        asyncio.run(session.combine())

        mutate(session.collection)

        assert session.result is None

    def test_append_invalidates_result(self, session):
        session.ingest([_upload("a.pdf", b"A:1"), _upload("b.pdf", b"B:1")])
        asyncio.run(session.combine())
        session.ingest([_upload("c.pdf", b"C:1")])
        assert session.result is None
        assert session.can_combine

    def test_noop_move_keeps_result(self, session):
        session.ingest([_upload("a.pdf", b"A:1"), _upload("b.pdf", b"B:1")])
        asyncio.run(session.combine())
        session.collection.move_up(0)
        assert session.result is not None

    def test_result_from_changed_queue_not_kept(self, session, fake_codec):
        """If the queue changes while a run is in flight, its result isn't stored."""
        session.ingest([_upload("a.pdf", b"A:1"), _upload("b.pdf", b"B:1")])

        async def scenario():
            gate = asyncio.Event()
            original_decode = fake_codec.decode

            async def slow_decode(data, cancel_token=None):
                await gate.wait()
                return await original_decode(data, cancel_token)

            fake_codec.decode = slow_decode
            run = asyncio.create_task(session.combine())
            await asyncio.sleep(0)
            assert session.running
            session.collection.move_down(0)
            gate.set()
            return await run

        result = asyncio.run(scenario())
        assert result.status == MergeState.COMPLETED
        assert session.result is None

    def test_refused_combine_keeps_running_progress(self, session, fake_codec):
        """A second combine during a run is refused without touching progress."""
        session.ingest([_upload(f"{n}.pdf", f"{n}:1".encode()) for n in "ABCD"])
        seen = []

        async def scenario():
            gate = asyncio.Event()
            blocked = asyncio.Event()
            decodes = []
            original_decode = fake_codec.decode

            async def slow_decode(data, cancel_token=None):
                decodes.append(data)
                if len(decodes) == 2:
                    blocked.set()
                    await gate.wait()
                return await original_decode(data, cancel_token)

            fake_codec.decode = slow_decode
            original_report = session.report

            def recording_report(percent):
                original_report(percent)
                seen.append(session.progress)

            session.report = recording_report

            run = asyncio.create_task(session.combine())
            await blocked.wait()
            with pytest.raises(MergeInProgressError):
                await session.combine()
            seen.append(session.progress)
            gate.set()
            return await run

        result = asyncio.run(scenario())

        assert result.status == MergeState.COMPLETED
        assert seen == [20, 20, 40, 60, 80, 100]
        assert seen == sorted(seen)
        assert session.result is result

    def test_summary(self, session):
        session.ingest([_upload("a.pdf", b"A:1" * 400)])
        summary = session.summary()
        assert summary["document_count"] == 1
        assert summary["total_size_bytes"] == 1200
        assert summary["total_size_display"] == "1.2 KB"
        assert summary["state"] == "idle"
        assert summary["can_combine"] is False
        assert summary["result"] is None


class TestSessionStore:
    """Tests for the in-memory store."""

    def test_create_get_discard(self, fake_codec):
        store = SessionStore(codec=fake_codec)
        session = store.create()
        assert store.get(session.session_id) is session
        assert len(store) == 1
        assert store.discard(session.session_id)
        assert store.get(session.session_id) is None
        assert not store.discard(session.session_id)

    def test_sessions_are_isolated(self, fake_codec):
        store = SessionStore(codec=fake_codec)
        s1, s2 = store.create(), store.create()
        s1.ingest([_upload("a.pdf", b"A:1")])
        assert len(s2.collection) == 0
        assert s1.session_id != s2.session_id

    def test_maxsize_evicts(self, fake_codec):
        store = SessionStore(codec=fake_codec, max_sessions=2)
        first = store.create()
        store.create()
        store.create()
        assert len(store) == 2
        assert store.get(first.session_id) is None
