# SPDX-License-Identifier: Apache-2.0
"""
Unit tests for SessionStore.
"""

import json
from datetime import datetime

import pytest

from core.realtime.models import SegmentStatus
from core.sessions import SessionNotFoundError, SessionStore, SessionStoreError
from core.sessions.exceptions import UnsupportedExportError


@pytest.fixture
def store(file_manager):
    return SessionStore(file_manager)


class TestSaveSession:
    """Persistence of a finished session."""

    def test_writes_session_and_exports(self, store, session):
        result = store.save_session_sync(session)

        directory = store.sessions_dir / session.session_id
        assert result["directory"] == str(directory)
        assert (directory / "session.json").exists()
        assert set(result["exports"]) == {
            "bilingual_txt",
            "original_txt",
            "translated_txt",
            "bilingual_srt",
            "original_srt",
            "translated_srt",
        }
        assert (directory / "bilingual_subtitles.srt").read_text().startswith("1\n")
        assert result["recording"] is None

    def test_round_trip(self, store, session):
        store.save_session_sync(session)

        loaded = store.load_session(session.session_id)

        assert [s.to_dict() for s in loaded.segments] == [s.to_dict() for s in session.segments]
        assert loaded.get_segment(session.segments[1].id).status == SegmentStatus.BYPASSED
        assert loaded.metadata["total_segments"] == 3
        assert loaded.metadata["successful_translations"] == 1
        assert loaded.metadata["session_duration"] == 9.0

    def test_finalizes_stats(self, store, session):
        store.save_session_sync(session)

        assert session.stats.segments_created == 3
        assert session.stats.translations_completed == 1
        assert session.stats.error_rate == 0.5

    def test_sets_missing_end_time(self, store, make_session):
        session = make_session(end_time=None)

        store.save_session_sync(session)

        assert session.end_time is not None

    @pytest.mark.asyncio
    async def test_copies_recording(self, store, session, tmp_path):
        recording = tmp_path / "recording_20250101.wav"
        recording.write_bytes(b"RIFF0000WAVE")

        result = await store.save_session(session, str(recording))

        assert result["recording"].endswith("recording.wav")
        assert session.metadata["recording"]["file"] == "recording.wav"
        assert session.metadata["recording"]["size"] == 12
        assert store.list_sessions()["sessions"][0]["has_recording"] is True

    def test_missing_recording_is_skipped(self, store, session, tmp_path):
        result = store.save_session_sync(session, str(tmp_path / "missing.wav"))

        assert result["recording"] is None
        assert "recording" not in session.metadata

    def test_resave_replaces_index_entry(self, store, session):
        store.save_session_sync(session)
        store.save_session_sync(session)

        assert store.list_sessions()["total"] == 1

    def test_index_is_capped(self, file_manager, make_session):
        store = SessionStore(file_manager, index_limit=2)
        for day in range(1, 4):
            store.save_session_sync(make_session(f"ot_s{day}", f"2025-01-0{day}T10:00:00"))

        index = json.loads(store.index_path.read_text())
        assert [e["session_id"] for e in index["sessions"]] == ["ot_s3", "ot_s2"]


class TestQueries:
    @pytest.fixture
    def populated(self, store, make_session):
        store.save_session_sync(make_session("ot_a", "2025-01-01T10:00:00"))
        store.save_session_sync(make_session("ot_b", "2025-01-02T10:00:00", target_language="fr"))
        store.save_session_sync(make_session("ot_c", "2025-01-03T10:00:00", source_language="de"))
        return store

    def test_list_newest_first(self, populated):
        result = populated.list_sessions()

        assert [s["session_id"] for s in result["sessions"]] == ["ot_c", "ot_b", "ot_a"]
        assert result["total"] == 3

    def test_list_filters(self, populated):
        assert [s["session_id"] for s in populated.list_sessions(target_language="fr")["sessions"]] == ["ot_b"]
        assert populated.list_sessions(source_language="de")["total"] == 1

    def test_list_sorting_and_paging(self, populated):
        result = populated.list_sessions(sort_order="asc", offset=1, limit=1)

        assert [s["session_id"] for s in result["sessions"]] == ["ot_b"]
        assert result["total"] == 3

    def test_load_unknown_session(self, store):
        with pytest.raises(SessionNotFoundError):
            store.load_session("ot_missing")

    def test_rejects_path_like_ids(self, store):
        with pytest.raises(SessionNotFoundError):
            store.load_session("../outside")

    def test_load_corrupt_session(self, store, session):
        store.save_session_sync(session)
        (store.sessions_dir / session.session_id / "session.json").write_text("{not json")

        with pytest.raises(SessionStoreError):
            store.load_session(session.session_id)

    def test_storage_stats(self, populated):
        stats = populated.get_storage_stats()

        assert stats["total_sessions"] == 3
        assert stats["total_size"] > 0
        assert stats["newest_session"]["session_id"] == "ot_c"
        assert stats["oldest_session"]["session_id"] == "ot_a"


class TestDeleteAndCleanup:
    def test_delete_session(self, store, session):
        store.save_session_sync(session)

        assert store.delete_session(session.session_id) is True
        assert not (store.sessions_dir / session.session_id).exists()
        assert store.list_sessions()["total"] == 0

        with pytest.raises(SessionNotFoundError):
            store.delete_session(session.session_id)

    def test_cleanup_by_age(self, store, make_session):
        store.save_session_sync(make_session("ot_old", "2025-01-01T10:00:00"))
        store.save_session_sync(make_session("ot_new", "2025-02-20T10:00:00"))

        deleted = store.cleanup_old_sessions(max_age_days=30, now=datetime(2025, 3, 1))

        assert deleted == ["ot_old"]
        assert [s["session_id"] for s in store.list_sessions()["sessions"]] == ["ot_new"]

    def test_cleanup_by_count_includes_unindexed_sessions(self, file_manager, make_session):
        """Sessions pushed out of the capped index are still cleaned up."""
        store = SessionStore(file_manager, index_limit=1)
        store.save_session_sync(make_session("ot_first", "2025-02-01T10:00:00"))
        store.save_session_sync(make_session("ot_second", "2025-02-02T10:00:00"))

        deleted = store.cleanup_old_sessions(max_age_days=365, max_count=1, now=datetime(2025, 3, 1))

        assert deleted == ["ot_first"]
        assert not (store.sessions_dir / "ot_first").exists()
        assert (store.sessions_dir / "ot_second").exists()


class TestExportSession:
    def test_json_returns_session_file(self, store, session):
        store.save_session_sync(session)

        path = store.export_session(session.session_id, "json")

        assert path.name == "session.json"

    def test_rerenders_without_touching_session_json(self, store, session):
        store.save_session_sync(session)
        directory = store.sessions_dir / session.session_id
        before = (directory / "session.json").read_bytes()
        (directory / "original_transcript.txt").unlink()

        path = store.export_session(session.session_id, "txt", "original")

        assert path == directory / "original_transcript.txt"
        assert path.read_text().startswith("Original Transcript - 2025-01-01T10:00:00")
        assert (directory / "session.json").read_bytes() == before

    def test_unsupported_format(self, store, session):
        store.save_session_sync(session)

        with pytest.raises(UnsupportedExportError):
            store.export_session(session.session_id, "pdf")

    def test_missing_session(self, store):
        with pytest.raises(SessionNotFoundError):
            store.export_session("ot_missing")
