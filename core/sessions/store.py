# SPDX-License-Identifier: Apache-2.0
#
# Copyright (c) 2024-2025 Tandem Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
Session persistence.

Layout under ``<base_dir>/sessions``::

    session-index.json
    <session_id>/session.json
    <session_id>/recording.<ext>
    <session_id>/bilingual_transcript.txt ... translated_subtitles.srt
"""

import asyncio
import json
import logging
import re
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from config.constants import (
    DEFAULT_SESSION_LIST_LIMIT,
    DEFAULT_SESSION_MAX_AGE_DAYS,
    SESSION_INDEX_LIMIT,
)
from core.realtime.models import SegmentStatus, Session, current_timestamp
from core.sessions.exceptions import (
    SessionNotFoundError,
    SessionStoreError,
    UnsupportedExportError,
)
from core.sessions.exporter import EXPORT_FILENAMES, TranscriptExporter
from data.storage.file_manager import FileManager

logger = logging.getLogger("tandem.sessions.store")

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+$")


def format_size(size_bytes: float) -> str:
    """Format a byte count as e.g. ``"1.5 MB"``."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size_bytes < 1024.0:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} TB"


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


class SessionStore:
    """Persists finished sessions, their recordings and exports."""

    INDEX_FILENAME = "session-index.json"
    SESSION_FILENAME = "session.json"

    def __init__(
        self,
        file_manager: Optional[FileManager] = None,
        index_limit: int = SESSION_INDEX_LIMIT,
        exporter: Optional[TranscriptExporter] = None,
    ):
        self.file_manager = file_manager or FileManager()
        self.index_limit = index_limit
        self.exporter = exporter or TranscriptExporter()

    @property
    def sessions_dir(self) -> Path:
        return self.file_manager.sessions_dir

    @property
    def index_path(self) -> Path:
        return self.sessions_dir / self.INDEX_FILENAME

    def session_dir(self, session_id: str) -> Path:
        if not session_id or not _SESSION_ID_PATTERN.match(session_id):
            raise SessionNotFoundError(session_id)
        return self.sessions_dir / session_id

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    async def save_session(
        self, session: Session, recording_path: Optional[str] = None
    ) -> Dict[str, Any]:
        """Persist ``session`` without blocking the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.save_session_sync, session, recording_path)

    def save_session_sync(
        self, session: Session, recording_path: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Finalize and write ``session``.

        ``session.json`` is written before any export; export and index
        failures are logged and do not fail the save.

        Returns:
            Dict with ``session_id``, ``directory``, ``exports`` and ``recording``
        """
        directory = self.file_manager.ensure_directory(self.session_dir(session.session_id))

        if not session.end_time:
            session.end_time = current_timestamp()
        self._finalize_stats(session)

        recording = None
        if recording_path and Path(recording_path).exists():
            source = Path(recording_path)
            extension = source.suffix.lstrip(".") or "wav"
            recording = directory / f"recording.{extension}"
            self.file_manager.copy_file(source, recording)
            session.metadata["recording"] = {
                "file": recording.name,
                "format": extension,
                "size": recording.stat().st_size,
                "duration": session.duration_seconds,
            }
        elif recording_path:
            logger.warning("Recording not found, session saved without audio: %s", recording_path)

        session.metadata["session_duration"] = session.duration_seconds
        session.metadata["total_segments"] = len(session.segments)
        session.metadata["successful_translations"] = session.stats.translations_completed

        try:
            self.file_manager.write_json(directory / self.SESSION_FILENAME, session.to_dict())
        except OSError as exc:
            raise SessionStoreError(f"Failed to write session {session.session_id}: {exc}") from exc

        exports = self._write_exports(session, directory)

        try:
            self._update_index(session, directory, has_recording=recording is not None)
        except (OSError, ValueError) as exc:
            logger.error("Failed to update session index: %s", exc, exc_info=True)

        logger.info(
            "Session saved: %s (%d segments, %d exports)",
            session.session_id,
            len(session.segments),
            len(exports),
        )
        return {
            "session_id": session.session_id,
            "directory": str(directory),
            "exports": exports,
            "recording": str(recording) if recording else None,
        }

    @staticmethod
    def _finalize_stats(session: Session) -> None:
        stats = session.stats
        stats.segments_created = len(session.segments)
        stats.translations_completed = sum(
            1 for _ in session.iter_status(SegmentStatus.TRANSLATED)
        )
        if stats.chunks_processed:
            stats.error_rate = stats.error_count / stats.chunks_processed
        else:
            stats.error_rate = 0.0

    def _write_exports(self, session: Session, directory: Path) -> Dict[str, str]:
        exports = {}
        for (fmt, variant), content in self.exporter.render_all(session).items():
            filename = EXPORT_FILENAMES[(fmt, variant)]
            try:
                path = self.file_manager.write_text(directory / filename, content)
            except OSError as exc:
                logger.error("Failed to write export %s: %s", filename, exc)
                continue
            exports[f"{variant}_{fmt}"] = str(path)
        return exports

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    def _read_index(self) -> List[Dict[str, Any]]:
        if not self.index_path.exists():
            return []
        try:
            data = self.file_manager.read_json(self.index_path)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Session index unreadable, treating as empty: %s", exc)
            return []
        sessions = data.get("sessions", []) if isinstance(data, dict) else []
        return [entry for entry in sessions if isinstance(entry, dict)]

    def _write_index(self, entries: List[Dict[str, Any]]) -> None:
        self.file_manager.write_json(self.index_path, {"sessions": entries})

    def _update_index(self, session: Session, directory: Path, has_recording: bool) -> None:
        entry = session.summary()
        entry["directory"] = str(directory)
        entry["has_recording"] = has_recording
        entry["stats"] = session.to_dict()["stats"]

        entries = [e for e in self._read_index() if e.get("session_id") != session.session_id]
        entries.insert(0, entry)
        self._write_index(entries[: self.index_limit])

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def load_session(self, session_id: str) -> Session:
        """
        Load a persisted session.

        Raises:
            SessionNotFoundError: If the session has no ``session.json``
            SessionStoreError: If the file cannot be parsed
        """
        path = self.session_dir(session_id) / self.SESSION_FILENAME
        if not path.exists():
            raise SessionNotFoundError(session_id)
        try:
            return Session.from_dict(self.file_manager.read_json(path))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise SessionStoreError(f"Corrupt session file {path}: {exc}") from exc

    def list_sessions(
        self,
        source_language: Optional[str] = None,
        target_language: Optional[str] = None,
        sort_by: str = "start_time",
        sort_order: str = "desc",
        offset: int = 0,
        limit: int = DEFAULT_SESSION_LIST_LIMIT,
    ) -> Dict[str, Any]:
        """Return a filtered, sorted page of index entries."""
        sessions = self._read_index()
        if source_language:
            sessions = [s for s in sessions if s.get("source_language") == source_language]
        if target_language:
            sessions = [s for s in sessions if s.get("target_language") == target_language]

        def sort_key(entry: Dict[str, Any]):
            value = entry.get(sort_by)
            return (value is not None, value if value is not None else 0)

        sessions.sort(key=sort_key, reverse=(sort_order == "desc"))
        offset = max(0, offset)
        return {
            "sessions": sessions[offset: offset + limit],
            "total": len(sessions),
            "offset": offset,
            "limit": limit,
        }

    def delete_session(self, session_id: str) -> bool:
        """
        Remove a session directory and its index entry.

        Raises:
            SessionNotFoundError: If neither exists
        """
        directory = self.session_dir(session_id)
        removed_dir = self.file_manager.delete_tree(directory)

        entries = self._read_index()
        remaining = [e for e in entries if e.get("session_id") != session_id]
        removed_entry = len(remaining) != len(entries)
        if removed_entry:
            self._write_index(remaining)

        if not removed_dir and not removed_entry:
            raise SessionNotFoundError(session_id)
        logger.info("Session deleted: %s", session_id)
        return True

    def _all_session_entries(self) -> List[Dict[str, Any]]:
        """Index entries plus sessions that fell out of the capped index."""
        entries = {e["session_id"]: e for e in self._read_index() if e.get("session_id")}
        if self.sessions_dir.exists():
            for child in self.sessions_dir.iterdir():
                if child.name in entries or not (child / self.SESSION_FILENAME).exists():
                    continue
                try:
                    entries[child.name] = self.load_session(child.name).summary()
                except SessionStoreError as exc:
                    logger.warning("Skipping unreadable session %s: %s", child.name, exc)
        return list(entries.values())

    def cleanup_old_sessions(
        self,
        max_age_days: int = DEFAULT_SESSION_MAX_AGE_DAYS,
        max_count: int = SESSION_INDEX_LIMIT,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """
        Delete sessions older than ``max_age_days``, then the oldest beyond ``max_count``.

        Returns:
            Ids of deleted sessions
        """
        now = now or datetime.now()
        cutoff = now - timedelta(days=max_age_days)
        entries = self._all_session_entries()
        entries.sort(key=lambda e: _parse_timestamp(e.get("start_time")) or datetime.min, reverse=True)

        doomed = []
        kept = []
        for entry in entries:
            started = _parse_timestamp(entry.get("start_time"))
            if started is not None and started < cutoff:
                doomed.append(entry["session_id"])
            else:
                kept.append(entry)
        doomed.extend(entry["session_id"] for entry in kept[max_count:])

        deleted = []
        for session_id in doomed:
            try:
                self.delete_session(session_id)
            except (SessionStoreError, OSError) as exc:
                logger.error("Failed to delete session %s: %s", session_id, exc)
                continue
            deleted.append(session_id)

        logger.info("Session cleanup removed %d sessions", len(deleted))
        return deleted

    def export_session(self, session_id: str, fmt: str = "txt", variant: str = "bilingual") -> Path:
        """
        Re-render one export from the persisted session.

        ``session.json`` is never rewritten; ``fmt="json"`` returns its path.
        """
        session = self.load_session(session_id)
        directory = self.session_dir(session_id)
        if fmt.lower() == "json":
            return directory / self.SESSION_FILENAME

        content = self.exporter.render(session, fmt, variant)
        filename = EXPORT_FILENAMES.get((fmt.lower(), variant.lower()))
        if filename is None:
            raise UnsupportedExportError(f"Unsupported export: {fmt}/{variant}")
        return self.file_manager.write_text(directory / filename, content)

    def get_storage_stats(self) -> Dict[str, Any]:
        entries = self.list_sessions(limit=max(self.index_limit, 1000))["sessions"]
        total_sessions = 0
        total_size = 0
        if self.sessions_dir.exists():
            for child in self.sessions_dir.iterdir():
                if child.is_dir() and (child / self.SESSION_FILENAME).exists():
                    total_sessions += 1
                    total_size += self.file_manager.get_directory_size(child)

        return {
            "total_sessions": total_sessions,
            "total_size": total_size,
            "total_size_formatted": format_size(total_size),
            "oldest_session": entries[-1] if entries else None,
            "newest_session": entries[0] if entries else None,
        }
