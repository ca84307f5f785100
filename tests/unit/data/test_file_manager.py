# SPDX-License-Identifier: Apache-2.0
"""
Unit tests for FileManager class.

Tests atomic writes, permissions, and directory management.
"""

import os
import stat
from pathlib import Path

import pytest

from data.storage.file_manager import FileManager


@pytest.fixture
def fm(tmp_path):
    return FileManager(tmp_path / "tandem")


class TestFileManagerInitialization:
    """Test FileManager initialization."""

    def test_init_default_base_dir(self, tmp_path, monkeypatch):
        monkeypatch.setattr(Path, "home", lambda: tmp_path)

        fm = FileManager()

        assert fm.base_dir == tmp_path / "Documents" / "Tandem"

    def test_init_creates_directory_structure(self, tmp_path):
        base_dir = tmp_path / "tandem"
        fm = FileManager(str(base_dir))

        assert fm.sessions_dir == base_dir / "sessions"
        assert (base_dir / "sessions").is_dir()
        assert (base_dir / "Temp").is_dir()

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_directories_are_owner_only(self, fm):
        mode = stat.S_IMODE(fm.sessions_dir.stat().st_mode)

        assert mode == 0o700


class TestWrites:
    def test_write_text_and_json(self, fm):
        path = fm.write_json(fm.sessions_dir / "s1" / "session.json", {"text": "你好"})

        assert fm.read_json(path) == {"text": "你好"}
        assert "你好" in fm.read_text(path)

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_written_files_are_owner_only(self, fm):
        path = fm.write_text(fm.base_dir / "notes.txt", "hello")

        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_overwrite_protection(self, fm):
        path = fm.write_bytes(fm.base_dir / "audio.wav", b"one")

        with pytest.raises(FileExistsError):
            fm.write_bytes(path, b"two", overwrite=False)
        assert path.read_bytes() == b"one"

    def test_no_temp_files_left_behind(self, fm):
        fm.write_text(fm.base_dir / "a.txt", "a")
        fm.write_text(fm.base_dir / "a.txt", "b")

        assert sorted(p.name for p in fm.base_dir.iterdir() if p.is_file()) == ["a.txt"]


class TestFileOperations:
    def test_copy_file(self, fm, tmp_path):
        source = tmp_path / "source.wav"
        source.write_bytes(b"RIFF")

        dest = fm.copy_file(source, fm.sessions_dir / "s1" / "recording.wav")

        assert dest.read_bytes() == b"RIFF"

    def test_copy_missing_file(self, fm, tmp_path):
        with pytest.raises(FileNotFoundError):
            fm.copy_file(tmp_path / "missing.wav", fm.base_dir / "x.wav")

    def test_delete_file(self, fm):
        path = fm.write_text(fm.base_dir / "a.txt", "a")

        assert fm.delete_file(path) is True
        assert fm.delete_file(path) is False

    def test_delete_tree_and_size(self, fm):
        directory = fm.sessions_dir / "s1"
        fm.write_bytes(directory / "a.bin", b"12345")
        fm.write_bytes(directory / "nested" / "b.bin", b"123")

        assert FileManager.get_directory_size(directory) == 8
        assert fm.delete_tree(directory) is True
        assert fm.delete_tree(directory) is False

    def test_temp_path(self, fm):
        path = fm.get_temp_path("recording.wav")

        assert path == str(fm.base_dir / "Temp" / "recording.wav")
