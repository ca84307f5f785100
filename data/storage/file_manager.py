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
File storage management for Tandem.

Handles file operations with owner-only permissions under a single base
directory. Session artifacts live in ``sessions/``; in-progress recordings in
``Temp/``.
"""

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

logger = logging.getLogger("tandem.storage")

PathLike = Union[str, Path]


class FileManager:
    """
    Manages file storage operations with security and organization.

    Writes go through a temporary file followed by ``os.replace`` so a crash
    never leaves a half written JSON or export behind.
    """

    SESSIONS_DIR = "sessions"
    TEMP_DIR = "Temp"

    def __init__(self, base_dir: Optional[PathLike] = None):
        """
        Initialize file manager.

        Args:
            base_dir: Base directory for file storage.
                     Defaults to ~/Documents/Tandem
        """
        if base_dir is None:
            self.base_dir = Path.home() / "Documents" / "Tandem"
        else:
            self.base_dir = Path(base_dir).expanduser()

        self._initialize_directories()
        logger.info("File manager initialized: %s", self.base_dir)

    def _initialize_directories(self) -> None:
        for directory in (
            self.base_dir,
            self.base_dir / self.SESSIONS_DIR,
            self.base_dir / self.TEMP_DIR,
        ):
            self.ensure_directory(directory)

    @property
    def sessions_dir(self) -> Path:
        return self.base_dir / self.SESSIONS_DIR

    def ensure_directory(self, directory: PathLike) -> Path:
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        self._set_directory_permissions(directory)
        return directory

    def _set_file_permissions(self, file_path: Path) -> None:
        """Set owner read/write only."""
        try:
            os.chmod(file_path, 0o600)
        except OSError as e:
            logger.warning("Could not set file permissions for %s: %s", file_path, e)

    def _set_directory_permissions(self, directory: Path) -> None:
        try:
            os.chmod(directory, 0o700)
        except OSError as e:
            logger.warning("Could not set directory permissions for %s: %s", directory, e)

    def write_bytes(self, path: PathLike, content: bytes, overwrite: bool = True) -> Path:
        """
        Atomically write binary content.

        Raises:
            FileExistsError: If the file exists and ``overwrite`` is False
        """
        path = Path(path)
        if path.exists() and not overwrite:
            raise FileExistsError(f"File already exists: {path}")
        self.ensure_directory(path.parent)

        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.replace(tmp_name, path)
        except OSError:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

        self._set_file_permissions(path)
        logger.debug("Wrote %d bytes to %s", len(content), path)
        return path

    def write_text(self, path: PathLike, content: str, encoding: str = "utf-8") -> Path:
        return self.write_bytes(path, content.encode(encoding))

    def write_json(self, path: PathLike, payload: Any) -> Path:
        return self.write_text(path, json.dumps(payload, ensure_ascii=False, indent=2))

    def read_text(self, path: PathLike, encoding: str = "utf-8") -> str:
        with open(path, "r", encoding=encoding) as f:
            return f.read()

    def read_json(self, path: PathLike) -> Any:
        return json.loads(self.read_text(path))

    def copy_file(self, source_path: PathLike, dest_path: PathLike) -> Path:
        """Copy a file, creating the destination directory if needed."""
        source = Path(source_path)
        if not source.exists():
            raise FileNotFoundError(f"Source file not found: {source}")
        dest = Path(dest_path)
        self.ensure_directory(dest.parent)
        shutil.copy2(source, dest)
        self._set_file_permissions(dest)
        logger.info("File copied: %s -> %s", source, dest)
        return dest

    def delete_file(self, path: PathLike) -> bool:
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return False
        logger.info("File deleted: %s", path)
        return True

    def delete_tree(self, directory: PathLike) -> bool:
        directory = Path(directory)
        if not directory.exists():
            return False
        shutil.rmtree(directory)
        logger.info("Directory deleted: %s", directory)
        return True

    def get_temp_path(self, filename: str) -> str:
        return str(self.ensure_directory(self.base_dir / self.TEMP_DIR) / filename)

    @staticmethod
    def get_directory_size(directory: PathLike) -> int:
        total = 0
        for path in Path(directory).rglob("*"):
            if path.is_file():
                try:
                    total += path.stat().st_size
                except OSError:
                    continue
        return total
