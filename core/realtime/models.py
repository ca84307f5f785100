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
Data models for the real-time pipeline.

``Chunk`` and ``Sentence`` are transient; ``Segment`` and ``Session`` are the
persisted output. Sessions double as the segment arena: segments are appended
in transcription order and translation tasks look them up by id.
"""

import logging
import random
import string
import time
import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger("tandem.models")


def generate_uuid() -> str:
    return str(uuid.uuid4())


def current_timestamp() -> str:
    return datetime.now().isoformat()


def generate_session_id() -> str:
    """Return an id of the form ``ot_<epoch_ms>_<9 base36 chars>``."""
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(random.choices(alphabet, k=9))
    return f"ot_{int(time.time() * 1000)}_{suffix}"


class SegmentStateError(ValueError):
    """Raised when a segment status change would move backwards."""

    def __init__(self, segment_id: str, current: "SegmentStatus", requested: "SegmentStatus"):
        super().__init__(
            f"Segment {segment_id}: illegal status change {current.value} -> {requested.value}"
        )
        self.segment_id = segment_id
        self.current = current
        self.requested = requested


class SegmentStatus(str, Enum):
    TRANSCRIBED = "transcribed"
    TRANSLATING = "translating"
    TRANSLATED = "translated"
    BYPASSED = "bypassed"
    FALLBACK = "fallback"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self not in (SegmentStatus.TRANSCRIBED, SegmentStatus.TRANSLATING)

    def can_transition_to(self, target: "SegmentStatus") -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS = {
    SegmentStatus.TRANSCRIBED: frozenset(
        {SegmentStatus.TRANSLATING, SegmentStatus.BYPASSED, SegmentStatus.ERROR}
    ),
    SegmentStatus.TRANSLATING: frozenset(
        {
            SegmentStatus.TRANSLATED,
            SegmentStatus.BYPASSED,
            SegmentStatus.FALLBACK,
            SegmentStatus.ERROR,
        }
    ),
    SegmentStatus.TRANSLATED: frozenset(),
    SegmentStatus.BYPASSED: frozenset(),
    SegmentStatus.FALLBACK: frozenset(),
    SegmentStatus.ERROR: frozenset(),
}


@dataclass
class Chunk:
    """A bounded slice of captured audio awaiting transcription."""

    data: bytes
    captured_at_offset_ms: int
    duration_ms: int = 0
    id: str = field(default_factory=generate_uuid)
    sequence: int = -1


@dataclass(frozen=True)
class Sentence:
    """A complete unit of transcribed text emitted by the segmenter."""

    text: str
    is_complete: bool = True
    confidence: float = 1.0
    is_fallback: bool = False
    id: str = field(default_factory=generate_uuid)


@dataclass
class Segment:
    """
    Translatable unit of pipeline output.

    ``text`` is fixed at creation. ``status`` only moves forward; use
    :meth:`advance` for every status change.
    """

    text: str
    source_language: str
    target_language: Optional[str]
    start_time: float = 0.0
    end_time: float = 0.0
    id: str = field(default_factory=generate_uuid)
    translated_text: Optional[str] = None
    detected_language: Optional[str] = None
    confidence: float = 1.0
    status: SegmentStatus = SegmentStatus.TRANSCRIBED
    model: Dict[str, Optional[str]] = field(
        default_factory=lambda: {"transcription": None, "translation": None}
    )
    word_count: int = 0
    chunk_id: Optional[str] = None
    translation_latency_ms: Optional[float] = None
    from_cache: bool = False
    is_fallback_sentence: bool = False
    bypass_reason: Optional[str] = None
    error: Optional[str] = None
    created_at: str = field(default_factory=current_timestamp)

    def __post_init__(self):
        if not self.word_count:
            self.word_count = len(self.text.split())

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "text" and "text" in self.__dict__:
            raise AttributeError("Segment text cannot change after creation")
        super().__setattr__(name, value)

    def advance(self, status: SegmentStatus, **changes: Any) -> None:
        """Move to ``status`` and apply field ``changes`` in one step."""
        status = SegmentStatus(status)
        if not self.status.can_transition_to(status):
            raise SegmentStateError(self.id, self.status, status)
        for name, value in changes.items():
            if name in ("id", "text", "status"):
                raise AttributeError(f"Segment field '{name}' cannot be patched")
            setattr(self, name, value)
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Segment":
        valid_keys = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in valid_keys}
        values["status"] = SegmentStatus(values.get("status", SegmentStatus.TRANSCRIBED))
        return cls(**values)


@dataclass
class SessionStats:
    chunks_processed: int = 0
    segments_created: int = 0
    translations_completed: int = 0
    avg_transcription_latency_ms: float = 0.0
    avg_translation_latency_ms: float = 0.0
    total_latency_ms: float = 0.0
    error_count: int = 0
    error_rate: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionStats":
        valid_keys = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in valid_keys})


@dataclass
class Session:
    """One continuous recording and pipeline run."""

    source_language: str
    target_language: Optional[str]
    session_id: str = field(default_factory=generate_session_id)
    start_time: str = field(default_factory=current_timestamp)
    end_time: Optional[str] = None
    segments: List[Segment] = field(default_factory=list)
    stats: SessionStats = field(default_factory=SessionStats)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self._positions: Dict[str, int] = {
            segment.id: index for index, segment in enumerate(self.segments)
        }

    def add_segment(self, segment: Segment) -> int:
        """Append ``segment`` and return its stable position."""
        if segment.id in self._positions:
            raise ValueError(f"Duplicate segment id: {segment.id}")
        self.segments.append(segment)
        position = len(self.segments) - 1
        self._positions[segment.id] = position
        return position

    def get_segment(self, segment_id: str) -> Optional[Segment]:
        position = self._positions.get(segment_id)
        if position is None:
            return None
        return self.segments[position]

    def iter_status(self, *statuses: SegmentStatus) -> Iterator[Segment]:
        wanted = set(statuses)
        return (segment for segment in self.segments if segment.status in wanted)

    @property
    def duration_seconds(self) -> float:
        if not self.end_time:
            return 0.0
        try:
            start = datetime.fromisoformat(self.start_time)
            end = datetime.fromisoformat(self.end_time)
        except ValueError:
            logger.warning("Unparseable session timestamps for %s", self.session_id)
            return 0.0
        return max(0.0, (end - start).total_seconds())

    def summary(self) -> Dict[str, Any]:
        """Index entry used by ``session-index.json``."""
        return {
            "session_id": self.session_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "source_language": self.source_language,
            "target_language": self.target_language,
            "segment_count": len(self.segments),
            "duration": self.duration_seconds,
            "error_count": self.stats.error_count,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "source_language": self.source_language,
            "target_language": self.target_language,
            "segments": [segment.to_dict() for segment in self.segments],
            "stats": asdict(self.stats),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            session_id=data["session_id"],
            start_time=data["start_time"],
            end_time=data.get("end_time"),
            source_language=data.get("source_language", "auto"),
            target_language=data.get("target_language"),
            segments=[Segment.from_dict(item) for item in data.get("segments", [])],
            stats=SessionStats.from_dict(data.get("stats")),
            metadata=dict(data.get("metadata") or {}),
        )
