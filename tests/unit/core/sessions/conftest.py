# SPDX-License-Identifier: Apache-2.0
"""
Shared fixtures for session store and exporter tests.
"""

import pytest

from core.realtime.models import Segment, SegmentStatus, Session
from data.storage.file_manager import FileManager


def build_session(session_id="ot_1735725600000_abc123def", start_time="2025-01-01T10:00:00", **kwargs):
    """Spanish to English session with one segment in each interesting state."""
    session = Session(
        source_language=kwargs.pop("source_language", "es"),
        target_language=kwargs.pop("target_language", "en"),
        session_id=session_id,
        start_time=start_time,
        end_time=kwargs.pop("end_time", "2025-01-01T10:00:09"),
    )
    if kwargs.pop("empty", False):
        return session

    translated = Segment("Hola a todos.", "es", "en", start_time=0.0, end_time=2.5)
    translated.advance(SegmentStatus.TRANSLATING)
    translated.advance(SegmentStatus.TRANSLATED, translated_text="Hello everyone.")

    bypassed = Segment("Bienvenidos.", "es", "en", start_time=2.5, end_time=4.0)
    bypassed.advance(
        SegmentStatus.BYPASSED, translated_text="Bienvenidos.", bypass_reason="circuit_breaker:translation"
    )

    failed = Segment("Gracias.", "es", "en", start_time=65.0, end_time=66.25)
    failed.advance(SegmentStatus.TRANSLATING)
    failed.advance(SegmentStatus.ERROR, translated_text="[Translation unavailable]", error="boom")

    for segment in (translated, bypassed, failed):
        session.add_segment(segment)
    session.stats.chunks_processed = 2
    session.stats.error_count = 1
    return session


@pytest.fixture
def file_manager(tmp_path):
    return FileManager(tmp_path / "Tandem")


@pytest.fixture
def session():
    return build_session()


@pytest.fixture
def make_session():
    return build_session
