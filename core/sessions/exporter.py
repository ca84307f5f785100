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
Bilingual transcript exporter.

Renders a session into plain text and SRT subtitle files in three variants:
bilingual, original only and translated only.
"""

import logging
from typing import Dict, List, Tuple

from core.realtime.models import Segment, SegmentStatus, Session
from core.sessions.exceptions import UnsupportedExportError
from engines.translation.base import get_language_name

logger = logging.getLogger("tandem.sessions.exporter")

RULE = "=" * 50
NOT_AVAILABLE = "[Not available]"

EXPORT_FILENAMES: Dict[Tuple[str, str], str] = {
    ("txt", "bilingual"): "bilingual_transcript.txt",
    ("txt", "original"): "original_transcript.txt",
    ("txt", "translated"): "translated_transcript.txt",
    ("srt", "bilingual"): "bilingual_subtitles.srt",
    ("srt", "original"): "original_subtitles.srt",
    ("srt", "translated"): "translated_subtitles.srt",
}


def has_translation(segment: Segment) -> bool:
    return bool(segment.translated_text) and segment.status == SegmentStatus.TRANSLATED


class TranscriptExporter:
    """
    Converts a :class:`Session` into export documents.

    Supported formats:
    - TXT: header, language line and numbered ``[n] MM:SS`` entries
    - SRT: SubRip subtitles with ``HH:MM:SS,mmm`` timestamps
    """

    SUPPORTED_FORMATS = ["txt", "srt"]
    SUPPORTED_VARIANTS = ["bilingual", "original", "translated"]

    def render(self, session: Session, fmt: str, variant: str) -> str:
        """
        Render ``session`` in the requested format and variant.

        Raises:
            UnsupportedExportError: If format or variant is unknown
        """
        fmt = fmt.lower()
        variant = variant.lower()
        if fmt not in self.SUPPORTED_FORMATS:
            raise UnsupportedExportError(
                f"Unsupported format: {fmt}. "
                f"Supported formats: {', '.join(self.SUPPORTED_FORMATS)}"
            )
        if variant not in self.SUPPORTED_VARIANTS:
            raise UnsupportedExportError(
                f"Unsupported variant: {variant}. "
                f"Supported variants: {', '.join(self.SUPPORTED_VARIANTS)}"
            )

        if fmt == "txt":
            return self._to_txt(session, variant)
        return self._to_srt(session.segments, variant)

    def render_all(self, session: Session) -> Dict[Tuple[str, str], str]:
        """Render every format/variant pair; failures are logged and skipped."""
        documents = {}
        for key in EXPORT_FILENAMES:
            try:
                documents[key] = self.render(session, *key)
            except Exception as exc:
                logger.error("Failed to render %s/%s export: %s", key[0], key[1], exc, exc_info=True)
        return documents

    def _to_txt(self, session: Session, variant: str) -> str:
        title = variant.capitalize()
        source = get_language_name(session.source_language)
        target = get_language_name(session.target_language)

        lines = [f"{title} Transcript - {session.start_time}"]
        if variant == "bilingual":
            lines.append(f"{source} -> {target}")
        elif variant == "original":
            lines.append(f"Language: {source}")
        else:
            lines.append(f"Language: {target}")
        lines.append(RULE)
        lines.append("")

        if variant == "translated":
            segments = [segment for segment in session.segments if has_translation(segment)]
        else:
            segments = list(session.segments)

        for index, segment in enumerate(segments, start=1):
            lines.append(f"[{index}] {self._format_timestamp_txt(segment.start_time)}")
            if variant == "bilingual":
                lines.append(f"Original: {segment.text}")
                translation = segment.translated_text if has_translation(segment) else NOT_AVAILABLE
                lines.append(f"Translation: {translation}")
            elif variant == "original":
                lines.append(segment.text)
            else:
                lines.append(segment.translated_text)
            lines.append("")

        result = "\n".join(lines) + "\n"
        logger.debug("Converted to TXT (%s): %d entries", variant, len(segments))
        return result

    def _to_srt(self, segments: List[Segment], variant: str) -> str:
        """
        Convert to SRT subtitle format.

        Format:
        1
        00:00:00,000 --> 00:00:02,500
        Hola a todos.
        Hello everyone.

        Bilingual and translated variants include translated segments only.
        """
        srt_blocks = []
        subtitle_index = 1
        for segment in segments:
            if variant == "original":
                body = segment.text
            elif not has_translation(segment):
                continue
            elif variant == "bilingual":
                body = f"{segment.text}\n{segment.translated_text}"
            else:
                body = segment.translated_text

            start_ts = self._format_timestamp_srt(segment.start_time)
            end_ts = self._format_timestamp_srt(segment.end_time)
            srt_blocks.append(f"{subtitle_index}\n{start_ts} --> {end_ts}\n{body}\n")
            subtitle_index += 1

        result = "\n".join(srt_blocks)
        logger.debug("Converted to SRT (%s): %d subtitles", variant, len(srt_blocks))
        return result

    @staticmethod
    def _format_timestamp_txt(seconds: float) -> str:
        seconds = max(0.0, seconds)
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes:02d}:{secs:02d}"

    @staticmethod
    def _format_timestamp_srt(seconds: float) -> str:
        """
        Format timestamp for SRT format (HH:MM:SS,mmm).

        Args:
            seconds: Time in seconds

        Returns:
            Formatted timestamp string
        """
        seconds = max(0.0, seconds)
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        secs = int(seconds % 60)
        milliseconds = int(round((seconds % 1) * 1000))
        if milliseconds == 1000:
            milliseconds = 999

        return f"{hours:02d}:{minutes:02d}:{secs:02d},{milliseconds:03d}"
