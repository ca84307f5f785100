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
Incremental sentence segmentation.

Speech engines return text per audio chunk and chunk boundaries rarely align
with sentences, so incomplete trailing text is kept pending and completed by
later chunks.
"""

import logging
import re
from typing import List

from core.realtime.models import Sentence

logger = logging.getLogger("tandem.realtime.segmenter")

ABBREVIATIONS = frozenset(
    {
        # English
        "mr", "mrs", "ms", "dr", "prof", "rev", "sr", "jr", "vs", "etc", "inc",
        "ltd", "corp", "co", "ave", "st", "rd", "blvd", "apt", "no", "vol", "pp",
        "ed", "eds", "phd", "md", "ba", "ma", "bs", "jd", "cpa",
        # Spanish
        "sra", "srta", "dra", "ing", "lic", "mtro", "mtra", "av", "col",
        # French
        "mme", "mlle", "ste", "bd",
        # German
        "hr", "fr", "str", "geb", "ca", "bzw", "inkl", "zzgl", "nr", "tel",
        # Italian
        "sig", "sigg", "sigra", "dott", "avv", "vle", "pza",
    }
)

_SENTENCE_END = re.compile(r"[.!?]+(?:\s+|$)|[。！？]+\s*")
_SINGLE_INITIAL = re.compile(r"^[A-Za-z]$")


def clean_text(text: str) -> str:
    """Normalise whitespace and collapse repeated punctuation."""
    text = re.sub(r"\s+", " ", text.strip())
    text = text.replace("...", "…")
    text = re.sub(r"([?!])\1+", r"\1", text)
    text = re.sub(r"\.{2,}", ".", text)
    return text


def calculate_confidence(text: str) -> float:
    confidence = 0.5
    stripped = text.strip()
    if re.search(r"[.!?。！？]$", stripped):
        confidence += 0.3

    word_count = len(stripped.split())
    if 3 <= word_count <= 20:
        confidence += 0.2
    elif word_count > 20:
        confidence -= 0.1

    if stripped[:1].isupper():
        confidence += 0.1
    if "…" in stripped:
        confidence -= 0.2
    return round(max(0.0, min(1.0, confidence)), 2)


def split_fallback_sentences(text: str) -> List[Sentence]:
    """Naive split on sentence punctuation used when segmentation fails."""
    parts = [part.strip() for part in re.split(r"(?<=[.!?])\s+", text or "")]
    return [
        Sentence(text=part, is_complete=True, confidence=0.7, is_fallback=True)
        for part in parts
        if part
    ]


class SentenceSegmenter:
    """Turns a stream of transcript fragments into complete sentences."""

    def __init__(self, min_sentence_length: int = 3, max_pending_length: int = 500):
        self.min_sentence_length = max(1, min_sentence_length)
        self.max_pending_length = max(100, max_pending_length)
        self.pending_text = ""
        self.sentences_emitted = 0

    def process_text_chunk(self, text: str, is_complete: bool = False) -> List[Sentence]:
        """
        Add ``text`` to the pending buffer and return the sentences it completes.

        Args:
            text: Transcript fragment for one chunk.
            is_complete: Treat remaining pending text as a finished sentence.
        """
        if not isinstance(text, str):
            raise TypeError(f"text must be str, got {type(text).__name__}")
        if not text.strip() and not is_complete:
            return []

        cleaned = clean_text(text)
        if self.pending_text and cleaned:
            self.pending_text = f"{self.pending_text} {cleaned}"
        else:
            self.pending_text = self.pending_text or cleaned

        sentences = self._extract(is_complete)
        sentences.extend(self._relieve_overflow())
        if sentences:
            logger.debug("Segmented %d sentences (pending=%d chars)", len(sentences), len(self.pending_text))
        return sentences

    def force_complete_pending(self) -> List[Sentence]:
        text = self.pending_text.strip()
        self.pending_text = ""
        if not text:
            return []
        return [self._make_sentence(text)]

    def reset(self) -> None:
        self.pending_text = ""
        self.sentences_emitted = 0

    def _extract(self, force: bool) -> List[Sentence]:
        text = self.pending_text
        sentences: List[Sentence] = []
        last_index = 0

        for match in _SENTENCE_END.finditer(text):
            candidate = text[last_index:match.end()].strip()
            if not self._is_real_ending(candidate):
                continue
            # Short sentences stay pending and merge into the next one.
            if len(candidate) >= self.min_sentence_length:
                sentences.append(self._make_sentence(candidate))
                last_index = match.end()

        remaining = text[last_index:].strip()
        if force and remaining:
            sentences.append(self._make_sentence(remaining))
            remaining = ""
        self.pending_text = "" if force else remaining
        return sentences

    def _relieve_overflow(self) -> List[Sentence]:
        """Emit the head of an overlong pending buffer at a word boundary."""
        if len(self.pending_text) <= self.max_pending_length:
            return []
        limit = self.max_pending_length - 100
        cut = self.pending_text.rfind(" ", 0, limit)
        if cut <= 0:
            cut = limit
        head = self.pending_text[:cut].strip()
        self.pending_text = self.pending_text[cut:].strip()
        logger.info("Pending transcript exceeded %d chars; emitting partial sentence", self.max_pending_length)
        return [self._make_sentence(head)] if head else []

    @staticmethod
    def _is_real_ending(candidate: str) -> bool:
        words = candidate.split()
        if not words:
            return False
        last = words[-1]
        if last.endswith("."):
            bare = last.rstrip(".")
            if bare.lower() in ABBREVIATIONS or _SINGLE_INITIAL.match(bare):
                return False
        return True

    def _make_sentence(self, text: str) -> Sentence:
        self.sentences_emitted += 1
        return Sentence(
            text=text.strip(),
            is_complete=True,
            confidence=calculate_confidence(text),
        )
