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
"""Abstract base class for translation engines.

Defines the invocation contract used by the real-time pipeline plus the
prompt template selection shared by LLM backed engines.
"""

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

LANGUAGE_NAMES: Dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
    "auto": "Auto-detect",
}

TECHNICAL_INDICATORS = (
    "api", "database", "server", "application", "system", "configuration",
    "algorithm", "function", "variable", "object", "method", "class",
    "framework", "library", "component", "service", "endpoint",
)

CONVERSATIONAL_INDICATORS = (
    "hello", "hi", "how are you", "thanks", "please", "sorry", "yes", "no",
    "what do you think", "i think", "maybe", "probably", "actually",
    "by the way", "anyway", "well", "you know",
)


def get_language_name(code: Optional[str]) -> str:
    if not code:
        return "Unknown"
    return LANGUAGE_NAMES.get(code, code)


def select_template(text: str) -> str:
    """Pick ``technical``, ``conversational`` or ``standard`` by keyword counts."""
    lowered = text.lower()
    technical = sum(1 for term in TECHNICAL_INDICATORS if term in lowered)
    conversational = sum(1 for term in CONVERSATIONAL_INDICATORS if term in lowered)
    if technical > conversational and technical > 0:
        return "technical"
    if conversational > 0:
        return "conversational"
    return "standard"


@dataclass
class TranslationContextItem:
    """A previously translated sentence given to the engine as context."""

    original: str
    translated: str


@dataclass
class TranslationResult:
    success: bool
    translated_text: str = ""
    method: Optional[str] = None
    from_cache: bool = False
    confidence: float = 0.0
    error: Optional[str] = None


class TranslationEngine(ABC):
    """Abstract base class for translation engines."""

    @abstractmethod
    def get_name(self) -> str:
        """Return the engine identifier (e.g., ``"ollama"``)."""
        pass

    def get_supported_languages(self) -> List[str]:
        return [code for code in LANGUAGE_NAMES if code != "auto"]

    @abstractmethod
    async def translate(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        template: Optional[str] = None,
        context: Optional[Sequence[TranslationContextItem]] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> TranslationResult:
        """Translate ``text`` from ``source_lang`` into ``target_lang``.

        Transport failures propagate as exceptions; a reachable engine that
        cannot produce a translation returns ``success=False``.
        """
        pass

    def validate_language(self, lang_code: str) -> bool:
        """Return ``True`` when the language code is supported."""
        if lang_code == "auto":
            return True
        return lang_code in self.get_supported_languages()

    def close(self) -> Optional[object]:
        """Release engine resources; may return an awaitable."""
        return None

    async def aclose(self) -> None:
        result = self.close()
        if inspect.isawaitable(result):
            await result
