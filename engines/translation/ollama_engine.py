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
"""Translation engine backed by a local Ollama server."""

import logging
from collections import OrderedDict
from typing import Optional, Sequence, Tuple

import httpx

from config.constants import (
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_OLLAMA_ENDPOINT,
    DEFAULT_OLLAMA_MODEL,
    TRANSLATION_CACHE_SIZE,
)
from engines.translation.base import (
    TranslationContextItem,
    TranslationEngine,
    TranslationResult,
    get_language_name,
)

logger = logging.getLogger("tandem.translation.ollama")

TEMPLATE_INSTRUCTIONS = {
    "technical": (
        "Preserve technical terms, identifiers and product names exactly. "
        "Prefer precise, established terminology."
    ),
    "conversational": "Keep the tone natural and conversational, as a person would speak.",
    "standard": "Produce a faithful, fluent translation.",
}


class OllamaTranslationEngine(TranslationEngine):
    """Translate sentences with an Ollama hosted LLM via ``/api/generate``."""

    def __init__(
        self,
        endpoint: str = DEFAULT_OLLAMA_ENDPOINT,
        model: str = DEFAULT_OLLAMA_MODEL,
        cache_size: int = TRANSLATION_CACHE_SIZE,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            endpoint: Base URL of the Ollama server.
            model: Default model name.
            cache_size: Number of translations kept in the LRU cache.
            client: Optional preconfigured client (tests pass a mock transport).
        """
        self.endpoint = endpoint.rstrip("/")
        self.model = model
        self.cache_size = cache_size
        self._cache: "OrderedDict[Tuple[str, str, str, str], str]" = OrderedDict()
        self.client: Optional[httpx.AsyncClient] = client or httpx.AsyncClient(
            timeout=DEFAULT_HTTP_TIMEOUT_SECONDS
        )
        logger.info("Ollama translation engine initialized: %s (model=%s)", self.endpoint, model)

    def get_name(self) -> str:
        return "ollama"

    def build_prompt(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        template: Optional[str] = None,
        context: Optional[Sequence[TranslationContextItem]] = None,
    ) -> str:
        source_name = get_language_name(source_lang)
        target_name = get_language_name(target_lang)
        if source_lang in (None, "auto"):
            header = f"Translate the following text into {target_name}."
        else:
            header = f"Translate the following {source_name} text into {target_name}."

        lines = [header, TEMPLATE_INSTRUCTIONS.get(template or "standard", TEMPLATE_INSTRUCTIONS["standard"])]
        if context:
            lines.append("Previous sentences for context (do not translate these):")
            for item in context:
                lines.append(f"- {item.original} => {item.translated}")
        lines.append("Reply with the translation only, without quotes or explanations.")
        lines.append("")
        lines.append(f"Text: {text}")
        return "\n".join(lines)

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
        if not text or not text.strip():
            return TranslationResult(success=True, translated_text="", method=self.get_name())
        if not self.validate_language(target_lang):
            return TranslationResult(success=False, error=f"Invalid target language: {target_lang}")
        if self.client is None:
            raise RuntimeError("Ollama translation engine is closed")

        model_name = model or self.model
        cache_key = (text, source_lang, target_lang, model_name)
        cached = self._cache.get(cache_key)
        if cached is not None:
            self._cache.move_to_end(cache_key)
            return TranslationResult(
                success=True,
                translated_text=cached,
                method=model_name,
                from_cache=True,
                confidence=0.9,
            )

        payload = {
            "model": model_name,
            "prompt": self.build_prompt(text, source_lang, target_lang, template, context),
            "stream": False,
        }
        response = await self.client.post(
            f"{self.endpoint}/api/generate",
            json=payload,
            timeout=timeout if timeout is not None else DEFAULT_HTTP_TIMEOUT_SECONDS,
        )
        response.raise_for_status()

        translated = self._clean_response(response.json().get("response", ""))
        if not translated:
            logger.warning("Ollama returned an empty translation for %r", text[:50])
            return TranslationResult(success=False, method=model_name, error="Empty translation response")

        self._cache[cache_key] = translated
        if len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

        logger.debug("Translated %r -> %r", text[:50], translated[:50])
        return TranslationResult(
            success=True,
            translated_text=translated,
            method=model_name,
            confidence=0.9,
        )

    @staticmethod
    def _clean_response(raw: str) -> str:
        cleaned = (raw or "").strip()
        for prefix in ("Translation:", "Text:"):
            if cleaned.startswith(prefix):
                cleaned = cleaned[len(prefix):].strip()
        if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in "\"'":
            cleaned = cleaned[1:-1].strip()
        return cleaned

    def clear_cache(self) -> None:
        self._cache.clear()

    def close(self):
        return self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self.client is None:
            return
        client = self.client
        self.client = None
        await client.aclose()
        logger.debug("Ollama AsyncClient closed")
