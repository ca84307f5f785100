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
Pipeline orchestrator for live transcription and translation.

One consumer task drains the chunk queue in order: each chunk is transcribed
and segmented before the next is taken. Complete sentences become segments in
the session and are translated by background tasks, bounded by a semaphore,
that look their segment up by id. Every engine call goes through the
:class:`ErrorHandlingService`.
"""

import asyncio
import contextlib
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from config.constants import TRANSLATION_UNAVAILABLE_TEXT
from core.realtime.archiver import RecordingArchiver
from core.realtime.chunk_producer import ChunkProducer
from core.realtime.chunk_queue import ChunkQueue
from core.realtime.config import RealtimeConfig
from core.realtime.events import EventBus, EventType
from core.realtime.models import (
    Chunk,
    Segment,
    SegmentStatus,
    Sentence,
    Session,
    current_timestamp,
)
from core.realtime.segmenter import SentenceSegmenter, split_fallback_sentences
from core.resilience.exceptions import TranscriptionError, TranslationError
from core.resilience.service import (
    CIRCUIT_BREAKER_REASON_PREFIX,
    TRANSCRIPTION,
    TRANSLATION,
    ErrorHandlingService,
    RecoveryAction,
)
from engines.speech.base import SpeechEngine, TranscriptionResult
from engines.translation.base import (
    TranslationContextItem,
    TranslationEngine,
    TranslationResult,
    select_template,
)

logger = logging.getLogger("tandem.realtime.orchestrator")

# Length given to each sentence when the chunk duration is unknown.
UNKNOWN_DURATION_SEGMENT_SECONDS = 3.0
TRANSLATION_CONTEXT_SIZE = 3
GRACEFUL_FALLBACK_MESSAGE = "Translation service failed, showing original text"


class PipelineOrchestrator:
    """Runs one real-time session at a time from capture to persistence."""

    def __init__(
        self,
        speech_engine: SpeechEngine,
        translation_engine: Optional[TranslationEngine] = None,
        config: Optional[RealtimeConfig] = None,
        session_store=None,
        audio_capture=None,
        error_handler: Optional[ErrorHandlingService] = None,
        event_bus: Optional[EventBus] = None,
        segmenter: Optional[SentenceSegmenter] = None,
        archiver: Optional[RecordingArchiver] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            speech_engine: Engine used for chunk transcription.
            translation_engine: Optional engine for sentence translation.
            config: Pipeline configuration; defaults to ``RealtimeConfig()``.
            session_store: ``SessionStore`` used to persist finished sessions.
                Without one, sessions are only returned from ``stop_session``.
            audio_capture: ``AudioCapture`` for live input. Without it, hosts
                feed audio through :meth:`submit_chunk`.
            error_handler: Shared error service. When omitted the orchestrator
                creates one and resets it at the end of every session.
            event_bus: Bus for pipeline events.
            segmenter: Sentence segmenter.
            archiver: Recording archiver; created from the store's file manager
                when a recording is requested and none is given.
            clock: Monotonic clock used for latencies and chunk timing.
        """
        self.speech_engine = speech_engine
        self.translation_engine = translation_engine
        self.config = config or RealtimeConfig()
        self.session_store = session_store
        self.audio_capture = audio_capture
        self.segmenter = segmenter or SentenceSegmenter()
        self.archiver = archiver
        self._clock = clock

        if event_bus is None and error_handler is not None and error_handler.event_bus is not None:
            event_bus = error_handler.event_bus
        self.event_bus = event_bus or EventBus()

        self._owns_error_handler = error_handler is None
        self.error_handler = error_handler or ErrorHandlingService(
            event_bus=self.event_bus, clock=clock
        )
        if self.error_handler.event_bus is None:
            self.error_handler.event_bus = self.event_bus

        self.session: Optional[Session] = None
        self.queue: Optional[ChunkQueue] = None
        self.producer: Optional[ChunkProducer] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._translation_tasks: Set[asyncio.Task] = set()
        self._translation_semaphore: Optional[asyncio.Semaphore] = None
        self._options: Dict[str, Any] = {}
        self._is_active = False
        self._started_at: Optional[float] = None
        self._last_chunk_window: Tuple[float, float] = (0.0, 0.0)
        self._transcription_latencies: List[float] = []
        self._translation_latencies: List[float] = []

    @property
    def is_active(self) -> bool:
        return self._is_active

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start_session(
        self,
        source_language: str = "auto",
        target_language: Optional[str] = None,
        enable_translation: bool = True,
        save_recording: Optional[bool] = None,
        recording_format: Optional[str] = None,
        device_index: Optional[int] = None,
    ) -> Session:
        """Start capturing (when a capture device is configured) and processing."""
        if self._is_active:
            raise RuntimeError("A session is already active")

        if enable_translation and (self.translation_engine is None or not target_language):
            logger.warning("Translation disabled: no translation engine or target language")
            enable_translation = False

        save_recording = self.config.save_recording if save_recording is None else save_recording
        self._options = {
            "enable_translation": enable_translation,
            "save_recording": save_recording,
            "recording_format": recording_format or self.config.recording_format,
        }

        session = Session(source_language=source_language, target_language=target_language)
        session.metadata.update(
            {
                "transcription_engine": self.speech_engine.get_name(),
                "translation_engine": (
                    self.translation_engine.get_name() if enable_translation else None
                ),
                "enable_translation": enable_translation,
                "base_chunk_duration": self.config.base_chunk_duration,
                "quiet_threshold": self.config.quiet_threshold,
                "max_extension": self.config.max_extension,
            }
        )

        self.session = session
        self.queue = ChunkQueue(self.config.queue_maxsize)
        self._translation_semaphore = asyncio.Semaphore(self.config.max_concurrent_translations)
        self._translation_tasks = set()
        self._transcription_latencies = []
        self._translation_latencies = []
        self._last_chunk_window = (0.0, 0.0)
        self.segmenter.reset()
        self._started_at = self._clock()

        recording_sink = None
        if save_recording and self.audio_capture is not None:
            recording_sink = self._start_recording()

        self._is_active = True
        self._consumer_task = asyncio.create_task(self._consume_chunks(), name="chunk-consumer")

        if self.audio_capture is not None:
            self.producer = ChunkProducer(
                self.queue,
                self.config,
                audio_capture=self.audio_capture,
                recording_sink=recording_sink,
                clock=self._clock,
            )
            try:
                await self.producer.start(device_index)
            except Exception as exc:
                logger.error("Failed to start real-time session: %s", exc, exc_info=True)
                await self._rollback_failed_start()
                raise

        self.event_bus.publish(
            EventType.SESSION_STARTED,
            session_id=session.session_id,
            source_language=source_language,
            target_language=target_language,
            enable_translation=enable_translation,
        )
        logger.info(
            "Session %s started (%s -> %s, translation=%s)",
            session.session_id,
            source_language,
            target_language,
            enable_translation,
        )
        return session

    def _start_recording(self):
        if self.archiver is None:
            if self.session_store is None:
                logger.info("No session store configured; recording will not be archived")
                return None
            self.archiver = RecordingArchiver(self.session_store.file_manager)
        if not self.archiver.start(datetime.now(), self.config.sample_rate):
            return None
        return self.archiver.append

    async def _rollback_failed_start(self) -> None:
        """Reset internal state after a failed session start."""
        self._is_active = False
        if self.queue is not None:
            self.queue.close()
        if self._consumer_task is not None:
            self._consumer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer_task
            self._consumer_task = None
        if self.archiver is not None:
            self.archiver.abort()
        self.producer = None
        self.queue = None
        self.session = None

    async def submit_chunk(
        self, data: bytes, captured_at_offset_ms: int, duration_ms: int = 0
    ) -> int:
        """Queue an externally captured WAV chunk; returns its sequence number."""
        if not self._is_active or self.queue is None:
            raise RuntimeError("No active session")
        chunk = Chunk(data=data, captured_at_offset_ms=captured_at_offset_ms, duration_ms=duration_ms)
        return await self.queue.put(chunk)

    async def stop_session(self, drain_policy: Optional[str] = None) -> Dict[str, Any]:
        """
        Stop the active session and persist it.

        Order: stop capture, drain or discard queued chunks, settle in-flight
        translations, finalize and save, then publish ``session-completed``.

        Returns:
            Dict with ``session_id``, ``segment_count``, ``stats``,
            ``discarded_chunks`` and, when saved, ``saved`` and ``recording_path``.
        """
        if not self._is_active or self.session is None:
            logger.warning("No session in progress")
            return {}

        session = self.session
        policy = drain_policy or self.config.drain_policy
        logger.info("Stopping session %s (drain policy: %s)", session.session_id, policy)

        if self.producer is not None:
            try:
                await self.producer.stop()
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to stop chunk producer: %s", exc, exc_info=True)
        self._is_active = False

        discarded = 0
        if policy == "discard":
            discarded = self.queue.discard_pending()
        self.queue.close()

        if self._consumer_task is not None:
            try:
                await asyncio.wait_for(self._consumer_task, timeout=self.config.processing_task_timeout)
            except asyncio.TimeoutError:
                logger.warning("Chunk processing did not finish in time; remaining chunks abandoned")
            except Exception as exc:  # noqa: BLE001
                logger.error("Chunk consumer failed: %s", exc, exc_info=True)
            finally:
                self._consumer_task = None

        await self._settle_translations()

        recording_path = None
        if self.archiver is not None and self.archiver.is_active:
            recording_path = await self.archiver.finish(self._options.get("recording_format", "wav"))

        session.end_time = current_timestamp()
        self._refresh_stats(session)
        session.metadata["error_stats"] = self.error_handler.get_error_stats()
        session.metadata["discarded_chunks"] = discarded
        if self._owns_error_handler:
            self.error_handler.reset()

        result: Dict[str, Any] = {
            "session_id": session.session_id,
            "segment_count": len(session.segments),
            "stats": session.to_dict()["stats"],
            "discarded_chunks": discarded,
            "recording_path": recording_path,
        }

        if self.session_store is not None:
            try:
                saved = await self.session_store.save_session(session, recording_path)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to save session %s: %s", session.session_id, exc, exc_info=True)
                result["error"] = str(exc)
            else:
                result["saved"] = saved
                result["recording_path"] = saved.get("recording")
                if recording_path:
                    with contextlib.suppress(OSError):
                        Path(recording_path).unlink()

        self.event_bus.publish(EventType.SESSION_COMPLETED, **result)
        logger.info(
            "Session %s stopped: %d segments, %d errors",
            session.session_id,
            len(session.segments),
            session.stats.error_count,
        )

        self.producer = None
        self.queue = None
        self._translation_semaphore = None
        return result

    async def _settle_translations(self) -> None:
        pending = set(self._translation_tasks)
        if not pending:
            return
        done, not_done = await asyncio.wait(pending, timeout=self.config.translation_task_timeout)
        if not_done:
            logger.warning("Cancelling %d unfinished translations", len(not_done))
            for task in not_done:
                task.cancel()
            await asyncio.gather(*not_done, return_exceptions=True)
        self._translation_tasks.clear()

    # ------------------------------------------------------------------
    # Consumer
    # ------------------------------------------------------------------

    async def _consume_chunks(self) -> None:
        queue = self.queue
        session = self.session
        while True:
            try:
                chunk = await asyncio.wait_for(queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                self.error_handler.fallback.check_expiry()
                continue
            if chunk is None:
                break
            try:
                await self._process_chunk(session, chunk)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to process chunk %d: %s", chunk.sequence, exc, exc_info=True)
                session.stats.error_count += 1

        self._flush_pending_text(session)

    async def _process_chunk(self, session: Session, chunk: Chunk) -> None:
        started = self._clock()
        result = await self._transcribe_with_recovery(session, chunk)
        session.stats.chunks_processed += 1
        if result is None:
            session.stats.error_count += 1
            self._refresh_stats(session)
            return

        self._transcription_latencies.append((self._clock() - started) * 1000)
        start = chunk.captured_at_offset_ms / 1000.0
        self._last_chunk_window = (start, start + chunk.duration_ms / 1000.0)

        text = (result.text or "").strip()
        if text:
            sentences = self._segment(text)
            self._accept_sentences(session, sentences, chunk.id, result)
        self._refresh_stats(session)

    async def _transcribe_with_recovery(
        self, session: Session, chunk: Chunk
    ) -> Optional[TranscriptionResult]:
        language = None if session.source_language in (None, "", "auto") else session.source_language
        overrides: Dict[str, Any] = {}
        attempt = 1
        while True:
            try:
                return await self.error_handler.call(
                    TRANSCRIPTION,
                    self._invoke_transcription,
                    chunk.data,
                    language,
                    timeout=self.config.transcription_timeout,
                    **overrides,
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                decision = self.error_handler.handle_error(
                    exc,
                    TRANSCRIPTION,
                    attempt,
                    context={"chunk_id": chunk.id, "sequence": chunk.sequence},
                )
                if not decision.should_retry:
                    logger.warning(
                        "Chunk %d abandoned after %d attempt(s) (%s)",
                        chunk.sequence,
                        attempt,
                        decision.action.value,
                    )
                    return None
                if decision.action == RecoveryAction.REDUCE_QUALITY:
                    overrides = {
                        key: decision.suggestions[key]
                        for key in ("model", "threads")
                        if key in decision.suggestions
                    }
                elif decision.action == RecoveryAction.RECONFIGURE:
                    overrides = {
                        "model": self.config.transcription_model,
                        "threads": self.config.transcription_threads,
                    }
                if decision.delay:
                    await asyncio.sleep(decision.delay)
                attempt += 1

    async def _invoke_transcription(
        self,
        audio_bytes: bytes,
        language: Optional[str],
        model: Optional[str] = None,
        threads: Optional[int] = None,
    ) -> TranscriptionResult:
        result = await self.speech_engine.transcribe_chunk(
            audio_bytes, model=model, language=language, threads=threads
        )
        if not result.success:
            raise TranscriptionError(result.error or "Transcription failed")
        return result

    def _segment(self, text: str) -> List[Sentence]:
        try:
            return self.segmenter.process_text_chunk(text)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Sentence segmentation failed, using naive split: %s", exc)
            self.segmenter.reset()
            return split_fallback_sentences(text)

    def _flush_pending_text(self, session: Session) -> None:
        try:
            sentences = self.segmenter.force_complete_pending()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to flush pending transcript: %s", exc)
            return
        if sentences:
            # Flushed text follows everything already segmented from the last chunk.
            chunk_start, chunk_end = self._last_chunk_window
            start = max([chunk_start] + [segment.end_time for segment in session.segments])
            self._accept_sentences(
                session, sentences, None, None, window=(start, max(start, chunk_end))
            )
            self._refresh_stats(session)

    def _accept_sentences(
        self,
        session: Session,
        sentences: List[Sentence],
        chunk_id: Optional[str],
        result: Optional[TranscriptionResult],
        window: Optional[Tuple[float, float]] = None,
    ) -> None:
        windows = self._sentence_windows(sentences, window or self._last_chunk_window)
        for sentence, (start, end) in zip(sentences, windows):
            segment = Segment(
                text=sentence.text,
                source_language=session.source_language,
                target_language=session.target_language,
                start_time=round(start, 3),
                end_time=round(end, 3),
                detected_language=result.language if result else None,
                confidence=sentence.confidence,
                model={
                    "transcription": (result.model if result else None)
                    or self.speech_engine.get_name(),
                    "translation": None,
                },
                word_count=len(sentence.text.split()),
                chunk_id=chunk_id,
                is_fallback_sentence=sentence.is_fallback,
            )
            session.add_segment(segment)
            self.event_bus.publish(
                EventType.TRANSCRIPTION_UPDATE,
                session_id=session.session_id,
                segment=segment.to_dict(),
            )
            if self._options.get("enable_translation"):
                self._spawn_translation(session, segment.id)

    @staticmethod
    def _sentence_windows(
        sentences: List[Sentence], window: Tuple[float, float]
    ) -> List[Tuple[float, float]]:
        """Spread ``window`` over ``sentences`` by text length."""
        start, end = window
        if end <= start:
            return [
                (
                    start + index * UNKNOWN_DURATION_SEGMENT_SECONDS,
                    start + (index + 1) * UNKNOWN_DURATION_SEGMENT_SECONDS,
                )
                for index in range(len(sentences))
            ]

        total_chars = sum(len(sentence.text) for sentence in sentences) or 1
        duration = end - start
        windows = []
        cursor = start
        for sentence in sentences:
            span = duration * len(sentence.text) / total_chars
            windows.append((cursor, cursor + span))
            cursor += span
        return windows

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------

    def _spawn_translation(self, session: Session, segment_id: str) -> None:
        task = asyncio.create_task(
            self._translate_segment(session, segment_id), name=f"translate-{segment_id[:8]}"
        )
        self._translation_tasks.add(task)
        task.add_done_callback(self._translation_tasks.discard)

    async def _translate_segment(self, session: Session, segment_id: str) -> None:
        segment = session.get_segment(segment_id)
        if segment is None:
            logger.error("Segment %s vanished before translation", segment_id)
            return
        try:
            async with self._translation_semaphore:
                await self._run_translation(session, segment)
        except asyncio.CancelledError:
            if not segment.status.is_terminal:
                self._fail_translation(session, segment, "Translation cancelled")
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Translation task for %s failed: %s", segment_id, exc, exc_info=True)
            if not segment.status.is_terminal:
                self._fail_translation(session, segment, str(exc))

    async def _run_translation(self, session: Session, segment: Segment) -> None:
        if self.error_handler.is_bypassed(TRANSLATION):
            self._bypass_translation(session, segment, self._bypass_reason())
            return

        segment.advance(SegmentStatus.TRANSLATING)
        template = select_template(segment.text)
        context = self._translation_context(session, segment)
        model = self.config.translation_model
        started = self._clock()
        attempt = 1

        while True:
            if attempt > 1 and self.error_handler.is_bypassed(TRANSLATION):
                self._bypass_translation(session, segment, self._bypass_reason())
                return
            try:
                result = await self.error_handler.call(
                    TRANSLATION,
                    self._invoke_translation,
                    segment,
                    template,
                    context,
                    model,
                    timeout=self.config.translation_timeout,
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                decision = self.error_handler.handle_error(
                    exc, TRANSLATION, attempt, context={"segment_id": segment.id}
                )
                if decision.action == RecoveryAction.FALLBACK:
                    self._bypass_translation(
                        session,
                        segment,
                        decision.fallback_reason or self._bypass_reason(),
                        error=str(exc),
                    )
                    return
                if not decision.should_retry:
                    self._fail_translation(session, segment, str(exc))
                    return
                if decision.action == RecoveryAction.REDUCE_QUALITY:
                    model = decision.suggestions.get("model", model)
                elif decision.action == RecoveryAction.RECONFIGURE:
                    model = self.config.translation_model
                if decision.delay:
                    await asyncio.sleep(decision.delay)
                attempt += 1
                continue

            latency = (self._clock() - started) * 1000
            segment.advance(
                SegmentStatus.TRANSLATED,
                translated_text=result.translated_text,
                translation_latency_ms=round(latency, 1),
                from_cache=result.from_cache,
                confidence=result.confidence or segment.confidence,
                model={**segment.model, "translation": result.method or model},
            )
            self._translation_latencies.append(latency)
            self._refresh_stats(session)
            self._publish_translation(session, segment)
            return

    async def _invoke_translation(
        self,
        segment: Segment,
        template: str,
        context: List[TranslationContextItem],
        model: Optional[str],
    ) -> TranslationResult:
        result = await self.translation_engine.translate(
            segment.text,
            segment.source_language,
            segment.target_language,
            template=template,
            context=context,
            model=model,
            timeout=self.config.translation_timeout,
        )
        if not result.success:
            raise TranslationError(result.error or "Translation failed")
        return result

    def _translation_context(
        self, session: Session, segment: Segment
    ) -> List[TranslationContextItem]:
        previous = []
        for candidate in session.segments:
            if candidate.id == segment.id:
                break
            if candidate.status == SegmentStatus.TRANSLATED and candidate.translated_text:
                previous.append(
                    TranslationContextItem(original=candidate.text, translated=candidate.translated_text)
                )
        return previous[-TRANSLATION_CONTEXT_SIZE:]

    def _bypass_reason(self) -> str:
        return self.error_handler.fallback.reason or f"{CIRCUIT_BREAKER_REASON_PREFIX}:{TRANSLATION}"

    def _bypass_translation(
        self, session: Session, segment: Segment, reason: str, error: Optional[str] = None
    ) -> None:
        segment.advance(
            SegmentStatus.BYPASSED,
            translated_text=segment.text,
            bypass_reason=reason,
            error=error,
        )
        if error is not None:
            session.stats.error_count += 1
        self._refresh_stats(session)
        self._publish_translation(session, segment)

    def _fail_translation(self, session: Session, segment: Segment, error: str) -> None:
        if self.config.translation_failure_policy == "graceful" and segment.status == SegmentStatus.TRANSLATING:
            segment.advance(
                SegmentStatus.FALLBACK,
                translated_text=segment.text,
                error=f"{GRACEFUL_FALLBACK_MESSAGE}: {error}",
            )
        else:
            segment.advance(
                SegmentStatus.ERROR,
                translated_text=TRANSLATION_UNAVAILABLE_TEXT,
                error=error,
            )
        session.stats.error_count += 1
        self._refresh_stats(session)
        self._publish_translation(session, segment)

    def _publish_translation(self, session: Session, segment: Segment) -> None:
        self.event_bus.publish(
            EventType.TRANSLATION_UPDATE,
            session_id=session.session_id,
            segment=segment.to_dict(),
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _refresh_stats(self, session: Session) -> None:
        stats = session.stats
        stats.segments_created = len(session.segments)
        stats.translations_completed = len(self._translation_latencies)
        if self._transcription_latencies:
            stats.avg_transcription_latency_ms = round(
                sum(self._transcription_latencies) / len(self._transcription_latencies), 1
            )
        if self._translation_latencies:
            stats.avg_translation_latency_ms = round(
                sum(self._translation_latencies) / len(self._translation_latencies), 1
            )
        stats.total_latency_ms = round(
            sum(self._transcription_latencies) + sum(self._translation_latencies), 1
        )
        stats.error_rate = (
            stats.error_count / stats.chunks_processed if stats.chunks_processed else 0.0
        )

    def get_status(self) -> Dict[str, Any]:
        """Return a snapshot of the pipeline state."""
        duration = 0.0
        if self._is_active and self._started_at is not None:
            duration = self._clock() - self._started_at
        last_decision = self.producer.last_decision if self.producer else None
        return {
            "is_active": self._is_active,
            "session_id": self.session.session_id if self.session else None,
            "duration": duration,
            "queue_size": self.queue.qsize() if self.queue is not None else 0,
            "pending_translations": len(self._translation_tasks),
            "chunks_produced": self.producer.chunks_produced if self.producer else 0,
            "last_boundary": last_decision.reason.value if last_decision else None,
            "fallback_mode": self.error_handler.fallback.snapshot(),
            "circuit_breakers": {
                name: breaker.state.value for name, breaker in self.error_handler.breakers.items()
            },
        }

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {}
        if self.session is not None:
            stats = dict(self.session.to_dict()["stats"])
        stats["errors"] = self.error_handler.get_error_stats()
        return stats
