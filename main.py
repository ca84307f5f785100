#!/usr/bin/env python3
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
Tandem - Real-time transcription and translation

Main entry point for the command line application.
"""

import argparse
import asyncio
import json
import signal
import sys
import traceback
from pathlib import Path
from typing import List, Optional

from config.__version__ import get_display_version
from config.app_config import ConfigManager
from utils.logger import setup_logging

# Global logger for exception hook
_logger = None


def exception_hook(exctype, value, tb):
    """
    Global exception handler for uncaught exceptions.

    Args:
        exctype: Exception type
        value: Exception value
        tb: Traceback object
    """
    error_msg = "".join(traceback.format_exception(exctype, value, tb))
    if _logger:
        _logger.critical(
            "Uncaught exception: %s: %s", exctype.__name__, value, exc_info=(exctype, value, tb)
        )
    else:
        print(f"CRITICAL ERROR: {error_msg}", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tandem", description="Real-time transcription and translation"
    )
    parser.add_argument("--version", action="version", version=get_display_version())
    parser.add_argument("--config", type=Path, help="Path to a user configuration file")
    parser.add_argument("--log-level", help="Override the configured log level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    record = subparsers.add_parser("record", help="Capture, transcribe and translate live audio")
    record.add_argument("--source", default="auto", help="Source language code (default: auto)")
    record.add_argument("--target", default=None, help="Target language code, e.g. es")
    record.add_argument("--no-translation", action="store_true", help="Transcribe only")
    record.add_argument("--device", type=int, default=None, help="Input device index")
    record.add_argument("--list-devices", action="store_true", help="List input devices and exit")
    record.add_argument("--duration", type=float, default=None, help="Stop after N seconds")
    record.add_argument("--model", default=None, help="Whisper model size")
    record.add_argument("--format", choices=("wav", "mp3"), default=None, help="Recording format")
    record.add_argument("--no-recording", action="store_true", help="Do not archive the audio")

    sessions = subparsers.add_parser("sessions", help="Manage saved sessions")
    session_commands = sessions.add_subparsers(dest="sessions_command", required=True)

    listing = session_commands.add_parser("list", help="List saved sessions")
    listing.add_argument("--source", default=None)
    listing.add_argument("--target", default=None)
    listing.add_argument("--sort-by", default="start_time")
    listing.add_argument("--order", choices=("asc", "desc"), default="desc")
    listing.add_argument("--offset", type=int, default=0)
    listing.add_argument("--limit", type=int, default=None)

    show = session_commands.add_parser("show", help="Print a saved session")
    show.add_argument("session_id")

    export = session_commands.add_parser("export", help="Re-render a session export")
    export.add_argument("session_id")
    export.add_argument("--format", choices=("txt", "srt", "json"), default="txt")
    export.add_argument(
        "--variant", choices=("bilingual", "original", "translated"), default="bilingual"
    )

    delete = session_commands.add_parser("delete", help="Delete a saved session")
    delete.add_argument("session_id")

    cleanup = session_commands.add_parser("cleanup", help="Delete old sessions")
    cleanup.add_argument("--max-age-days", type=int, default=None)
    cleanup.add_argument("--max-count", type=int, default=None)

    session_commands.add_parser("stats", help="Show storage statistics")
    return parser


def _create_session_store(config: ConfigManager):
    from core.sessions.store import SessionStore
    from data.storage.file_manager import FileManager

    file_manager = FileManager(config.get("storage.base_dir"))
    return SessionStore(file_manager, index_limit=config.get("storage.index_limit"))


def _print_event(event) -> None:
    from core.realtime.events import EventType

    payload = event.payload
    if event.type == EventType.TRANSCRIPTION_UPDATE:
        print(f"  > {payload['segment']['text']}")
    elif event.type == EventType.TRANSLATION_UPDATE:
        segment = payload["segment"]
        print(f"  < [{segment['status']}] {segment.get('translated_text') or ''}")
    elif event.type == EventType.ERROR_NOTIFICATION:
        print(f"  ! {payload.get('severity', 'warning')}: {payload.get('message')}", file=sys.stderr)
    elif event.type in (EventType.FALLBACK_MODE_ACTIVATED, EventType.FALLBACK_MODE_DEACTIVATED):
        state = "on" if event.type == EventType.FALLBACK_MODE_ACTIVATED else "off"
        print(f"  ! fallback mode {state} ({payload.get('reason')})", file=sys.stderr)


async def run_record(args, config: ConfigManager, logger) -> int:
    from core.realtime.events import EventBus
    from core.realtime.orchestrator import PipelineOrchestrator
    from core.resilience.service import ErrorHandlingService
    from engines.audio.capture import AudioCapture, AudioCaptureError
    from engines.speech.faster_whisper_engine import FasterWhisperEngine
    from engines.translation.ollama_engine import OllamaTranslationEngine

    realtime_config = config.build_realtime_config()
    if args.model:
        realtime_config.transcription_model = args.model

    audio_capture = AudioCapture(
        sample_rate=realtime_config.sample_rate, channels=realtime_config.channels
    )
    if args.list_devices:
        for device in audio_capture.get_input_devices():
            print(f"{device['index']:>3}  {device['name']}")
        audio_capture.close()
        return 0

    enable_translation = not args.no_translation and bool(args.target)
    translation_engine = None
    if enable_translation:
        translation_engine = OllamaTranslationEngine(
            endpoint=config.get("translation.endpoint"),
            model=realtime_config.translation_model,
            cache_size=config.get("translation.cache_size"),
        )

    speech_engine = FasterWhisperEngine(
        model_size=realtime_config.transcription_model,
        threads=realtime_config.transcription_threads,
    )
    event_bus = EventBus()
    event_bus.subscribe(_print_event)
    orchestrator = PipelineOrchestrator(
        speech_engine,
        translation_engine,
        config=realtime_config,
        session_store=_create_session_store(config),
        audio_capture=audio_capture,
        error_handler=ErrorHandlingService(config.build_resilience_config(), event_bus),
        event_bus=event_bus,
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, stop_event.set)
    except NotImplementedError:
        logger.debug("Signal handlers unavailable on this platform")

    try:
        session = await orchestrator.start_session(
            source_language=args.source,
            target_language=args.target,
            enable_translation=enable_translation,
            save_recording=not args.no_recording,
            recording_format=args.format,
            device_index=args.device,
        )
    except AudioCaptureError as exc:
        print(f"Could not start audio capture: {exc}", file=sys.stderr)
        return 1

    print(f"Recording session {session.session_id} (Ctrl+C to stop)")
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=args.duration)
    except asyncio.TimeoutError:
        pass
    except KeyboardInterrupt:
        logger.info("Interrupted")

    print("Stopping...")
    try:
        result = await orchestrator.stop_session()
    finally:
        speech_engine.close()
        if translation_engine is not None:
            await translation_engine.aclose()
        audio_capture.close()

    saved = result.get("saved") or {}
    print(f"Saved {result.get('segment_count', 0)} segments to {saved.get('directory', '-')}")
    return 0


def run_sessions(args, config: ConfigManager) -> int:
    from core.sessions.exceptions import SessionNotFoundError, SessionStoreError

    store = _create_session_store(config)
    command = args.sessions_command
    try:
        if command == "list":
            page = store.list_sessions(
                source_language=args.source,
                target_language=args.target,
                sort_by=args.sort_by,
                sort_order=args.order,
                offset=args.offset,
                limit=args.limit or config.get("storage.index_limit"),
            )
            for entry in page["sessions"]:
                print(
                    f"{entry['session_id']}  {entry.get('start_time', '')}  "
                    f"{entry.get('source_language')} -> {entry.get('target_language')}  "
                    f"{entry.get('segment_count', 0)} segments"
                )
            print(f"{len(page['sessions'])} of {page['total']} sessions")
        elif command == "show":
            session = store.load_session(args.session_id)
            print(json.dumps(session.to_dict(), ensure_ascii=False, indent=2))
        elif command == "export":
            path = store.export_session(args.session_id, args.format, args.variant)
            print(path)
        elif command == "delete":
            store.delete_session(args.session_id)
            print(f"Deleted {args.session_id}")
        elif command == "cleanup":
            deleted = store.cleanup_old_sessions(
                max_age_days=args.max_age_days or config.get("storage.cleanup_max_age_days"),
                max_count=args.max_count or config.get("storage.cleanup_max_count"),
            )
            print(f"Deleted {len(deleted)} sessions")
        elif command == "stats":
            stats = store.get_storage_stats()
            print(f"Sessions: {stats['total_sessions']}")
            print(f"Size: {stats['total_size_formatted']}")
    except SessionNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except SessionStoreError as exc:
        print(f"Session store error: {exc}", file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[List[str]] = None):
    """Application entry point."""
    global _logger

    args = build_parser().parse_args(argv)
    try:
        config = ConfigManager(args.config)
        logger = setup_logging(
            level=args.log_level or config.get("logging.level"),
            console_output=config.get("logging.console_output", True),
        )
        _logger = logger
        sys.excepthook = exception_hook

        logger.info("=" * 60)
        logger.info("Tandem %s starting (%s)", get_display_version(), args.command)
        logger.info("=" * 60)

        if args.command == "record":
            return asyncio.run(run_record(args, config, logger))
        return run_sessions(args, config)

    except KeyboardInterrupt:
        return 130
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
