"""
Real-time pipeline module

Chunking, queueing, segmentation and orchestration of live transcription and
translation. The orchestrator lives in ``core.realtime.orchestrator``.
"""

from core.realtime.audio_buffer import AudioBuffer
from core.realtime.audio_level import AudioLevelMonitor
from core.realtime.chunk_planner import ChunkBoundaryPlanner
from core.realtime.chunk_queue import ChunkQueue
from core.realtime.config import RealtimeConfig
from core.realtime.events import EventBus, EventType, PipelineEvent
from core.realtime.models import Chunk, Segment, SegmentStatus, Sentence, Session

__all__ = [
    'AudioBuffer',
    'AudioLevelMonitor',
    'Chunk',
    'ChunkBoundaryPlanner',
    'ChunkQueue',
    'EventBus',
    'EventType',
    'PipelineEvent',
    'RealtimeConfig',
    'Segment',
    'SegmentStatus',
    'Sentence',
    'Session',
]
