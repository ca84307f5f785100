"""
Translation engines package

Provides translation engine implementations for real-time translation.
"""

from engines.translation.base import TranslationEngine, TranslationResult
from engines.translation.ollama_engine import OllamaTranslationEngine

__all__ = [
    'TranslationEngine',
    'TranslationResult',
    'OllamaTranslationEngine'
]
