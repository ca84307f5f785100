"""
Resilience layer

Error categorisation, circuit breakers, retry decisions and fallback mode for
calls to the speech and translation engines.
"""

from core.resilience.categories import ErrorCategory, categorize_error
from core.resilience.circuit_breaker import CircuitBreaker, CircuitState
from core.resilience.config import ResilienceConfig
from core.resilience.exceptions import (
    CircuitOpenError,
    PipelineError,
    ServiceTimeoutError,
    TranscriptionError,
    TranslationError,
)
from core.resilience.fallback import FallbackMode
from core.resilience.service import ErrorHandlingService, RecoveryAction, RecoveryDecision

__all__ = [
    'CircuitBreaker',
    'CircuitOpenError',
    'CircuitState',
    'ErrorCategory',
    'ErrorHandlingService',
    'FallbackMode',
    'PipelineError',
    'RecoveryAction',
    'RecoveryDecision',
    'ResilienceConfig',
    'ServiceTimeoutError',
    'TranscriptionError',
    'TranslationError',
    'categorize_error',
]
