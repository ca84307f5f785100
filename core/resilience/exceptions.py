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
Exceptions raised at external service boundaries.
"""

from typing import Optional


class PipelineError(Exception):
    """Base exception for pipeline failures."""

    pass


class TranscriptionError(PipelineError):
    """Raised when the speech engine cannot transcribe a chunk."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class TranslationError(PipelineError):
    """Raised when the translation engine returns an unsuccessful result."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ServiceTimeoutError(PipelineError, TimeoutError):
    """Raised when an external call exceeds its timeout."""

    def __init__(self, service: str, timeout: float):
        super().__init__(f"{service} call timeout after {timeout:.1f}s")
        self.service = service
        self.timeout = timeout


class CircuitOpenError(PipelineError):
    """Raised instead of calling a service whose circuit breaker is open."""

    def __init__(self, service: str, retry_in: float = 0.0):
        super().__init__(f"Circuit breaker open for {service}; retry in {retry_in:.1f}s")
        self.service = service
        self.retry_in = retry_in
