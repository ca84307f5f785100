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
Error categorisation for external service failures.

Typed exceptions are classified first (asyncio/httpx/OS errors); anything
else is classified by keywords in its message.
"""

import asyncio
from enum import Enum
from typing import Tuple

import httpx

from core.resilience.exceptions import ServiceTimeoutError


class ErrorCategory(str, Enum):
    CONNECTION = "connection"
    SERVICE_UNAVAILABLE = "service_unavailable"
    RESOURCE = "resource"
    PERMISSION = "permission"
    FORMAT = "format"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


# Checked in order; the first category with a matching keyword wins.
MESSAGE_KEYWORDS: Tuple[Tuple[ErrorCategory, Tuple[str, ...]], ...] = (
    (ErrorCategory.CONNECTION, ("connection", "network", "timeout", "econnrefused")),
    (ErrorCategory.SERVICE_UNAVAILABLE, ("unavailable", "not found", "service", "offline")),
    (ErrorCategory.RESOURCE, ("memory", "space", "resource")),
    (ErrorCategory.PERMISSION, ("permission", "unauthorized", "forbidden")),
    (ErrorCategory.FORMAT, ("format", "invalid", "corrupt")),
    (ErrorCategory.CONFIGURATION, ("config", "setting", "model")),
)


def _categorize_status(status_code: int) -> ErrorCategory:
    if status_code in (401, 403):
        return ErrorCategory.PERMISSION
    if status_code in (400, 415, 422):
        return ErrorCategory.FORMAT
    if status_code == 429:
        return ErrorCategory.RESOURCE
    if status_code == 404 or status_code >= 500:
        return ErrorCategory.SERVICE_UNAVAILABLE
    return ErrorCategory.UNKNOWN


def categorize_error(error: BaseException) -> ErrorCategory:
    """Bucket ``error`` into an :class:`ErrorCategory`."""
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ServiceTimeoutError)):
        return ErrorCategory.CONNECTION
    if isinstance(error, httpx.HTTPStatusError):
        return _categorize_status(error.response.status_code)
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError, ConnectionError)):
        return ErrorCategory.CONNECTION
    if isinstance(error, MemoryError):
        return ErrorCategory.RESOURCE
    if isinstance(error, PermissionError):
        return ErrorCategory.PERMISSION

    message = str(error).lower()
    for category, keywords in MESSAGE_KEYWORDS:
        if any(keyword in message for keyword in keywords):
            return category
    return ErrorCategory.UNKNOWN


def get_error_type(error: BaseException) -> str:
    """Short label used for the per-service error histogram."""
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return "timeout"
    message = str(error).lower()
    if "timeout" in message:
        return "timeout"
    if isinstance(error, (httpx.NetworkError, ConnectionError)) or "connection" in message:
        return "connection"
    if isinstance(error, MemoryError) or "memory" in message:
        return "memory"
    if isinstance(error, httpx.HTTPStatusError) and error.response.status_code == 404:
        return "not_found"
    if "not found" in message:
        return "not_found"
    if isinstance(error, PermissionError) or "permission" in message:
        return "permission"
    if "format" in message:
        return "format"
    return "unknown"


def describe_error(error: BaseException) -> Tuple[str, str]:
    """
    Build a user facing (message, suggestion) pair.

    Args:
        error: The failure raised by an engine.

    Returns:
        A short description and a suggested action.
    """
    if isinstance(error, (httpx.ConnectError, ConnectionError)):
        return "Unable to reach the service", "Check that the engine is running and reachable"
    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return "The service did not respond in time", "The engine may be overloaded; it will be retried"
    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        if status_code in (401, 403):
            return "Access denied by the service", "Check credentials and permissions"
        if status_code == 404:
            return "The requested model or endpoint was not found", "Check the model name and endpoint"
        if status_code == 429:
            retry_after = error.response.headers.get("Retry-After")
            if retry_after and retry_after.isdigit():
                return "Rate limit reached", f"Retry after {int(retry_after)} seconds"
            return "Rate limit reached", "Retry later"
        if status_code >= 500:
            return f"Service error ({status_code})", "The service is temporarily unavailable"
        return f"HTTP error ({status_code})", "Retry later"
    if isinstance(error, httpx.NetworkError):
        return "Network error", "Check the network connection"
    return str(error) or error.__class__.__name__, "See the log for details"
