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
Version management for Tandem.

Single source of truth for the package version; ``pyproject.toml`` and the
command line read it from here.
"""

__version__ = "0.3.1"

VERSION_INFO = {
    "major": 0,
    "minor": 3,
    "patch": 1,
    "pre_release": None,  # e.g., "alpha", "beta", "rc1"
}


def get_version() -> str:
    """Return the current package version."""
    return __version__


def get_display_version() -> str:
    """
    Get formatted version for display on the command line.

    Returns:
        Version string prefixed with 'v' and any pre-release tag
    """
    version = f"v{__version__}"
    if VERSION_INFO["pre_release"]:
        version += f"-{VERSION_INFO['pre_release']}"
    return version
