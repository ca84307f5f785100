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
Application configuration management.

Loads ``default_config.json`` shipped next to this module, deep-merges the
user's ``~/.tandem/app_config.json`` over it and validates the result.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping
from types import MappingProxyType

APP_DIR_NAME = ".tandem"


def get_app_dir() -> Path:
    """Return the root directory for Tandem user data."""
    return Path.home() / APP_DIR_NAME


logger = logging.getLogger("tandem.config")

VALID_DRAIN_POLICIES = ("process", "discard")
VALID_FAILURE_POLICIES = ("error", "graceful")
VALID_RECORDING_FORMATS = ("wav", "mp3")


class ConfigManager:
    """Manages application configuration with validation and persistence."""

    def __init__(self, user_config_path: Path = None):
        self.default_config_path = Path(__file__).parent / "default_config.json"
        if user_config_path is None:
            self.user_config_dir = get_app_dir()
            self.user_config_path = self.user_config_dir / "app_config.json"
        else:
            self.user_config_path = Path(user_config_path).expanduser()
            self.user_config_dir = self.user_config_path.parent
        self._config: Dict[str, Any] = {}
        self._default_config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load the default configuration and merge user overrides on top."""
        try:
            logger.info("Loading default configuration from %s", self.default_config_path)
            with open(self.default_config_path, "r", encoding="utf-8") as f:
                self._default_config = json.load(f)

            user_config: Dict[str, Any] = {}
            if self.user_config_path.exists():
                logger.info("Loading user configuration from %s", self.user_config_path)
                with open(self.user_config_path, "r", encoding="utf-8") as f:
                    user_config = json.load(f)

            self._config = self._deep_merge(self._default_config, user_config)
            self._validate_config()
            logger.info("Configuration loaded and validated successfully")

        except FileNotFoundError as e:
            logger.error("Configuration file not found: %s", e)
            raise
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in configuration file: %s", e)
            raise

    def _validate_config(self) -> None:
        """Validate required sections and value ranges."""
        required_sections = {
            "version": str,
            "realtime": dict,
            "resilience": dict,
            "translation": dict,
            "storage": dict,
            "logging": dict,
        }

        for section, expected_type in required_sections.items():
            if section not in self._config:
                raise ValueError(f"Missing required configuration field: {section}")
            if not isinstance(self._config[section], expected_type):
                raise TypeError(
                    f"Configuration field '{section}' must be of type "
                    f"{expected_type.__name__}, got "
                    f"{type(self._config[section]).__name__}"
                )

        self._validate_realtime_config()
        self._validate_resilience_config()

    def _validate_realtime_config(self) -> None:
        realtime = self._config["realtime"]

        threshold = realtime.get("quiet_threshold")
        if not isinstance(threshold, (int, float)) or not 0 <= threshold <= 100:
            raise ValueError("realtime.quiet_threshold must be between 0 and 100")

        for key in (
            "base_chunk_duration",
            "level_sample_interval",
            "transcription_timeout",
            "translation_timeout",
        ):
            value = realtime.get(key)
            if not isinstance(value, (int, float)) or value <= 0:
                raise ValueError(f"realtime.{key} must be a positive number")

        extension = realtime.get("max_extension")
        if not isinstance(extension, (int, float)) or extension < 0:
            raise ValueError("realtime.max_extension must be zero or positive")

        for key in ("queue_maxsize", "max_concurrent_translations"):
            value = realtime.get(key)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"realtime.{key} must be an integer >= 1")

        if realtime.get("drain_policy") not in VALID_DRAIN_POLICIES:
            raise ValueError(f"realtime.drain_policy must be one of {VALID_DRAIN_POLICIES}")
        if realtime.get("translation_failure_policy") not in VALID_FAILURE_POLICIES:
            raise ValueError(
                f"realtime.translation_failure_policy must be one of {VALID_FAILURE_POLICIES}"
            )
        if realtime.get("recording_format") not in VALID_RECORDING_FORMATS:
            raise ValueError(
                f"realtime.recording_format must be one of {VALID_RECORDING_FORMATS}"
            )

    def _validate_resilience_config(self) -> None:
        resilience = self._config["resilience"]

        for key in ("max_retry_attempts", "circuit_breaker_threshold"):
            value = resilience.get(key)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"resilience.{key} must be an integer >= 1")

        for key in (
            "retry_base_delay",
            "retry_max_delay",
            "circuit_breaker_timeout",
            "fallback_auto_reset",
        ):
            value = resilience.get(key)
            if not isinstance(value, (int, float)) or value < 0:
                raise ValueError(f"resilience.{key} must be zero or positive")

        if resilience["retry_max_delay"] < resilience["retry_base_delay"]:
            raise ValueError("resilience.retry_max_delay must be >= retry_base_delay")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value by key.

        Supports nested keys using dot notation (e.g., "realtime.quiet_threshold").
        """
        value = self._config
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value using dot notation."""
        keys = key.split(".")
        config = self._config
        for k in keys[:-1]:
            config = config.setdefault(k, {})
        config[keys[-1]] = value

    def save(self) -> None:
        """Save the current configuration to the user config file."""
        self.user_config_dir.mkdir(parents=True, exist_ok=True)
        self._validate_config()

        with open(self.user_config_path, "w", encoding="utf-8") as f:
            json.dump(self._config, f, indent=2, ensure_ascii=False)

        try:
            os.chmod(self.user_config_path, 0o600)
        except OSError as e:
            logger.warning("Could not set file permissions: %s", e)

        logger.info("Configuration saved to %s", self.user_config_path)

    def get_all(self) -> Dict[str, Any]:
        """Return a deep copy of the whole configuration."""
        return copy.deepcopy(self._config)

    def get_defaults(self) -> Mapping[str, Any]:
        """Return a read-only view of the default configuration."""
        return MappingProxyType(copy.deepcopy(self._default_config))

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load_config()

    def build_realtime_config(self):
        """Create a ``RealtimeConfig`` from the ``realtime`` and ``storage`` sections."""
        from core.realtime.config import RealtimeConfig

        values = dict(self._config["realtime"])
        values["base_dir"] = Path(self._config["storage"]["base_dir"]).expanduser()
        return RealtimeConfig.from_dict(values)

    def build_resilience_config(self):
        """Create a ``ResilienceConfig`` from the ``resilience`` section."""
        from core.resilience.config import ResilienceConfig

        return ResilienceConfig.from_dict(self._config["resilience"])

    @classmethod
    def _deep_merge(cls, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge two dictionaries without mutating inputs."""
        result = copy.deepcopy(base)
        for key, override_value in override.items():
            base_value = result.get(key)
            if isinstance(base_value, dict) and isinstance(override_value, dict):
                result[key] = cls._deep_merge(base_value, override_value)
            else:
                result[key] = copy.deepcopy(override_value)
        return result
