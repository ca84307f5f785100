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
日志系统配置

Centralised logging for Tandem: a rotating log file under the application
directory plus an optional console handler. Every module logs through a
``tandem.*`` logger so one call here configures the whole pipeline.
"""

import logging
import os
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from config.app_config import get_app_dir
from config.constants import LOG_FILE_BACKUP_COUNT, LOG_FILE_MAX_BYTES

ROOT_LOGGER_NAME = "tandem"

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class SensitiveDataFilter(logging.Filter):
    """
    过滤敏感数据的日志过滤器

    Masks API keys, tokens and credentials that may appear in endpoint URLs
    or engine error messages before they reach any handler.
    """

    SENSITIVE_KEYWORDS = (
        "api_key",
        "api-key",
        "apikey",
        "token",
        "password",
        "secret",
        "authorization",
        "bearer",
    )

    _PATTERNS = (
        (re.compile(r"(api[_-]?key\s*[=:]\s*)[^\s,&\)]+", re.IGNORECASE), r"\1***"),
        (re.compile(r"(token\s*[=:]\s*)[^\s,&\)]+", re.IGNORECASE), r"\1***"),
        (re.compile(r"(password\s*[=:]\s*)[^\s,&\)]+", re.IGNORECASE), r"\1***"),
        (re.compile(r"(secret\s*[=:]\s*)[^\s,&\)]+", re.IGNORECASE), r"\1***"),
        (re.compile(r"(bearer\s+)[^\s,\)]+", re.IGNORECASE), r"\1***"),
    )

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        lowered = message.lower()
        if any(keyword in lowered for keyword in self.SENSITIVE_KEYWORDS):
            # Freeze the formatted message so masked args cannot leak back in
            record.msg = self.mask(message)
            record.args = ()
        return True

    @classmethod
    def mask(cls, message: str) -> str:
        masked = message
        for pattern, replacement in cls._PATTERNS:
            masked = pattern.sub(replacement, masked)
        return masked


def setup_logging(
    log_dir: Optional[str] = None, level: Optional[str] = None, console_output: bool = True
) -> logging.Logger:
    """
    设置应用日志系统

    Args:
        log_dir: 日志文件目录，默认为 ~/.tandem/logs
        level: 日志级别；默认根据环境变量 TANDEM_ENV 决定
               (development: DEBUG, production: INFO)
        console_output: 是否输出到控制台

    Returns:
        配置好的 ``tandem`` 根日志器
    """
    log_path = Path(log_dir).expanduser() if log_dir else get_app_dir() / "logs"
    log_path.mkdir(parents=True, exist_ok=True)

    if level is None:
        env = os.environ.get("TANDEM_ENV", "production").lower()
        level = "DEBUG" if env == "development" else "INFO"
    log_level = LOG_LEVELS.get(level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # handlers decide what is emitted
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    sensitive_filter = SensitiveDataFilter()

    log_file = log_path / "tandem.log"
    file_handler = RotatingFileHandler(
        log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUP_COUNT, encoding="utf-8"
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        )
    )
    file_handler.addFilter(sensitive_filter)
    logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(max(log_level, logging.INFO))
        console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        console_handler.addFilter(sensitive_filter)
        logger.addHandler(console_handler)

    logger.debug("Logging initialised: file=%s level=%s", log_file, level)
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    获取特定模块的日志器实例

    Names without the ``tandem.`` prefix are nested under it so they share the
    handlers installed by :func:`setup_logging`.
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_log_level(level: str) -> None:
    """动态设置文件日志级别"""
    log_level = LOG_LEVELS.get(level.upper(), logging.INFO)
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in logger.handlers:
        if isinstance(handler, RotatingFileHandler):
            handler.setLevel(log_level)
    logger.info("Log level changed to %s", level.upper())
