# Copyright 2024 SkyPilot Authors.
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
"""Logging utilities for SkyLambda."""
import logging
import os
import sys
import threading

_FORMAT = '%(levelname).1s %(asctime)s %(filename)s:%(lineno)d] %(message)s'
_DATE_FORMAT = '%m-%d %H:%M:%S'

_DEBUG_ENV_VAR = 'SKYLAMBDA_DEBUG'
_ROOT_LOGGER_NAME = 'skylambda'

_setup_lock = threading.Lock()
_root_logger_configured = False


class NewLineFormatter(logging.Formatter):
    """Adds logging prefix to newlines to align multi-line messages."""

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        if record.message != '':
            parts = msg.partition(record.message)
            msg = msg.replace('\n', '\r\n' + parts[0])
        return msg


FORMATTER = NewLineFormatter(_FORMAT, datefmt=_DATE_FORMAT)


def _debug_enabled() -> bool:
    return os.environ.get(_DEBUG_ENV_VAR, '0').lower() in ('1', 'true')


def _setup_root_logger() -> None:
    global _root_logger_configured
    with _setup_lock:
        if _root_logger_configured:
            return
        root_logger = logging.getLogger(_ROOT_LOGGER_NAME)
        root_logger.setLevel(
            logging.DEBUG if _debug_enabled() else logging.INFO)

        handler = logging.StreamHandler(sys.stdout)
        handler.flush = sys.stdout.flush  # type: ignore
        handler.setFormatter(FORMATTER)
        root_logger.addHandler(handler)
        # Keep records out of the root logger of the embedding application.
        root_logger.propagate = False
        _root_logger_configured = True


def init_logger(name: str) -> logging.Logger:
    """Returns a logger under the `skylambda` hierarchy."""
    _setup_root_logger()
    return logging.getLogger(name)
