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
"""Durable storage for the state of deployed functions.

One JSON record per function, keyed by the resource identity.
"""
import json
import os
from typing import Dict, Protocol

import filelock

from skylambda import data_models
from skylambda import sky_logging

logger = sky_logging.init_logger(__name__)

_STATE_DIR_ENV_VAR = 'SKYLAMBDA_STATE_DIR'
_DEFAULT_STATE_DIR = '~/.skylambda/state'


class StateStore(Protocol):
    """Key-value storage for `FunctionState` records."""

    def load(self, key: str) -> data_models.FunctionState:
        ...

    def save(self, key: str, state: data_models.FunctionState) -> None:
        ...

    def clear(self, key: str) -> None:
        ...


def default_state_dir() -> str:
    return os.path.expanduser(
        os.environ.get(_STATE_DIR_ENV_VAR, _DEFAULT_STATE_DIR))


class FileStateStore:
    """Stores each record as `<state_dir>/<key>.json`.

    Writes go through a temporary file and `os.replace` while holding a
    file lock, so readers only ever see complete records.
    """

    def __init__(self, state_dir: str = None):
        self.state_dir = state_dir or default_state_dir()

    def _path(self, key: str) -> str:
        return os.path.join(self.state_dir, f'{key}.json')

    def _lock(self, key: str) -> filelock.FileLock:
        return filelock.FileLock(self._path(key) + '.lock')

    def load(self, key: str) -> data_models.FunctionState:
        path = self._path(key)
        if not os.path.exists(path):
            return data_models.FunctionState()
        with self._lock(key):
            with open(path, 'r', encoding='utf-8') as f:
                return data_models.FunctionState.from_dict(json.load(f))

    def save(self, key: str, state: data_models.FunctionState) -> None:
        os.makedirs(self.state_dir, exist_ok=True)
        path = self._path(key)
        tmp_path = path + '.tmp'
        with self._lock(key):
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(state.to_dict(), f, indent=2, sort_keys=True)
            os.replace(tmp_path, path)
        logger.debug(f'Saved state for {key!r} to {path}.')

    def clear(self, key: str) -> None:
        path = self._path(key)
        if not os.path.exists(path):
            return
        with self._lock(key):
            os.remove(path)
        logger.debug(f'Cleared state for {key!r}.')


class MemoryStateStore:
    """Keeps records in memory. Useful for embedding and for tests."""

    def __init__(self):
        self._records: Dict[str, Dict] = {}

    def load(self, key: str) -> data_models.FunctionState:
        return data_models.FunctionState.from_dict(self._records.get(key))

    def save(self, key: str, state: data_models.FunctionState) -> None:
        self._records[key] = state.to_dict()

    def clear(self, key: str) -> None:
        self._records.pop(key, None)
