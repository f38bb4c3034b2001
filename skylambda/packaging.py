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
"""Packaging of function source code into deployable archives."""
import os
import shutil
import tempfile
import zipfile
from typing import List, Optional

from skylambda import sky_logging

logger = sky_logging.init_logger(__name__)

# Hello-world handler deployed when no source is given.
DEFAULT_SRC_DIR = os.path.join(os.path.dirname(__file__), '_src')

SHIM_MODULE = '_skylambda_shim'

_SHIM_TEMPLATE = '''\
# Generated by SkyLambda. Do not edit.
import importlib
import os
import sys

_ROOT = os.path.dirname(os.path.abspath(__file__))
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

_user_handler = getattr(importlib.import_module({module!r}), {function!r})


def handler(event, context):
    return _user_handler(event, context)
'''


class Packager:
    """Expands, patches and re-archives function source code.

    Every temporary directory and archive created by a packager is tracked
    and removed by `cleanup`.
    """

    def __init__(self):
        self._temp_paths: List[str] = []

    def size(self, src: Optional[str]) -> int:
        """Returns the size in bytes of a source directory or archive."""
        if not src:
            return 0
        if os.path.isdir(src):
            total = 0
            for root, _, files in os.walk(src):
                for filename in files:
                    filepath = os.path.join(root, filename)
                    if not os.path.islink(filepath):
                        total += os.path.getsize(filepath)
            return total
        return os.path.getsize(src)

    def expand(self, src: Optional[str]) -> str:
        """Copies or extracts `src` into a fresh temporary directory.

        Args:
            src: A source directory, a .zip archive, or None.

        Returns:
            The directory holding the expanded files. It is empty if `src`
            is None.
        """
        temp_dir = tempfile.mkdtemp(prefix='skylambda-source-')
        self._temp_paths.append(temp_dir)
        if not src:
            return temp_dir

        if os.path.isdir(src):
            shutil.copytree(src, temp_dir, dirs_exist_ok=True)
        elif zipfile.is_zipfile(src):
            with zipfile.ZipFile(src) as archive:
                archive.extractall(temp_dir)
        else:
            raise ValueError(
                f'Source {src!r} must be a directory or a .zip archive.')
        return temp_dir

    def inject_shim(self, directory: str, handler: str) -> str:
        """Writes an entrypoint shim that resolves the user's handler.

        The shim puts the package root on `sys.path` so the handler module
        is found regardless of how the source is laid out.

        Args:
            directory: The expanded source directory.
            handler: The user entrypoint, in 'module.function' format.

        Returns:
            The handler to register with the cloud provider.
        """
        module, sep, function = handler.rpartition('.')
        if not sep or not module or not function:
            raise ValueError(
                f'Handler {handler!r} is invalid. Expected the '
                '"module.function" format, e.g. "handler.handler".')
        shim_path = os.path.join(directory, f'{SHIM_MODULE}.py')
        with open(shim_path, 'w', encoding='utf-8') as f:
            f.write(_SHIM_TEMPLATE.format(module=module, function=function))
        return f'{SHIM_MODULE}.handler'

    def compress(self, directory: str) -> str:
        """Zips `directory` and returns the archive path."""
        archive_path = shutil.make_archive(base_name=directory,
                                           format='zip',
                                           root_dir=directory)
        self._temp_paths.append(archive_path)
        logger.debug(f'Packaged {directory} into {archive_path} '
                     f'({os.path.getsize(archive_path)} bytes).')
        return archive_path

    def cleanup(self) -> None:
        """Removes every temporary path created by this packager."""
        while self._temp_paths:
            path = self._temp_paths.pop()
            if os.path.isdir(path):
                shutil.rmtree(path, ignore_errors=True)
            elif os.path.exists(path):
                os.remove(path)
