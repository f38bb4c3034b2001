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
"""Utility functions for UX."""
import contextlib
import sys
from typing import Optional

import colorama
import rich.console as rich_console

_console: Optional[rich_console.Console] = None

_SPINNER_PREFIX = '[bold cyan]'
_FINISH_PREFIX = f'{colorama.Fore.GREEN}✓ '


def get_console() -> rich_console.Console:
    """Returns the process-wide rich console."""
    global _console
    if _console is None:
        _console = rich_console.Console(soft_wrap=True)
    return _console


@contextlib.contextmanager
def print_exception_no_traceback():
    """A context manager that prints out an exception without traceback.

    Mainly for user-facing errors, e.g., a rejected rename, where the
    traceback would only add noise.

    Example usage:

        with print_exception_no_traceback():
            if error():
                raise ValueError('...')
    """
    original_tracelimit = getattr(sys, 'tracebacklimit', 1000)
    sys.tracebacklimit = 0
    try:
        yield
    finally:
        sys.tracebacklimit = original_tracelimit


def spinner_message(message: str) -> str:
    """Formats a message for a rich status spinner."""
    return f'{_SPINNER_PREFIX}{message}'


def finishing_message(message: str) -> str:
    """Formats a message printed once an operation completes."""
    return f'{_FINISH_PREFIX}{message}{colorama.Style.RESET_ALL}'


def error_message(message: str) -> str:
    return f'{colorama.Fore.RED}{message}{colorama.Style.RESET_ALL}'
