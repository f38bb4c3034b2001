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
"""Validation of schedule triggers.

Expressions are only checked for syntax. The cloud provider evaluates them.
"""
import re
from typing import Optional

from skylambda import data_models
from skylambda import exceptions

# One field is a comma list, a step/range/nth-weekday pair, a day number
# (optionally 'L'ast), '*' or '*/n', 'L' or 'L-n', '?', or a named day/month
# (optionally a named range, e.g. MON-FRI).
_CRON_FIELD = (r'((\d+,)+\d+|(\d+(/|-|#)\d+)|\d+L?|\*(/\d+)?|L(-\d+)?|\?|'
               r'[A-Z]{3}(-[A-Z]{3})?)')
# Fields are whitespace separated, so a run of digits belongs to one field.
CRON_REGEX = re.compile(
    rf'^cron\({_CRON_FIELD}(\s+{_CRON_FIELD}){{4,6}}\)$')
RATE_REGEX = re.compile(r'^rate\(\d+\s+(minute|minutes|hour|hours|day|days)\)$')


def is_valid_expression(expression) -> bool:
    """Returns True if `expression` is a cron or a rate expression."""
    if not isinstance(expression, str):
        return False
    return bool(CRON_REGEX.match(expression) or RATE_REGEX.match(expression))


def validate(schedule: Optional[data_models.Schedule]) -> None:
    """Validates a schedule, failing on the first invalid attribute.

    Args:
        schedule: The schedule to check. None means no trigger is desired.

    Raises:
        InvalidScheduleExpression: `rate` is neither a cron nor a rate
            expression.
        InvalidScheduleFlag: `enabled` is set but is not a boolean.
        InvalidScheduleInput: `input` is set but is not a JSON object.
    """
    if schedule is None:
        return

    if not is_valid_expression(schedule.rate):
        raise exceptions.InvalidScheduleExpression(
            f'Schedule expression {schedule.rate!r} is invalid. Expected '
            '"cron(<5-7 fields>)" or "rate(<value> <minute(s)|hour(s)|day(s)>)".')

    if schedule.enabled is not None and not isinstance(schedule.enabled, bool):
        raise exceptions.InvalidScheduleFlag(
            f'Schedule enabled flag {schedule.enabled!r} is invalid. It should '
            'be true or false.')

    if schedule.input is not None and not isinstance(schedule.input,
                                                     (dict, list)):
        raise exceptions.InvalidScheduleInput(
            f'Schedule input {schedule.input!r} is invalid. It should be a '
            'valid object.')
