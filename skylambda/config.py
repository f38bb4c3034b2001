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
"""Loading of function configurations from YAML files.

Example:

    instance: reporting
    name: nightly-report
    region: eu-west-1
    src: ./src
    handler: report.main
    memory: 512
    env:
      STAGE: prod
    schedule:
      rate: cron(0 3 * * ? *)
      input:
        full: true
    extra:
      TracingConfig:
        Mode: Active
"""
import dataclasses
import os
from typing import Any, Dict, Tuple

import yaml

from skylambda import data_models

# camelCase input names accepted from serverless.yml files.
_ALIASES = {
    'roleName': 'role_name',
    'securityGroupIds': 'security_group_ids',
    'subnetIds': 'subnet_ids',
}

_FIELDS = {f.name for f in dataclasses.fields(data_models.FunctionConfig)}


def function_config_from_dict(
        raw: Dict[str, Any],
        base_dir: str = '.') -> data_models.FunctionConfig:
    """Builds a `FunctionConfig` from a parsed YAML mapping.

    Unrecognized keys are forwarded to the cloud provider through `extra`.
    A relative `src` is resolved against `base_dir`.
    """
    if not isinstance(raw, dict):
        raise ValueError('Function configuration must be a mapping.')
    if not raw.get('name'):
        raise ValueError('Function configuration must set a "name".')

    kwargs: Dict[str, Any] = {}
    extra = dict(raw.get('extra') or {})
    for key, value in raw.items():
        if key in ('instance', 'extra'):
            continue
        key = _ALIASES.get(key, key)
        if key in _FIELDS:
            kwargs[key] = value
        else:
            extra[key] = value

    schedule = kwargs.get('schedule')
    if schedule is not None:
        if not isinstance(schedule, dict):
            raise ValueError('"schedule" must be a mapping with a "rate".')
        kwargs['schedule'] = data_models.Schedule(
            rate=schedule.get('rate'),
            enabled=schedule.get('enabled'),
            input=schedule.get('input'))

    src = kwargs.get('src')
    if src:
        kwargs['src'] = os.path.normpath(
            os.path.join(base_dir, os.path.expanduser(src)))

    return data_models.FunctionConfig(extra=extra, **kwargs)


def load_function_config(path: str) -> Tuple[data_models.FunctionConfig, str]:
    """Loads a function configuration file.

    Returns:
        The configuration, and the key its state is stored under. The key is
        the `instance` entry of the file, defaulting to the function name.
    """
    with open(path, 'r', encoding='utf-8') as f:
        raw = yaml.safe_load(f)
    config = function_config_from_dict(raw,
                                       os.path.dirname(os.path.abspath(path)))
    return config, str(raw.get('instance') or config.name)
