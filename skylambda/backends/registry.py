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
"""Registry for serverless backends."""
import importlib
from typing import Dict, Optional

from skylambda import context as context_lib
from skylambda.backends import abstract_backend
from skylambda.utils import ux_utils

# Backend modules are imported lazily so that cloud SDKs are only loaded for
# the cloud in use.
_REGISTRY: Dict[str, str] = {
    'aws': 'skylambda.backends.aws_backend.AWSBackend',
}


def get_backend(
    cloud: str,
    credentials: Optional[context_lib.Credentials] = None,
    *,
    region: str,
) -> abstract_backend.AbstractServerlessBackend:
    """Get a serverless backend for a given cloud."""
    backend_class_path = _REGISTRY.get(cloud.lower())
    if backend_class_path is None:
        with ux_utils.print_exception_no_traceback():
            raise ValueError(
                f'Serverless functions are not supported for {cloud}. '
                f'Supported clouds: {", ".join(sorted(_REGISTRY))}.')

    module_path, class_name = backend_class_path.rsplit('.', 1)
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls(credentials, region=region)
