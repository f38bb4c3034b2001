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
"""User-facing APIs for SkyLambda."""
import os
from typing import Any, Callable, Dict, Optional

from skylambda import context as context_lib
from skylambda import data_models
from skylambda import reconciler
from skylambda import state as state_lib
from skylambda.backends import registry

__version__ = '0.1.0'

_ACCOUNT_ID_ENV_VAR = 'SKYLAMBDA_ACCOUNT_ID'


def _make_context(
    region: str,
    state_key: str,
    cloud: str,
    state_store: Optional[state_lib.StateStore],
    status_callback: Optional[Callable[[str], None]],
    resolve_account_id: bool = False,
) -> context_lib.DeployContext:
    credentials = context_lib.Credentials.from_env()
    backend = registry.get_backend(cloud, credentials, region=region)
    account_id = os.environ.get(_ACCOUNT_ID_ENV_VAR)
    if resolve_account_id and not account_id and not credentials.is_empty:
        account_id = backend.get_account_id()
    return context_lib.DeployContext(
        credentials=credentials,
        account_id=account_id,
        backend=backend,
        state_store=state_store or state_lib.FileStateStore(),
        state_key=state_key,
        status_callback=status_callback)


def deploy(
    func: data_models.FunctionConfig,
    *,
    cloud: str = 'aws',
    state_key: Optional[str] = None,
    state_store: Optional[state_lib.StateStore] = None,
    status_callback: Optional[Callable[[str], None]] = None,
) -> data_models.DeployResult:
    """Deploys a serverless function to the specified cloud.

    This high-level API automatically selects the appropriate backend based
    on the `cloud` parameter and delegates the reconciliation to it.

    Args:
        func: The FunctionConfig object to deploy.
        cloud: The cloud provider to deploy to.
        state_key: Key of the function's persisted state. Defaults to the
            function name.
        state_store: Where the state is persisted. Defaults to JSON files
            under ~/.skylambda/state.
        status_callback: Receives progress messages.

    Returns:
        The name, ARN and network attachment of the deployed function.
    """
    context = _make_context(func.region, state_key or func.name, cloud,
                            state_store, status_callback,
                            resolve_account_id=True)
    return reconciler.deploy(context, func)


def remove(
    state_key: str,
    *,
    cloud: str = 'aws',
    state_store: Optional[state_lib.StateStore] = None,
    status_callback: Optional[Callable[[str], None]] = None,
) -> Dict[str, Any]:
    """Removes a deployed serverless function and its trigger.

    Args:
        state_key: Key of the function's persisted state.
        cloud: The cloud provider the function is deployed to.
    """
    state_store = state_store or state_lib.FileStateStore()
    region = (state_store.load(state_key).region or
              data_models.DEFAULT_REGION)
    context = _make_context(region, state_key, cloud, state_store,
                            status_callback)
    return reconciler.remove(context)


def metrics(
    state_key: str,
    range_start: Optional[str],
    range_end: Optional[str],
    *,
    cloud: str = 'aws',
    state_store: Optional[state_lib.StateStore] = None,
) -> Dict[str, Any]:
    """Retrieves metrics of a deployed serverless function.

    Args:
        state_key: Key of the function's persisted state.
        range_start: ISO 8601 start of the time range.
        range_end: ISO 8601 end of the time range.
        cloud: The cloud provider the function is deployed to.
    """
    reconciler.check_range(range_start, range_end)
    state_store = state_store or state_lib.FileStateStore()
    region = (state_store.load(state_key).region or
              data_models.DEFAULT_REGION)
    context = _make_context(region, state_key, cloud, state_store, None)
    return reconciler.metrics(context, range_start, range_end)
