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
"""Reconciles a deployed function with its desired configuration.

Persisted state is committed only after the remote calls it describes have
succeeded, so an interrupted or failed run can always be resumed by running
it again.
"""
from concurrent import futures
import dataclasses
import shutil
from typing import Any, Dict, Optional, Tuple

from skylambda import context as context_lib
from skylambda import data_models
from skylambda import exceptions
from skylambda import packaging
from skylambda import schedule as schedule_lib
from skylambda import sky_logging

logger = sky_logging.init_logger(__name__)

MAX_SOURCE_SIZE_BYTES = 100_000_000


def _check_credentials(context: context_lib.DeployContext) -> None:
    if context.credentials is None or context.credentials.is_empty:
        raise exceptions.MissingCredentials(
            'Credentials not found. Set AWS_ACCESS_KEY_ID and '
            'AWS_SECRET_ACCESS_KEY in the environment or in a .env file.')


def _check_identity(state: data_models.FunctionState,
                    desired: data_models.FunctionConfig) -> None:
    if state.name and state.name != desired.name:
        raise exceptions.IdentityChangeRejected(
            f'Changing the name from {state.name} to {desired.name} will '
            'delete the function. Please remove it manually, change the '
            'name, then re-deploy.')
    if state.region and state.region != desired.region:
        raise exceptions.IdentityChangeRejected(
            f'Changing the region from {state.region} to {desired.region} '
            'will delete the function. Please remove it manually, change '
            'the region, then re-deploy.')


def _provision_identities(
    context: context_lib.DeployContext, desired: data_models.FunctionConfig
) -> Tuple[data_models.IdentityRef, data_models.IdentityRef]:
    """Provisions the execution and meta identities in parallel."""
    identities = context.backend.identities
    with futures.ThreadPoolExecutor(max_workers=2) as executor:
        execution_future = executor.submit(
            identities.create_or_update_execution_identity, desired)
        meta_future = executor.submit(
            identities.create_or_update_meta_identity, desired,
            context.account_id)
        for future in futures.as_completed([execution_future, meta_future]):
            # Re-raises the first failure.
            future.result()
    return execution_future.result(), meta_future.result()


def _build_archive(context: context_lib.DeployContext,
                   desired: data_models.FunctionConfig) -> Tuple[str, str]:
    """Returns the deployable archive and the handler to register."""
    packager = context.packager
    files_path = packager.expand(desired.src)
    handler = desired.handler
    if not desired.src:
        shutil.copytree(packaging.DEFAULT_SRC_DIR,
                        files_path,
                        dirs_exist_ok=True)
        handler = data_models.DEFAULT_HANDLER
    handler = packager.inject_shim(files_path, handler)
    return packager.compress(files_path), handler


def _reconcile_schedule(context: context_lib.DeployContext,
                        desired: data_models.FunctionConfig,
                        state: data_models.FunctionState) -> None:
    """Creates, updates or deletes the schedule trigger of the function."""
    schedule = desired.schedule
    enabled = True if schedule.enabled is None else schedule.enabled
    triggers = context.backend.triggers

    if not enabled:
        # TODO: Also remove the invoke permission granted to the rule.
        if state.cloud_watch_rule:
            context.update_status(
                f'Deleting schedule rule {state.cloud_watch_rule!r}...')
            triggers.delete_rule(state.cloud_watch_rule)
            context.commit_state(
                dataclasses.replace(state, cloud_watch_rule=None,
                                    target_id=None))
        return

    rule_name = f'{desired.name}-rule'
    context.update_status(f'Putting schedule rule {rule_name!r}...')
    rule_arn = triggers.put_rule(
        rule_name, schedule.rate,
        f'Lambda-Cron schedule rule for {desired.name}')
    context.commit_state(dataclasses.replace(state,
                                             cloud_watch_rule=rule_name))

    try:
        triggers.grant_invoke(desired.name, rule_arn)
    except exceptions.AlreadyGrantedError:
        logger.info('CloudWatch Events permission already added to '
                    f'{desired.name!r}, continuing.')

    target_id = f'{desired.name}-target'
    triggers.put_target(rule_name, state.arn, target_id, schedule.input)
    context.commit_state(
        dataclasses.replace(state,
                            cloud_watch_rule=rule_name,
                            target_id=target_id))
    context.update_status(f'Schedule {schedule.rate} bound to '
                          f'{desired.name!r}.')


def deploy(context: context_lib.DeployContext,
           desired: data_models.FunctionConfig) -> data_models.DeployResult:
    """Deploys a function, creating or updating it as needed.

    Args:
        context: Credentials, gateways and state of the deployment.
        desired: The desired configuration of the function.

    Returns:
        The name, ARN and network attachment of the deployed function.

    Raises:
        MissingCredentials: No credentials are available.
        ValidationError: The schedule or the source size is invalid.
        IdentityChangeRejected: The name or region of a deployed function
            would change.
        RemoteCallError: A call against the cloud provider failed.
    """
    _check_credentials(context)
    schedule_lib.validate(desired.schedule)

    size = context.packager.size(desired.src)
    if size > MAX_SOURCE_SIZE_BYTES:
        raise exceptions.PayloadTooLarge(
            f'Your function source code is {size} bytes. It must be less '
            f'than {MAX_SOURCE_SIZE_BYTES} bytes. Try using layers to reduce '
            'your code size.')

    state = context.load_state()
    _check_identity(state, desired)

    logger.info(f'Starting deployment of function {desired.name!r} to the '
                f'{desired.region!r} region.')

    try:
        context.update_status('Setting up IAM roles...')
        execution_identity, meta_identity = _provision_identities(
            context, desired)

        context.update_status(
            f'Checking if function {desired.name!r} already exists...')
        prev_function = context.backend.functions.get(desired.name)

        context.update_status('Packaging source code...')
        archive, handler = _build_archive(context, desired)
        config = dataclasses.replace(desired, handler=handler)

        functions = context.backend.functions
        if prev_function is None:
            context.update_status(f'Creating function {desired.name!r} in '
                                  f'the {desired.region!r} region...')
            created = functions.create(config, execution_identity.arn, archive)
            arn, code_hash = created.arn, created.hash
            logger.info(f'Created function {desired.name!r}: {arn}')
        else:
            arn = prev_function.arn
            context.update_status(f'Updating function {desired.name!r}...')
            code_hash = functions.update_code(arn, archive)
            functions.update_config(arn, config, execution_identity.arn)
            logger.info(f'Updated function {desired.name!r}: {arn}')
    finally:
        context.packager.cleanup()

    if not execution_identity.owned and state.default_role_arn:
        # A user role took over. Release the default role it replaced.
        context.update_status('Removing the previous default IAM role...')
        context.backend.identities.release_all(
            [data_models.IdentityRef(state.default_role_arn)])

    state = dataclasses.replace(
        state,
        name=desired.name,
        arn=arn,
        region=desired.region,
        hash=code_hash,
        default_role_arn=(execution_identity.arn
                          if execution_identity.owned else None),
        meta_role_arn=meta_identity.arn)
    context.commit_state(state)

    if desired.schedule is not None:
        _reconcile_schedule(context, desired, state)

    return data_models.DeployResult(
        name=desired.name,
        arn=arn,
        security_group_ids=list(desired.security_group_ids),
        subnet_ids=list(desired.subnet_ids))


def remove(context: context_lib.DeployContext) -> Dict[str, Any]:
    """Removes the deployed function, its roles and its schedule rule.

    The persisted state is only cleared once every removal succeeded, so a
    failed removal can be retried.
    """
    _check_credentials(context)
    state = context.load_state()
    if state.is_empty:
        logger.info('No state found. Function appears removed already. '
                    'Aborting.')
        return {}

    backend = context.backend
    context.update_status('Removing IAM roles...')
    backend.identities.release_all(state.identity_refs())

    context.update_status(f'Removing function {state.name!r} from the '
                          f'{state.region!r} region...')
    backend.functions.delete(state.name)
    logger.info(f'Removed function {state.name!r} from the '
                f'{state.region!r} region.')

    if state.cloud_watch_rule:
        context.update_status(
            f'Removing schedule rule {state.cloud_watch_rule!r}...')
        backend.triggers.delete_rule(state.cloud_watch_rule)

    context.clear_state()
    return {}


def check_range(range_start: Optional[str], range_end: Optional[str]) -> None:
    if not range_start or not range_end:
        raise exceptions.MissingRange(
            'rangeStart and rangeEnd are required inputs.')


def metrics(context: context_lib.DeployContext, range_start: Optional[str],
            range_end: Optional[str]) -> Dict[str, Any]:
    """Returns the metrics of the deployed function over a time range."""
    check_range(range_start, range_end)
    state = context.load_state()
    if state.is_empty:
        raise exceptions.FunctionNotDeployed(
            f'No deployed function found under {context.state_key!r}. '
            'Deploy it first.')
    return context.backend.monitoring.get_metrics(state.region,
                                                  state.meta_role_arn,
                                                  state.name, range_start,
                                                  range_end)
