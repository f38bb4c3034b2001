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
"""Amazon Web Services (AWS) backend for serverless functions.

Functions run on AWS Lambda, schedules are CloudWatch Events (EventBridge)
rules, and identities are IAM roles.
"""
import contextlib
import datetime
import json
import time
from typing import Any, Dict, Iterator, List, Optional, Union

import boto3
from botocore import config as botocore_config
from botocore import exceptions as botocore_exceptions

from skylambda import context as context_lib
from skylambda import data_models
from skylambda import exceptions
from skylambda import sky_logging
from skylambda.backends import abstract_backend

logger = sky_logging.init_logger(__name__)

_BOTO_CONFIG = botocore_config.Config(retries={
    'mode': 'standard',
    'max_attempts': 5
})

_POLICY_BASIC_EXECUTION = (
    'arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole')
_POLICY_VPC_ACCESS = (
    'arn:aws:iam::aws:policy/service-role/AWSLambdaVPCAccessExecutionRole')
_POLICY_CLOUDWATCH_READ_ONLY = 'arn:aws:iam::aws:policy/CloudWatchReadOnlyAccess'

# New roles are not immediately assumable by Lambda.
_IAM_PROPAGATION_SECONDS = 10.0

_NOT_FOUND_CODES = {'ResourceNotFoundException', 'NoSuchEntity'}


def _error_code(e: botocore_exceptions.ClientError) -> str:
    return e.response.get('Error', {}).get('Code', '')


@contextlib.contextmanager
def _remote_call(action: str) -> Iterator[None]:
    """Translates botocore failures into `RemoteCallError`."""
    try:
        yield
    except botocore_exceptions.ClientError as e:
        raise exceptions.RemoteCallError(f'Failed to {action}: {e}',
                                         code=_error_code(e)) from e
    except botocore_exceptions.BotoCoreError as e:
        raise exceptions.RemoteCallError(f'Failed to {action}: {e}') from e


def _trust_policy(principal: Dict[str, str]) -> str:
    return json.dumps({
        'Version': '2012-10-17',
        'Statement': [{
            'Effect': 'Allow',
            'Principal': principal,
            'Action': 'sts:AssumeRole',
        }],
    })


def _read_archive(archive: str) -> bytes:
    with open(archive, 'rb') as f:
        return f.read()


class AWSFunctionGateway(abstract_backend.FunctionGateway):
    """Lambda function lifecycle."""

    def __init__(self, lambda_client):
        self.client = lambda_client

    def _function_params(self, config: data_models.FunctionConfig,
                         role_arn: str, *, detach_vpc: bool) -> Dict[str, Any]:
        params = {
            'Description': config.description,
            'Handler': config.handler,
            'Role': role_arn,
            'Runtime': config.runtime,
            'MemorySize': config.memory,
            'Timeout': config.timeout,
            'Environment': {
                'Variables': dict(config.env)
            },
            'Layers': list(config.layers),
        }
        if config.has_vpc:
            params['VpcConfig'] = {
                'SecurityGroupIds': list(config.security_group_ids),
                'SubnetIds': list(config.subnet_ids),
            }
        elif detach_vpc:
            params['VpcConfig'] = {'SecurityGroupIds': [], 'SubnetIds': []}
        params.update(config.extra)
        return params

    def get(self, name: str) -> Optional[data_models.RemoteFunction]:
        try:
            response = self.client.get_function(FunctionName=name)
        except botocore_exceptions.ClientError as e:
            if _error_code(e) == 'ResourceNotFoundException':
                return None
            raise exceptions.RemoteCallError(
                f'Failed to get function {name!r}: {e}',
                code=_error_code(e)) from e
        except botocore_exceptions.BotoCoreError as e:
            raise exceptions.RemoteCallError(
                f'Failed to get function {name!r}: {e}') from e
        configuration = response['Configuration']
        return data_models.RemoteFunction(arn=configuration['FunctionArn'],
                                          hash=configuration.get('CodeSha256'),
                                          version=configuration.get('Version'))

    def create(self, config: data_models.FunctionConfig, role_arn: str,
               archive: str) -> data_models.RemoteFunction:
        params = self._function_params(config, role_arn, detach_vpc=False)
        params['FunctionName'] = config.name
        params['Code'] = {'ZipFile': _read_archive(archive)}
        with _remote_call(f'create function {config.name!r}'):
            response = self.client.create_function(**params)
            self.client.get_waiter('function_active_v2').wait(
                FunctionName=config.name)
        return data_models.RemoteFunction(arn=response['FunctionArn'],
                                          hash=response.get('CodeSha256'),
                                          version=response.get('Version'))

    def update_code(self, arn: str, archive: str) -> Optional[str]:
        with _remote_call(f'update code of function {arn!r}'):
            response = self.client.update_function_code(
                FunctionName=arn, ZipFile=_read_archive(archive))
            # A configuration update is rejected while the code update is
            # still in progress.
            self.client.get_waiter('function_updated_v2').wait(
                FunctionName=arn)
        return response.get('CodeSha256')

    def update_config(self, arn: str, config: data_models.FunctionConfig,
                      role_arn: str) -> None:
        params = self._function_params(config, role_arn, detach_vpc=True)
        params['FunctionName'] = arn
        with _remote_call(f'update configuration of function {arn!r}'):
            self.client.update_function_configuration(**params)
            self.client.get_waiter('function_updated_v2').wait(
                FunctionName=arn)

    def delete(self, name: str) -> None:
        try:
            self.client.delete_function(FunctionName=name)
        except botocore_exceptions.ClientError as e:
            if _error_code(e) != 'ResourceNotFoundException':
                raise exceptions.RemoteCallError(
                    f'Failed to delete function {name!r}: {e}',
                    code=_error_code(e)) from e
            logger.info(f'Function {name!r} not found, skipping.')
        except botocore_exceptions.BotoCoreError as e:
            raise exceptions.RemoteCallError(
                f'Failed to delete function {name!r}: {e}') from e


class AWSIdentityGateway(abstract_backend.IdentityGateway):
    """IAM roles for execution and monitoring."""

    def __init__(self,
                 iam_client,
                 propagation_seconds: float = _IAM_PROPAGATION_SECONDS):
        self.client = iam_client
        self.propagation_seconds = propagation_seconds

    def _create_or_update_role(self, role_name: str, trust_policy: str,
                               policy_arns: List[str],
                               description: str) -> str:
        created = False
        try:
            role = self.client.get_role(RoleName=role_name)['Role']
            with _remote_call(f'update role {role_name!r}'):
                self.client.update_assume_role_policy(
                    RoleName=role_name, PolicyDocument=trust_policy)
        except botocore_exceptions.ClientError as e:
            if _error_code(e) != 'NoSuchEntity':
                raise exceptions.RemoteCallError(
                    f'Failed to get role {role_name!r}: {e}',
                    code=_error_code(e)) from e
            with _remote_call(f'create role {role_name!r}'):
                role = self.client.create_role(
                    RoleName=role_name,
                    AssumeRolePolicyDocument=trust_policy,
                    Description=description)['Role']
            logger.info(f'Created IAM role: {role_name}')
            created = True
        except botocore_exceptions.BotoCoreError as e:
            raise exceptions.RemoteCallError(
                f'Failed to get role {role_name!r}: {e}') from e

        with _remote_call(f'attach policies to role {role_name!r}'):
            for policy_arn in policy_arns:
                # Attaching an attached policy is a no-op.
                self.client.attach_role_policy(RoleName=role_name,
                                               PolicyArn=policy_arn)
        if created and self.propagation_seconds > 0:
            time.sleep(self.propagation_seconds)
        return role['Arn']

    def create_or_update_execution_identity(
            self, config: data_models.FunctionConfig) -> data_models.IdentityRef:
        if config.role_name:
            with _remote_call(f'get role {config.role_name!r}'):
                role = self.client.get_role(RoleName=config.role_name)['Role']
            return data_models.IdentityRef(role['Arn'], owned=False)

        policy_arns = [_POLICY_BASIC_EXECUTION]
        if config.has_vpc:
            policy_arns.append(_POLICY_VPC_ACCESS)
        arn = self._create_or_update_role(
            f'{config.name}-lambda-role',
            _trust_policy({'Service': 'lambda.amazonaws.com'}),
            policy_arns,
            description=f'Execution role of function {config.name}')
        return data_models.IdentityRef(arn)

    def create_or_update_meta_identity(
            self, config: data_models.FunctionConfig,
            account_id: str) -> data_models.IdentityRef:
        arn = self._create_or_update_role(
            f'{config.name}-meta-role',
            _trust_policy({'AWS': f'arn:aws:iam::{account_id}:root'}),
            [_POLICY_CLOUDWATCH_READ_ONLY],
            description=f'Monitoring role of function {config.name}')
        return data_models.IdentityRef(arn)

    def _delete_role(self, role_name: str) -> None:
        response = self.client.list_attached_role_policies(RoleName=role_name)
        for policy in response['AttachedPolicies']:
            self.client.detach_role_policy(RoleName=role_name,
                                           PolicyArn=policy['PolicyArn'])
        response = self.client.list_role_policies(RoleName=role_name)
        for policy_name in response['PolicyNames']:
            self.client.delete_role_policy(RoleName=role_name,
                                           PolicyName=policy_name)
        self.client.delete_role(RoleName=role_name)

    def release_all(self, refs: List[data_models.IdentityRef]) -> None:
        for ref in refs:
            if not ref.owned:
                continue
            role_name = ref.arn.rsplit('/', 1)[-1]
            try:
                self._delete_role(role_name)
                logger.info(f'Deleted IAM role: {role_name}')
            except botocore_exceptions.ClientError as e:
                if _error_code(e) != 'NoSuchEntity':
                    raise exceptions.RemoteCallError(
                        f'Failed to delete role {role_name!r}: {e}',
                        code=_error_code(e)) from e
                logger.info(f'IAM role {role_name!r} not found, skipping.')
            except botocore_exceptions.BotoCoreError as e:
                raise exceptions.RemoteCallError(
                    f'Failed to delete role {role_name!r}: {e}') from e


class AWSTriggerGateway(abstract_backend.TriggerGateway):
    """CloudWatch Events schedule rules targeting a Lambda function."""

    def __init__(self, events_client, lambda_client):
        self.events = events_client
        self.lambda_ = lambda_client

    def put_rule(self, name: str, expression: str, description: str) -> str:
        with _remote_call(f'put rule {name!r}'):
            response = self.events.put_rule(Name=name,
                                            ScheduleExpression=expression,
                                            State='ENABLED',
                                            Description=description)
        return response['RuleArn']

    def delete_rule(self, name: str) -> None:
        try:
            # Rules with targets cannot be deleted.
            targets = self.events.list_targets_by_rule(Rule=name)['Targets']
            if targets:
                self.events.remove_targets(
                    Rule=name, Ids=[target['Id'] for target in targets])
            self.events.delete_rule(Name=name)
        except botocore_exceptions.ClientError as e:
            if _error_code(e) != 'ResourceNotFoundException':
                raise exceptions.RemoteCallError(
                    f'Failed to delete rule {name!r}: {e}',
                    code=_error_code(e)) from e
            logger.info(f'Rule {name!r} not found, skipping.')
        except botocore_exceptions.BotoCoreError as e:
            raise exceptions.RemoteCallError(
                f'Failed to delete rule {name!r}: {e}') from e

    def grant_invoke(self, function_name: str, rule_arn: str) -> None:
        try:
            self.lambda_.add_permission(
                StatementId=f'{function_name}-lambda-permission',
                FunctionName=function_name,
                Action='lambda:InvokeFunction',
                Principal='events.amazonaws.com',
                SourceArn=rule_arn)
        except botocore_exceptions.ClientError as e:
            code = _error_code(e)
            if code == 'ResourceConflictException':
                raise exceptions.AlreadyGrantedError(
                    f'Invoke permission for {function_name!r} already exists.',
                    code=code) from e
            raise exceptions.RemoteCallError(
                f'Failed to grant invoke permission on {function_name!r}: {e}',
                code=code) from e
        except botocore_exceptions.BotoCoreError as e:
            raise exceptions.RemoteCallError(
                f'Failed to grant invoke permission on {function_name!r}: {e}'
            ) from e

    def put_target(self,
                   rule_name: str,
                   function_arn: str,
                   target_id: str,
                   input: Optional[Any] = None) -> None:
        target = {'Arn': function_arn, 'Id': target_id}
        if input is not None:
            target['Input'] = json.dumps(input)
        with _remote_call(f'put target on rule {rule_name!r}'):
            response = self.events.put_targets(Rule=rule_name, Targets=[target])
        if response.get('FailedEntryCount'):
            failed = response.get('FailedEntries', [])
            raise exceptions.RemoteCallError(
                f'Failed to put target {target_id!r} on rule {rule_name!r}: '
                f'{failed}')


def _parse_time(value: Union[str, datetime.datetime]) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        parsed = value
    else:
        parsed = datetime.datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def _metric_period(start: datetime.datetime, end: datetime.datetime) -> int:
    span = (end - start).total_seconds()
    if span <= 3600:
        return 60
    if span <= 24 * 3600:
        return 300
    if span <= 7 * 24 * 3600:
        return 3600
    return 24 * 3600


# (query id, metric name, statistic)
_METRIC_QUERIES = [
    ('invocations', 'Invocations', 'Sum'),
    ('errors', 'Errors', 'Sum'),
    ('throttles', 'Throttles', 'Sum'),
    ('duration_avg', 'Duration', 'Average'),
    ('duration_p95', 'Duration', 'p95'),
]


class AWSMonitoringGateway(abstract_backend.MonitoringGateway):
    """CloudWatch metrics, read through the meta role."""

    def __init__(self, session: boto3.session.Session):
        self.session = session

    def _assumed_cloudwatch_client(self, region: str, meta_role_arn: str):
        with _remote_call(f'assume role {meta_role_arn!r}'):
            credentials = self.session.client('sts').assume_role(
                RoleArn=meta_role_arn,
                RoleSessionName='skylambda-metrics')['Credentials']
        return boto3.client('cloudwatch',
                            region_name=region,
                            aws_access_key_id=credentials['AccessKeyId'],
                            aws_secret_access_key=credentials['SecretAccessKey'],
                            aws_session_token=credentials['SessionToken'],
                            config=_BOTO_CONFIG)

    def get_metrics(self, region: str, meta_role_arn: str, function_name: str,
                    range_start: str, range_end: str) -> Dict[str, Any]:
        start = _parse_time(range_start)
        end = _parse_time(range_end)
        period = _metric_period(start, end)
        cloudwatch = self._assumed_cloudwatch_client(region, meta_role_arn)

        queries = [{
            'Id': query_id,
            'MetricStat': {
                'Metric': {
                    'Namespace': 'AWS/Lambda',
                    'MetricName': metric_name,
                    'Dimensions': [{
                        'Name': 'FunctionName',
                        'Value': function_name
                    }],
                },
                'Period': period,
                'Stat': stat,
            },
            'ReturnData': True,
        } for query_id, metric_name, stat in _METRIC_QUERIES]

        series: Dict[str, Dict[str, List]] = {
            query_id: {
                'timestamps': [],
                'values': []
            } for query_id, _, _ in _METRIC_QUERIES
        }
        next_token = None
        with _remote_call(f'get metrics of function {function_name!r}'):
            while True:
                kwargs = {
                    'MetricDataQueries': queries,
                    'StartTime': start,
                    'EndTime': end,
                    'ScanBy': 'TimestampAscending',
                }
                if next_token:
                    kwargs['NextToken'] = next_token
                response = cloudwatch.get_metric_data(**kwargs)
                for result in response['MetricDataResults']:
                    data = series[result['Id']]
                    data['timestamps'].extend(
                        ts.isoformat() for ts in result['Timestamps'])
                    data['values'].extend(result['Values'])
                next_token = response.get('NextToken')
                if not next_token:
                    break

        metrics = []
        for query_id, metric_name, stat in _METRIC_QUERIES:
            metrics.append({
                'id': query_id,
                'metric': metric_name,
                'stat': stat,
                **series[query_id],
            })
        return {
            'rangeStart': start.isoformat(),
            'rangeEnd': end.isoformat(),
            'period': period,
            'metrics': metrics,
        }


class AWSBackend(abstract_backend.AbstractServerlessBackend):
    """AWS backend implementation for serverless functions."""

    def __init__(self,
                 credentials: Optional[context_lib.Credentials] = None,
                 *,
                 region: str):
        kwargs = {}
        if credentials is not None and not credentials.is_empty:
            kwargs = credentials.to_boto3_kwargs()
        self.region = region
        self.session = boto3.session.Session(region_name=region, **kwargs)
        lambda_client = self.session.client('lambda', config=_BOTO_CONFIG)
        self.functions = AWSFunctionGateway(lambda_client)
        self.identities = AWSIdentityGateway(
            self.session.client('iam', config=_BOTO_CONFIG))
        self.triggers = AWSTriggerGateway(
            self.session.client('events', config=_BOTO_CONFIG), lambda_client)
        self.monitoring = AWSMonitoringGateway(self.session)

    def get_account_id(self) -> str:
        with _remote_call('get caller identity'):
            return self.session.client('sts').get_caller_identity()['Account']
