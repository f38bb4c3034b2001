"""Shared fixtures: in-memory gateways that record every remote call."""
from typing import Any, List, Optional, Tuple

import pytest

from skylambda import context as context_lib
from skylambda import data_models
from skylambda import packaging
from skylambda import state as state_lib

ACCOUNT_ID = '123456789012'


def function_arn(name: str, region: str = 'us-east-1') -> str:
    return f'arn:aws:lambda:{region}:{ACCOUNT_ID}:function:{name}'


class FakeFunctions:

    def __init__(self, calls: List[Tuple]):
        self.calls = calls
        self.existing: Optional[data_models.RemoteFunction] = None
        self.created_config: Optional[data_models.FunctionConfig] = None
        self.updated_config: Optional[data_models.FunctionConfig] = None
        self.archives: List[str] = []
        self.delete_error: Optional[Exception] = None
        self.create_error: Optional[Exception] = None

    def get(self, name):
        self.calls.append(('functions.get', name))
        return self.existing

    def create(self, config, role_arn, archive):
        self.calls.append(('functions.create', config.name, role_arn))
        if self.create_error:
            raise self.create_error
        self.created_config = config
        self.archives.append(archive)
        return data_models.RemoteFunction(arn=function_arn(config.name,
                                                           config.region),
                                          hash='sha-created',
                                          version='$LATEST')

    def update_code(self, arn, archive):
        self.calls.append(('functions.update_code', arn))
        self.archives.append(archive)
        return 'sha-updated'

    def update_config(self, arn, config, role_arn):
        self.calls.append(('functions.update_config', arn, role_arn))
        self.updated_config = config

    def delete(self, name):
        self.calls.append(('functions.delete', name))
        if self.delete_error:
            raise self.delete_error


class FakeIdentities:

    def __init__(self, calls: List[Tuple]):
        self.calls = calls
        self.meta_error: Optional[Exception] = None
        self.released: List[data_models.IdentityRef] = []

    def create_or_update_execution_identity(self, config):
        self.calls.append(('identities.execution', config.name))
        if config.role_name:
            return data_models.IdentityRef(
                f'arn:aws:iam::{ACCOUNT_ID}:role/{config.role_name}',
                owned=False)
        return data_models.IdentityRef(
            f'arn:aws:iam::{ACCOUNT_ID}:role/{config.name}-lambda-role')

    def create_or_update_meta_identity(self, config, account_id):
        self.calls.append(('identities.meta', config.name, account_id))
        if self.meta_error:
            raise self.meta_error
        return data_models.IdentityRef(
            f'arn:aws:iam::{ACCOUNT_ID}:role/{config.name}-meta-role')

    def release_all(self, refs):
        self.calls.append(('identities.release_all', tuple(refs)))
        self.released.extend(refs)


class FakeTriggers:

    def __init__(self, calls: List[Tuple]):
        self.calls = calls
        self.grant_error: Optional[Exception] = None
        self.put_target_error: Optional[Exception] = None
        self.target_inputs: List[Any] = []

    def put_rule(self, name, expression, description):
        self.calls.append(('triggers.put_rule', name, expression))
        return f'arn:aws:events:us-east-1:{ACCOUNT_ID}:rule/{name}'

    def delete_rule(self, name):
        self.calls.append(('triggers.delete_rule', name))

    def grant_invoke(self, function_name, rule_arn):
        self.calls.append(('triggers.grant_invoke', function_name, rule_arn))
        if self.grant_error:
            raise self.grant_error

    def put_target(self, rule_name, function_arn, target_id, input=None):
        self.calls.append(
            ('triggers.put_target', rule_name, function_arn, target_id))
        if self.put_target_error:
            raise self.put_target_error
        self.target_inputs.append(input)


class FakeMonitoring:

    def __init__(self, calls: List[Tuple]):
        self.calls = calls
        self.result = {'rangeStart': 'a', 'rangeEnd': 'b', 'metrics': []}

    def get_metrics(self, region, meta_role_arn, function_name, range_start,
                    range_end):
        self.calls.append(('monitoring.get_metrics', region, meta_role_arn,
                           function_name, range_start, range_end))
        return self.result


class FakeBackend:

    def __init__(self):
        self.calls: List[Tuple] = []
        self.functions = FakeFunctions(self.calls)
        self.identities = FakeIdentities(self.calls)
        self.triggers = FakeTriggers(self.calls)
        self.monitoring = FakeMonitoring(self.calls)

    def get_account_id(self):
        return ACCOUNT_ID

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def state_store():
    return state_lib.MemoryStateStore()


@pytest.fixture
def statuses():
    return []


@pytest.fixture
def context(backend, state_store, statuses):
    return context_lib.DeployContext(
        credentials=context_lib.Credentials(access_key_id='AKIDEXAMPLE',
                                            secret_access_key='secret'),
        account_id=ACCOUNT_ID,
        backend=backend,
        state_store=state_store,
        state_key='my-app',
        packager=packaging.Packager(),
        status_callback=statuses.append)


@pytest.fixture
def source_dir(tmp_path):
    src = tmp_path / 'src'
    src.mkdir()
    (src / 'app.py').write_text('def main(event, context):\n'
                                '    return event\n')
    return str(src)
