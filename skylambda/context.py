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
"""Explicit context passed to every reconciler operation."""
import dataclasses
import os
from typing import TYPE_CHECKING, Callable, Dict, Optional

from skylambda import data_models
from skylambda import packaging
from skylambda import state as state_lib

if TYPE_CHECKING:
    from skylambda.backends import abstract_backend


@dataclasses.dataclass(frozen=True)
class Credentials:
    """Cloud credentials used to build provider clients."""
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'Credentials':
        return cls(
            access_key_id=os.environ.get('AWS_ACCESS_KEY_ID'),
            secret_access_key=os.environ.get('AWS_SECRET_ACCESS_KEY'),
            session_token=os.environ.get('AWS_SESSION_TOKEN'),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.access_key_id and self.secret_access_key)

    def to_boto3_kwargs(self) -> Dict[str, str]:
        kwargs = {
            'aws_access_key_id': self.access_key_id,
            'aws_secret_access_key': self.secret_access_key,
        }
        if self.session_token:
            kwargs['aws_session_token'] = self.session_token
        return kwargs


@dataclasses.dataclass
class DeployContext:
    """Everything a reconciler operation needs besides its inputs.

    Attributes:
        credentials: Credentials for the cloud provider.
        account_id: The account trusted by the meta identity.
        backend: The gateways to the cloud provider.
        state_store: Storage for the persisted state.
        state_key: Key of this resource's record in `state_store`.
        packager: Collaborator that builds deployable archives.
        status_callback: Receives human readable progress messages.
    """
    credentials: Credentials
    account_id: Optional[str]
    backend: 'abstract_backend.AbstractServerlessBackend'
    state_store: state_lib.StateStore
    state_key: str
    packager: packaging.Packager = dataclasses.field(
        default_factory=packaging.Packager)
    status_callback: Optional[Callable[[str], None]] = None

    def update_status(self, message: str) -> None:
        if self.status_callback:
            self.status_callback(message)

    def load_state(self) -> data_models.FunctionState:
        return self.state_store.load(self.state_key)

    def commit_state(self, state: data_models.FunctionState) -> None:
        self.state_store.save(self.state_key, state)

    def clear_state(self) -> None:
        self.state_store.clear(self.state_key)
