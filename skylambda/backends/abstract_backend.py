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
"""Abstract interfaces for serverless backend implementations.

A backend bundles four gateways. Every gateway method talks to the cloud
provider and raises `exceptions.RemoteCallError` on failure.
"""
from typing import Any, Dict, List, Optional, Protocol

from skylambda import data_models


class FunctionGateway(Protocol):
    """Manages the function resource itself."""

    def get(self, name: str) -> Optional[data_models.RemoteFunction]:
        """Returns the deployed function, or None if it does not exist."""
        raise NotImplementedError

    def create(self, config: data_models.FunctionConfig, role_arn: str,
               archive: str) -> data_models.RemoteFunction:
        """Creates the function from the full desired configuration."""
        raise NotImplementedError

    def update_code(self, arn: str, archive: str) -> Optional[str]:
        """Replaces the function's code. Returns the new code hash."""
        raise NotImplementedError

    def update_config(self, arn: str, config: data_models.FunctionConfig,
                      role_arn: str) -> None:
        """Re-submits the full desired configuration of the function."""
        raise NotImplementedError

    def delete(self, name: str) -> None:
        """Deletes the function. Deleting a missing function is a no-op."""
        raise NotImplementedError


class IdentityGateway(Protocol):
    """Manages the principals used by the function."""

    def create_or_update_execution_identity(
            self, config: data_models.FunctionConfig) -> data_models.IdentityRef:
        """Ensures the principal the function runs as exists.

        If `config.role_name` is set, the existing role is returned as not
        owned. Otherwise a default role is created or updated.
        """
        raise NotImplementedError

    def create_or_update_meta_identity(
            self, config: data_models.FunctionConfig,
            account_id: str) -> data_models.IdentityRef:
        """Ensures the principal used for monitoring access exists."""
        raise NotImplementedError

    def release_all(self, refs: List[data_models.IdentityRef]) -> None:
        """Deletes every owned principal in `refs`."""
        raise NotImplementedError


class TriggerGateway(Protocol):
    """Manages the time-based trigger of a function."""

    def put_rule(self, name: str, expression: str, description: str) -> str:
        """Creates or replaces a schedule rule. Returns the rule's ARN."""
        raise NotImplementedError

    def delete_rule(self, name: str) -> None:
        """Deletes a schedule rule. Deleting a missing rule is a no-op."""
        raise NotImplementedError

    def grant_invoke(self, function_name: str, rule_arn: str) -> None:
        """Allows the rule to invoke the function.

        Raises:
            AlreadyGrantedError: The permission already exists.
        """
        raise NotImplementedError

    def put_target(self,
                   rule_name: str,
                   function_arn: str,
                   target_id: str,
                   input: Optional[Any] = None) -> None:
        """Binds the rule to the function, with an optional custom event."""
        raise NotImplementedError


class MonitoringGateway(Protocol):
    """Reads metrics of a deployed function."""

    def get_metrics(self, region: str, meta_role_arn: str, function_name: str,
                    range_start: str, range_end: str) -> Dict[str, Any]:
        raise NotImplementedError


class AbstractServerlessBackend(Protocol):
    """Abstract interface for a serverless backend implementation.

    Each cloud that supports serverless functions must provide a class that
    implements this protocol.
    """
    functions: FunctionGateway
    identities: IdentityGateway
    triggers: TriggerGateway
    monitoring: MonitoringGateway

    def get_account_id(self) -> str:
        """Returns the account that owns the deployed resources."""
        raise NotImplementedError
