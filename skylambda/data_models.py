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
"""Core data structures for serverless functions."""
import dataclasses
from typing import Any, Dict, List, Optional

DEFAULT_REGION = 'us-east-1'
DEFAULT_HANDLER = 'handler.handler'


@dataclasses.dataclass(frozen=True)
class Schedule:
    """Defines a time-based trigger for a serverless function.

    The values are kept as the user wrote them. `schedule.validate` checks
    their types and syntax; nothing is coerced here.

    Attributes:
        rate: A `cron(...)` or `rate(N unit)` expression, evaluated by the
            cloud provider. E.g., 'rate(5 minutes)'.
        enabled: Whether the trigger should exist. Unset means enabled.
        input: An optional JSON object passed to the function on every
            scheduled invocation instead of the default event.
    """
    rate: Any
    enabled: Any = None
    input: Any = None


@dataclasses.dataclass
class FunctionConfig:
    """A description of the desired serverless function.

    Attributes:
        name: The unique name of the function. Immutable once deployed.
        region: The cloud region. Immutable once deployed.
        src: Path to a directory or a .zip archive with the source code. If
            unset, a bundled hello-world handler is deployed.
        handler: The entrypoint, in 'module.function_name' format.
        schedule: An optional time-based trigger.
        description: Human readable description of the function.
        runtime: The code runtime environment, e.g., 'python3.11'.
        memory: Memory allocated to the function in megabytes.
        timeout: The function's execution timeout in seconds.
        env: Environment variables injected into the function's runtime.
        layers: ARNs of layers attached to the function.
        role_name: Name of an existing execution role. If unset, a default
            role is created and owned by SkyLambda.
        security_group_ids: Security groups for the network attachment.
        subnet_ids: Subnets for the network attachment.
        extra: Provider-specific settings forwarded untouched to the
            create and update calls (e.g. {'TracingConfig': {...}}).
    """
    name: str
    region: str = DEFAULT_REGION
    src: Optional[str] = None
    handler: str = DEFAULT_HANDLER
    schedule: Optional[Schedule] = None

    # Runtime configuration
    description: Optional[str] = None
    runtime: str = 'python3.11'
    memory: int = 1028
    timeout: int = 10
    env: Dict[str, str] = dataclasses.field(default_factory=dict)
    layers: List[str] = dataclasses.field(default_factory=list)
    role_name: Optional[str] = None

    # Network attachment
    security_group_ids: List[str] = dataclasses.field(default_factory=list)
    subnet_ids: List[str] = dataclasses.field(default_factory=list)

    extra: Dict[str, Any] = dataclasses.field(default_factory=dict)

    def __post_init__(self):
        if self.description is None:
            self.description = f'SkyLambda function "{self.name}"'

    @property
    def has_vpc(self) -> bool:
        return bool(self.security_group_ids and self.subnet_ids)


@dataclasses.dataclass(frozen=True)
class IdentityRef:
    """A reference to an access-control principal.

    Attributes:
        arn: The principal's ARN.
        owned: Whether SkyLambda created the principal and must release it.
    """
    arn: str
    owned: bool = True


@dataclasses.dataclass(frozen=True)
class RemoteFunction:
    """The function as currently known by the cloud provider."""
    arn: str
    hash: Optional[str] = None
    version: Optional[str] = None


@dataclasses.dataclass
class FunctionState:
    """The last successfully applied view of a deployed function.

    Owned by the reconciler. An empty state (`name` unset) means that
    nothing has been deployed.
    """
    name: Optional[str] = None
    arn: Optional[str] = None
    region: Optional[str] = None
    hash: Optional[str] = None
    cloud_watch_rule: Optional[str] = None
    target_id: Optional[str] = None
    default_role_arn: Optional[str] = None
    meta_role_arn: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.name

    def identity_refs(self) -> List[IdentityRef]:
        refs = []
        if self.default_role_arn:
            refs.append(IdentityRef(self.default_role_arn))
        if self.meta_role_arn:
            refs.append(IdentityRef(self.meta_role_arn))
        return refs

    def to_dict(self) -> Dict[str, Any]:
        return {
            k: v for k, v in dataclasses.asdict(self).items() if v is not None
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'FunctionState':
        if not data:
            return cls()
        known = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclasses.dataclass(frozen=True)
class DeployResult:
    """Outputs of a successful deploy."""
    name: str
    arn: str
    security_group_ids: List[str]
    subnet_ids: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)
