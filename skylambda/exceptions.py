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
"""Custom exceptions for SkyLambda."""
from typing import Optional


class ServerlessError(Exception):
    """Base class for serverless-related errors."""
    pass


class ValidationError(ServerlessError):
    """Raised when user inputs are rejected before any remote call."""
    pass


class InvalidScheduleExpression(ValidationError):
    """Raised when a schedule is neither a cron nor a rate expression."""
    pass


class InvalidScheduleFlag(ValidationError):
    """Raised when `schedule.enabled` is not a boolean."""
    pass


class InvalidScheduleInput(ValidationError):
    """Raised when `schedule.input` is not a structured object."""
    pass


class PayloadTooLarge(ValidationError):
    """Raised when the function source exceeds the deployable size."""
    pass


class IdentityChangeRejected(ServerlessError):
    """Raised when a deploy would rename or move an existing function.

    Changing the name or the region destroys the remote function, so it is
    never done implicitly. The user has to remove the function first.
    """
    pass


class MissingCredentials(ServerlessError):
    """Raised when no cloud credentials are available."""
    pass


class MissingRange(ServerlessError):
    """Raised when a metrics query is missing one of its time bounds."""
    pass


class FunctionNotDeployed(ServerlessError):
    """Raised when an operation needs a deployed function but none is
    recorded under the state key."""
    pass


class RemoteCallError(ServerlessError):
    """Raised when a call against the cloud provider fails.

    Attributes:
        code: The provider error code (e.g. 'ResourceNotFoundException'),
            if one was returned.
    """

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class AlreadyGrantedError(RemoteCallError):
    """Raised when an invoke permission with the same statement exists."""
    pass
