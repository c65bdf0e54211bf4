# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
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

"""
Exceptions raised while planning, building or provisioning an environment.
"""
from typing import List, Optional


class ProvisionError(Exception):
    """
    Base class for every provisioning failure.

    :param message: Human readable description.
    :param step: Name of the step that failed, if any.
    """
    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.step = step
        # Filled in by the pipeline driver when the error aborts a run
        self.report = None

    def __str__(self) -> str:
        message = super().__str__()
        if self.step:
            return f"{self.step}: {message}"
        return message


class ParameterError(ProvisionError):
    """A build argument or configuration value is missing or invalid."""


class ResolutionError(ProvisionError):
    """A base image, package or tool could not be located."""


class IdentityConflictError(ProvisionError):
    """The requested UID or GID is already assigned to another account."""


class OrderingError(ProvisionError):
    """A step would run outside the identity or state it depends on."""


class StepFailedError(ProvisionError):
    """
    An external command exited with a non-zero status.

    :param command: The command that was executed.
    :param exit_code: Its exit status.
    :param output: The last lines of its combined output.
    """
    def __init__(self,
                 message: str,
                 command: List[str],
                 exit_code: int,
                 output: str = "",
                 step: Optional[str] = None):
        super().__init__(message, step=step)
        self.command = command
        self.exit_code = exit_code
        self.output = output
