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
Staged construction of a provisioning plan.

Steps that need root are only available on a RootStage, steps that must run
as the development user only on a UserStage. The single way from one to the
other is ``RootStage.switch_user``, so a tool install can never be placed
ahead of the identity switch.
"""
from typing import List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict

from ..errors import OrderingError
from ..MODELS.provision_config import ProvisionConfig
from ..MODELS.steps import (
    CreateUser,
    DeclareBuildArgs,
    DefaultCommand,
    InstallSystemPackages,
    InstallTool,
    RefreshPackageIndex,
    SelectBaseImage,
    SetWorkdir,
    Step,
    SwitchUser,
)

TOOL_COMMENT = "Must be installed under user"


class ProvisionPlan(BaseModel):
    """
    The finished, ordered list of steps for one image.
    """
    model_config = ConfigDict(frozen=True)

    config: ProvisionConfig
    steps: Tuple[Step, ...]

    @property
    def user(self) -> str:
        return self.config.username

    def step_names(self) -> List[str]:
        return [s.name for s in self.steps]

    def find(self, step_type: Type[Step]) -> List[Step]:
        return [s for s in self.steps if isinstance(s, step_type)]


class _Stage:
    """
    Common state of the builder stages: the config and the steps so far.
    """
    def __init__(self, config: ProvisionConfig, steps: Tuple[Step, ...] = ()):
        self.config = config
        self.steps = steps

    def _has(self, step_type: Type[Step]) -> bool:
        return any(isinstance(s, step_type) for s in self.steps)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({', '.join(s.name for s in self.steps)})"


class RootStage(_Stage):
    """
    Steps executed with root privileges, before the identity switch.
    """
    def _then(self, step: Step) -> "RootStage":
        return RootStage(self.config, self.steps + (step,))

    def refresh_package_index(self) -> "RootStage":
        return self._then(RefreshPackageIndex(package_manager=self.config.package_manager))

    def install_system_packages(self, packages: Optional[List[str]] = None) -> "RootStage":
        """
        :param packages: Package names; defaults to the configured list.
        :raises OrderingError: If the package index was not refreshed first.
        """
        if not self._has(RefreshPackageIndex):
            raise OrderingError("package index must be refreshed before installing packages",
                                step=InstallSystemPackages.name)
        return self._then(InstallSystemPackages(
            package_manager=self.config.package_manager,
            packages=list(packages if packages is not None else self.config.system_packages),
        ))

    def declare_build_args(self) -> "RootStage":
        return self._then(DeclareBuildArgs())

    def create_user(self) -> "RootStage":
        """
        :raises OrderingError: If the UID/GID arguments are not declared yet.
        """
        if not self._has(DeclareBuildArgs):
            raise OrderingError("build arguments must be declared before the user is created",
                                step=CreateUser.name)
        if self._has(CreateUser):
            raise OrderingError("user is already created", step=CreateUser.name)
        return self._then(CreateUser(username=self.config.username))

    def switch_user(self) -> "UserStage":
        """
        Leaves root for good; everything added afterwards runs as the user.

        :raises OrderingError: If the user does not exist yet.
        """
        if not self._has(CreateUser):
            raise OrderingError("cannot switch to a user that was not created",
                                step=SwitchUser.name)
        step = SwitchUser(username=self.config.username)
        return UserStage(self.config, self.steps + (step,))


class UserStage(_Stage):
    """
    Steps executed as the development user. There is no way back to root.
    """
    def _then(self, step: Step) -> "UserStage":
        step = step.model_copy(update={"run_as": self.config.username})
        return UserStage(self.config, self.steps + (step,))

    def workdir(self, path: Optional[str] = None) -> "UserStage":
        return self._then(SetWorkdir(path=path or self.config.working_dir))

    def install_tool(self, tool: str, comment: Optional[str] = TOOL_COMMENT) -> "UserStage":
        return self._then(InstallTool(
            installer=list(self.config.toolchain_installer),
            tool=tool,
            comment=comment,
        ))

    def default_command(self, command: Optional[List[str]] = None) -> ProvisionPlan:
        step = DefaultCommand(command=list(command or self.config.default_command))
        return ProvisionPlan(config=self.config, steps=self._then(step).steps)


def from_base_image(config: ProvisionConfig) -> RootStage:
    """
    Starts a plan from the configured (pinned) base image.
    """
    image = config.image.require_pinned()
    return RootStage(config, (SelectBaseImage(image=str(image)),))


def standard_plan(config: ProvisionConfig) -> ProvisionPlan:
    """
    The canonical sequence: packages, user, identity switch, workdir, tools, idle command.
    """
    stage = (
        from_base_image(config)
        .refresh_package_index()
        .install_system_packages()
        .declare_build_args()
        .create_user()
        .switch_user()
        .workdir()
    )
    for index, tool in enumerate(config.tools):
        stage = stage.install_tool(tool, comment=TOOL_COMMENT if index == 0 else None)
    return stage.default_command()
