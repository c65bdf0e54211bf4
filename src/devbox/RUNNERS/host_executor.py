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
Applies a provisioning plan directly to the machine this process runs on,
for example inside an already running base container, without a Docker build.
"""
import os
import shutil
from typing import List, Optional

from ..errors import OrderingError, ResolutionError
from ..ISOLATION import privileges
from ..MODELS.build_args import BuildArgs, UserIdentity
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
from .pipeline import StepResult, StepStatus
from .process_runner import ProcessRunner


class HostExecutor:
    """
    Executes steps with local commands.

    Root steps run as the invoking user. After the switch-user step every
    command runs with the development user's ids, and the executor never
    returns to root.
    """
    def __init__(self, config: ProvisionConfig, build_args: BuildArgs, base_dir: str = "."):
        """
        :param config: The image configuration.
        :param build_args: Validated UID/GID.
        :param base_dir: Directory under which ``.devbox/logs`` is written.
        """
        self.config = config
        self.build_args = build_args
        self.identity = config.identity(build_args)
        self.base_dir = base_dir
        self.log_file = os.path.join(base_dir, ".devbox", "logs", f"provision-{config.username}.log")

        self.current_user: Optional[UserIdentity] = None
        self.working_dir: Optional[str] = None
        self.default_command: List[str] = []

    def _runner(self, step: Step) -> ProcessRunner:
        return ProcessRunner(step.name, log_file=self.log_file)

    def _run(self, step: Step, command: List[str]):
        return self._runner(step).run(
            command,
            working_dir=self.working_dir,
            identity=self.current_user,
            step=step.name,
        )

    def _require_root(self, step: Step) -> None:
        if self.current_user is not None:
            raise OrderingError(
                f"{step.name} needs root but the executor already runs as {self.current_user.username}",
                step=step.name)

    def _require_user(self, step: Step) -> None:
        if self.current_user is None:
            raise OrderingError(
                f"{step.name} must run as {self.identity.username}, not root; switch user first",
                step=step.name)

    def execute(self, step: Step) -> StepResult:
        """
        Executes one step.

        :raises ProvisionError: On any failure; nothing is retried.
        """
        if isinstance(step, SelectBaseImage):
            return self._select_base_image(step)
        if isinstance(step, (RefreshPackageIndex, InstallSystemPackages)):
            self._require_root(step)
            self._run(step, step.command())
            return StepResult(step=step, status=StepStatus.SUCCEEDED)
        if isinstance(step, DeclareBuildArgs):
            detail = ", ".join(f"{k}={v}" for k, v in self.build_args.as_docker_args().items())
            return StepResult(step=step, status=StepStatus.SUCCEEDED, detail=detail)
        if isinstance(step, CreateUser):
            return self._create_user(step)
        if isinstance(step, SwitchUser):
            return self._switch_user(step)
        if isinstance(step, SetWorkdir):
            return self._set_workdir(step)
        if isinstance(step, InstallTool):
            self._require_user(step)
            self._run(step, step.command())
            return StepResult(step=step, status=StepStatus.SUCCEEDED, detail=step.tool)
        if isinstance(step, DefaultCommand):
            self.default_command = list(step.command)
            return StepResult(step=step, status=StepStatus.SUCCEEDED, detail=" ".join(step.command))
        raise OrderingError(f"unsupported step {type(step).__name__}", step=step.name)

    def _select_base_image(self, step: SelectBaseImage) -> StepResult:
        # The host is the base; it has to provide both package managers
        missing = [
            tool for tool in (self.config.package_manager, self.config.toolchain_installer[0])
            if shutil.which(tool) is None
        ]
        if missing:
            raise ResolutionError(f"host does not provide {', '.join(missing)}", step=step.name)
        return StepResult(step=step, status=StepStatus.SUCCEEDED,
                          detail=f"host stands in for {step.image}")

    def _create_user(self, step: CreateUser) -> StepResult:
        self._require_root(step)
        status = privileges.check_account(self.identity)
        if status.complete:
            return StepResult(step=step, status=StepStatus.SKIPPED,
                              detail=f"{self.identity.username} already exists with the requested ids")

        group_cmd, user_cmd = step.commands(str(self.identity.uid), str(self.identity.gid))
        if not status.group_exists:
            self._run(step, group_cmd)
        self._run(step, user_cmd)
        return StepResult(step=step, status=StepStatus.SUCCEEDED,
                          detail=f"uid={self.identity.uid} gid={self.identity.gid}")

    def _switch_user(self, step: SwitchUser) -> StepResult:
        self._require_root(step)
        if step.username != self.identity.username:
            raise OrderingError(f"plan switches to {step.username}, but {self.identity.username} was created",
                                step=step.name)
        privileges.require_switchable(self.identity)
        self.current_user = self.identity
        return StepResult(step=step, status=StepStatus.SUCCEEDED, detail=step.username)

    def _set_workdir(self, step: SetWorkdir) -> StepResult:
        self._require_user(step)
        # Created as the user so that it is owned by the user
        self._run(step, ["mkdir", "-p", step.path])
        self.working_dir = step.path
        return StepResult(step=step, status=StepStatus.SUCCEEDED, detail=step.path)

    def start_default_process(self) -> ProcessRunner:
        """
        Launches the default command as the development user.

        :raises OrderingError: If the plan has not been executed up to the default command.
        """
        if not self.default_command or self.current_user is None:
            raise OrderingError("the plan must be provisioned before the default process starts",
                                step=DefaultCommand.name)
        runner = ProcessRunner("default-process", log_file=self.log_file)
        runner.start(self.default_command, working_dir=self.working_dir, identity=self.current_user)
        return runner
