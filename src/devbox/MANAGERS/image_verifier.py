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
Checks a built development image: user ids, working directory, tool ownership,
and an idle default process that keeps the container alive.
"""
import shlex
import time
from typing import Callable, Dict, List

from pydantic import BaseModel

from ..errors import ProvisionError
from ..MODELS.build_args import BuildArgs
from ..MODELS.provision_config import ProvisionConfig
from .container_manager import ContainerManager

# Package name -> an executable the package installs
TOOL_EXECUTABLES: Dict[str, str] = {
    "cargo-edit": "cargo-add",
}


class CheckResult(BaseModel):
    name: str
    passed: bool
    detail: str = ""


class VerificationReport(BaseModel):
    image: str
    checks: List[CheckResult] = []

    @property
    def ok(self) -> bool:
        return bool(self.checks) and all(c.passed for c in self.checks)

    def failed(self) -> List[CheckResult]:
        return [c for c in self.checks if not c.passed]


class ImageVerifier:
    """
    Starts a container from an image and checks it against the configuration.
    """
    def __init__(self, manager: ContainerManager, config: ProvisionConfig,
                 sleep: Callable[[float], None] = time.sleep):
        """
        :param manager: Container manager used to run and inspect the container.
        :param config: The configuration the image was built from.
        :param sleep: Used to wait before the liveness check.
        """
        self.manager = manager
        self.config = config
        self.sleep = sleep

    def verify(self, image: str, build_args: BuildArgs, settle: float = 5.0) -> VerificationReport:
        """
        Runs every check. The container is removed afterwards in all cases.

        :param image: Image tag to verify.
        :param build_args: The UID/GID the image was built with.
        :param settle: Seconds the container must stay up for the liveness check.
        :return: A report with one entry per check.
        """
        report = VerificationReport(image=image)
        container = self.manager.run_detached(image)
        try:
            self.manager.wait_until_running(container)
            report.checks.append(self._check_ids(container, build_args))
            report.checks.append(self._check_working_dir(container))
            for tool in self.config.tools:
                report.checks.append(self._check_tool_owner(container, tool))
            report.checks.append(self._check_single_idle_process(container))
            report.checks.append(self._check_stays_running(container, settle))
        finally:
            self.manager.remove(container)
        return report

    def _guard(self, name: str, check: Callable[[], CheckResult]) -> CheckResult:
        try:
            return check()
        except ProvisionError as e:
            return CheckResult(name=name, passed=False, detail=str(e))

    def _check_ids(self, container: str, build_args: BuildArgs) -> CheckResult:
        def check():
            uid = self.manager.exec(container, ["id", "-u"])
            gid = self.manager.exec(container, ["id", "-g"])
            name = self.manager.exec(container, ["id", "-un"])
            passed = (uid == str(build_args.uid) and gid == str(build_args.gid)
                      and name == self.config.username)
            return CheckResult(name="user-ids", passed=passed,
                               detail=f"{name} uid={uid} gid={gid}")
        return self._guard("user-ids", check)

    def _check_working_dir(self, container: str) -> CheckResult:
        def check():
            cwd = self.manager.exec(container, ["pwd"])
            return CheckResult(name="working-dir", passed=cwd == self.config.working_dir, detail=cwd)
        return self._guard("working-dir", check)

    def _check_tool_owner(self, container: str, tool: str) -> CheckResult:
        name = f"tool-owner:{tool}"

        def check():
            executable = TOOL_EXECUTABLES.get(tool, tool)
            script = f'stat -c %U "$(command -v {shlex.quote(executable)})"'
            owner = self.manager.exec(container, ["sh", "-c", script])
            return CheckResult(name=name, passed=owner == self.config.username,
                               detail=f"{executable} owned by {owner}")
        return self._guard(name, check)

    def _check_single_idle_process(self, container: str) -> CheckResult:
        def check():
            # Snapshot taken while no exec is in flight
            rows = self.manager.top(container)
            commands = [row[1] for row in rows]
            expected = " ".join(self.config.default_command)
            passed = len(rows) == 1 and commands[0] == expected
            return CheckResult(name="idle-process", passed=passed, detail="; ".join(commands))
        return self._guard("idle-process", check)

    def _check_stays_running(self, container: str, settle: float) -> CheckResult:
        def check():
            self.sleep(settle)
            running = self.manager.is_running(container)
            return CheckResult(name="stays-running", passed=running,
                               detail=f"running after {settle:g}s" if running else "exited")
        return self._guard("stays-running", check)
