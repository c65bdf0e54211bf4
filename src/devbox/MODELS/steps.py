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
Provisioning steps.

Each step is an immutable record of one operation in the image build. A step
knows how it is written in a Dockerfile; executing it directly on a host is
the job of ``RUNNERS.host_executor``.
"""
from typing import ClassVar, List, Optional

from pydantic import BaseModel, ConfigDict

from .build_args import GID_ARG, UID_ARG
from .dockerfile_ast import Instruction


class Step(BaseModel):
    """
    Base class for provisioning steps.

    ``run_as`` is the username the step executes as, or None for root.
    """
    model_config = ConfigDict(frozen=True)

    name: ClassVar[str] = "step"
    section: ClassVar[str] = ""

    run_as: Optional[str] = None
    comment: Optional[str] = None

    def instructions(self) -> List[Instruction]:
        raise NotImplementedError

    def describe(self) -> str:
        return "\n".join(i.render() for i in self.instructions())


class SelectBaseImage(Step):
    name: ClassVar[str] = "select-base-image"
    section: ClassVar[str] = "base"

    image: str

    def instructions(self) -> List[Instruction]:
        return [Instruction.shell("FROM", self.image)]


class RefreshPackageIndex(Step):
    name: ClassVar[str] = "refresh-package-index"
    section: ClassVar[str] = "packages"

    package_manager: str

    def command(self) -> List[str]:
        return [self.package_manager, "update"]

    def instructions(self) -> List[Instruction]:
        return [Instruction.shell("RUN", *self.command())]


class InstallSystemPackages(Step):
    name: ClassVar[str] = "install-system-packages"
    section: ClassVar[str] = "packages"

    package_manager: str
    packages: List[str]

    def command(self) -> List[str]:
        return [self.package_manager, "install", "-y"] + list(self.packages)

    def instructions(self) -> List[Instruction]:
        return [Instruction.shell("RUN", *self.command())]


class DeclareBuildArgs(Step):
    name: ClassVar[str] = "declare-build-args"
    section: ClassVar[str] = "user"

    names: List[str] = [UID_ARG, GID_ARG]

    def instructions(self) -> List[Instruction]:
        # No default value: an omitted argument must stay an error
        return [Instruction.shell("ARG", name) for name in self.names]


class CreateUser(Step):
    """
    Creates the group and the user with the requested ids and a home directory.
    """
    name: ClassVar[str] = "create-user"
    section: ClassVar[str] = "user"

    username: str

    def commands(self, uid: str, gid: str) -> List[List[str]]:
        return [
            ["groupadd", "--gid", gid, self.username],
            ["useradd", self.username, "--uid", uid, "--gid", gid, "--create-home"],
        ]

    def instructions(self) -> List[Instruction]:
        commands = self.commands(f"${UID_ARG}", f"${GID_ARG}")
        return [Instruction.shell("RUN", " && ".join(" ".join(c) for c in commands))]


class SwitchUser(Step):
    name: ClassVar[str] = "switch-user"
    section: ClassVar[str] = "user"

    username: str

    def instructions(self) -> List[Instruction]:
        return [Instruction.shell("USER", self.username)]


class SetWorkdir(Step):
    name: ClassVar[str] = "set-workdir"
    section: ClassVar[str] = "user"

    path: str

    def instructions(self) -> List[Instruction]:
        return [Instruction.shell("WORKDIR", self.path)]


class InstallTool(Step):
    name: ClassVar[str] = "install-tool"
    section: ClassVar[str] = "tools"

    installer: List[str]
    tool: str

    def command(self) -> List[str]:
        return list(self.installer) + [self.tool]

    def instructions(self) -> List[Instruction]:
        return [Instruction.shell("RUN", *self.command())]


class DefaultCommand(Step):
    name: ClassVar[str] = "default-command"
    section: ClassVar[str] = "command"

    command: List[str]

    def instructions(self) -> List[Instruction]:
        return [Instruction.exec("CMD", self.command)]
