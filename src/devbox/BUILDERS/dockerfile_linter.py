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
Ordering audit for Dockerfiles.

Installing a per-user tool while the build still runs as root leaves files
the development user cannot write to. Nothing fails at build time, so the
mistake has to be caught by looking at the instruction order.
"""
import re
from enum import Enum
from typing import List, Optional, Sequence, Set

from pydantic import BaseModel

from ..errors import ParameterError
from ..MODELS.dockerfile_ast import Instruction
from ..REGISTRY.image_reference import ImageReference

DEFAULT_TOOL_INSTALL_PATTERNS = [
    r"\bcargo\s+install\b",
    r"\brustup\s+(component|target|toolchain)\s+add\b",
    r"\bpipx\s+install\b",
    r"\bpip3?\s+install\b.*\s--user\b",
    r"\bnpm\s+(install|i)\b.*\s(-g|--global)\b",
    r"\bgo\s+install\b",
    r"\bgem\s+install\b.*\s--user-install\b",
]

_ARG_REFERENCE = re.compile(r"\$\{?([A-Za-z_][A-Za-z0-9_]*)")


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class LintFinding(BaseModel):
    """
    One problem found in a Dockerfile.
    """
    rule: str
    severity: Severity
    message: str
    line: Optional[int] = None

    def __str__(self) -> str:
        where = f"line {self.line}: " if self.line else ""
        return f"{self.severity.value}: {where}{self.message} [{self.rule}]"


class LintReport(BaseModel):
    findings: List[LintFinding] = []

    @property
    def errors(self) -> List[LintFinding]:
        return [f for f in self.findings if f.severity == Severity.ERROR]

    @property
    def ok(self) -> bool:
        return not self.errors

    def rules(self) -> Set[str]:
        return {f.rule for f in self.findings}


def _is_root(user: str) -> bool:
    name = user.split(":", 1)[0].strip()
    return name in ("root", "0")


class DockerfileLinter:
    """
    Checks instruction order: pinned base, ARG before use, user switch
    before per-user tool installs, and a defined default command.
    """
    def __init__(self, tool_install_patterns: Optional[Sequence[str]] = None):
        """
        :param tool_install_patterns: Regexes matching RUN commands that must not run as root.
        """
        patterns = tool_install_patterns if tool_install_patterns is not None else DEFAULT_TOOL_INSTALL_PATTERNS
        self.tool_install_patterns = [re.compile(p) for p in patterns]

    def lint(self, instructions: List[Instruction]) -> LintReport:
        """
        Audits parsed instructions.

        :param instructions: Instructions in file order.
        :return: Every finding; the report is ``ok`` when none is an error.
        """
        findings: List[LintFinding] = []

        def add(rule: str, severity: Severity, message: str, inst: Optional[Instruction] = None):
            findings.append(LintFinding(rule=rule, severity=severity, message=message,
                                        line=inst.line if inst else None))

        declared_anywhere = {
            arg.split("=", 1)[0]
            for inst in instructions if inst.instruction == "ARG"
            for arg in inst.arguments
        }
        declared: Set[str] = set()
        user = "root"
        saw_from = False
        saw_user = False
        saw_command = False

        for inst in instructions:
            name = inst.instruction

            if name == "FROM":
                saw_from = True
                # A new stage starts as root again, and ARGs declared earlier
                # (including those before the first FROM) are out of scope
                user = "root"
                declared = set()
                self._check_base_image(inst, add)
                continue

            if name == "ARG":
                declared.update(arg.split("=", 1)[0] for arg in inst.arguments)
                continue

            if not saw_from:
                add("instruction-before-from", Severity.ERROR,
                    f"{name} appears before any FROM", inst)

            for ref in _ARG_REFERENCE.findall(inst.text):
                if ref in declared_anywhere and ref not in declared:
                    add("arg-before-declare", Severity.ERROR,
                        f"build argument {ref} is used before its ARG declaration", inst)

            if name == "USER":
                saw_user = True
                user = inst.text.strip()
            elif name == "WORKDIR":
                if not inst.text.strip().startswith(("/", "$")):
                    add("relative-workdir", Severity.WARNING,
                        f"WORKDIR {inst.text} is relative", inst)
            elif name == "RUN":
                if _is_root(user) and self._installs_tool(inst.text):
                    add("tool-installed-as-root", Severity.ERROR,
                        f"'{inst.text}' runs as root; switch USER first so the tool "
                        "is owned by the development user", inst)
            elif name in ("CMD", "ENTRYPOINT"):
                saw_command = True

        if not saw_from:
            add("no-from", Severity.ERROR, "no FROM instruction")
        if not saw_user:
            add("no-user-switch", Severity.ERROR, "the image never leaves root")
        elif _is_root(user):
            add("runs-as-root", Severity.ERROR, "the final USER is root")
        if not saw_command:
            add("no-default-command", Severity.ERROR, "no CMD or ENTRYPOINT is defined")

        return LintReport(findings=findings)

    def _installs_tool(self, command: str) -> bool:
        return any(p.search(command) for p in self.tool_install_patterns)

    def _check_base_image(self, inst: Instruction, add) -> None:
        # Skip flags such as --platform=...; a trailing "AS <stage>" is ignored
        words = [w for w in inst.text.split() if not w.startswith("--")]
        if not words:
            add("no-base-image", Severity.ERROR, "FROM has no image", inst)
            return
        image = words[0]
        if "$" in image:
            add("unresolved-base-image", Severity.WARNING,
                f"base image {image} depends on a build argument", inst)
            return
        if image == "scratch":
            return
        try:
            ImageReference.parse(image).require_pinned()
        except ParameterError as e:
            add("unpinned-base-image", Severity.ERROR, str(e), inst)
