"""
Builders that turn a provisioning plan into a container image with `docker build`.
"""
import os
import re
from typing import List, Optional

from pydantic import BaseModel

from ..errors import IdentityConflictError, OrderingError, ResolutionError, StepFailedError
from ..MODELS.build_args import BuildArgs
from ..PARSERS.dockerfile_parser import DockerfileParser
from ..REGISTRY.registry_client import RegistryClient
from ..RUNNERS.process_runner import ProcessRunner
from .dockerfile_linter import DockerfileLinter
from .dockerfile_renderer import DockerfileRenderer
from .stages import ProvisionPlan

# docker/BuildKit output -> error class, first match wins
_FAILURE_PATTERNS = [
    (re.compile(r"useradd: UID \d+ is not unique|groupadd: GID '?\d+'? already exists"
                r"|useradd: user '\S+' already exists|groupadd: group '\S+' already exists"),
     IdentityConflictError, "create-user"),
    (re.compile(r"pull access denied|manifest unknown|not found: manifest|failed to resolve source metadata"),
     ResolutionError, "select-base-image"),
    (re.compile(r"Unable to locate package|has no installation candidate"),
     ResolutionError, "install-system-packages"),
    (re.compile(r"could not find `[^`]+` in registry|error: could not find"),
     ResolutionError, "install-tool"),
]


class BuildResult(BaseModel):
    """
    A successfully built image.
    """
    tag: str
    dockerfile: str
    log_file: str


def classify_build_failure(error: StepFailedError) -> Exception:
    """
    Maps a failed `docker build` onto the provisioning error taxonomy.

    :param error: The failure raised by the process runner.
    :return: A more specific error, or the original one.
    """
    for pattern, error_class, step in _FAILURE_PATTERNS:
        match = pattern.search(error.output)
        if match:
            return error_class(f"{match.group(0)} (docker build exited with {error.exit_code})", step=step)
    return error


class ImageBuilder:
    """
    Renders a plan to a Dockerfile and builds it into an image.
    """
    def __init__(self, base_dir: str = ".", docker: str = "docker",
                 registry: Optional[RegistryClient] = None):
        """
        Initializes the ImageBuilder.

        :param base_dir: Directory holding ``.devbox/`` build files and logs.
        :param docker: The docker CLI executable.
        :param registry: Client used for the optional base image check.
        """
        self.base_dir = base_dir
        self.docker = docker
        self.registry = registry or RegistryClient()
        self.renderer = DockerfileRenderer()
        self.parser = DockerfileParser()
        self.linter = DockerfileLinter()

    def dockerfile_path(self, tag: str) -> str:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", tag)
        return os.path.join(self.base_dir, ".devbox", "build", safe, "Dockerfile")

    def log_path(self, tag: str) -> str:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", tag)
        return os.path.join(self.base_dir, ".devbox", "logs", f"build-{safe}.log")

    def render(self, plan: ProvisionPlan) -> str:
        """
        Renders the plan and refuses plans whose Dockerfile breaks the ordering rules.

        :raises OrderingError: If the rendered Dockerfile has lint errors.
        """
        content = self.renderer.render(plan)
        report = self.linter.lint(self.parser.parse_from_string(content))
        if not report.ok:
            raise OrderingError("; ".join(str(f) for f in report.errors))
        return content

    def build_command(self, build_args: BuildArgs, tag: str, dockerfile: str,
                      no_cache: bool = False) -> List[str]:
        command = [self.docker, "build"]
        for name, value in build_args.as_docker_args().items():
            command += ["--build-arg", f"{name}={value}"]
        if no_cache:
            command.append("--no-cache")
        # The Dockerfile copies nothing in, so its own directory is the context
        command += ["-t", tag, "-f", dockerfile, os.path.dirname(dockerfile)]
        return command

    def build(self, plan: ProvisionPlan, build_args: BuildArgs, tag: str,
              no_cache: bool = False, check_base: bool = False) -> BuildResult:
        """
        Builds the image.

        Build arguments arrive already validated, so a missing UID/GID has
        failed before anything is written or executed.

        :param plan: The provisioning plan.
        :param build_args: UID and GID for the development user.
        :param tag: Image tag to assign.
        :param no_cache: Disable the layer cache.
        :param check_base: Confirm with the registry that the base image exists first.
        :return: The build result.
        :raises ProvisionError: On the first failure.
        """
        if not isinstance(build_args, BuildArgs):
            raise TypeError("build_args must be a validated BuildArgs")

        content = self.render(plan)

        if check_base:
            self.registry.require_image(plan.config.image)

        dockerfile = self.dockerfile_path(tag)
        os.makedirs(os.path.dirname(dockerfile), exist_ok=True)
        with open(dockerfile, "w") as f:
            f.write(content)

        print(f"[build] Building {tag} from {plan.config.base_image} "
              f"(UID={build_args.uid}, GID={build_args.gid})")
        runner = ProcessRunner("build", log_file=self.log_path(tag))
        try:
            runner.run(self.build_command(build_args, tag, dockerfile, no_cache=no_cache),
                       step="docker-build")
        except StepFailedError as e:
            classified = classify_build_failure(e)
            if classified is e:
                raise
            raise classified from e

        print(f"[build] Built {tag}")
        return BuildResult(tag=tag, dockerfile=dockerfile, log_file=self.log_path(tag))
