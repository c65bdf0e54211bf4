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
Lifecycle of containers started from a built development image, through the docker CLI.
"""
import json
import subprocess
from typing import List, Optional

from tenacity import retry_if_result, RetryError, Retrying, stop_after_delay, wait_fixed

from ..errors import ProvisionError, ResolutionError, StepFailedError


class ContainerManager:
    """
    Starts, inspects and removes containers.
    """
    def __init__(self, docker: str = "docker"):
        """
        :param docker: The docker CLI executable.
        """
        self.docker = docker

    def _docker(self, *args: str) -> str:
        command = [self.docker] + list(args)
        try:
            result = subprocess.run(command, capture_output=True, text=True, shell=False)
        except FileNotFoundError as e:
            raise ResolutionError(f"command not found: {self.docker}") from e
        if result.returncode != 0:
            raise StepFailedError(
                f"'{' '.join(command)}' exited with status {result.returncode}: {result.stderr.strip()}",
                command=command, exit_code=result.returncode, output=result.stderr)
        return result.stdout

    def run_detached(self, image: str, name: Optional[str] = None) -> str:
        """
        Starts a container with the image's default command.

        :param image: Image tag.
        :param name: Optional container name.
        :return: The container id.
        """
        args = ["run", "--detach"]
        if name:
            args += ["--name", name]
        args.append(image)
        container_id = self._docker(*args).strip()
        print(f"[container] Started {container_id[:12]} from {image}")
        return container_id

    def exec(self, container: str, command: List[str]) -> str:
        """Runs a command in the container with the image's user and working directory."""
        return self._docker("exec", container, *command).strip()

    def state(self, container: str) -> dict:
        output = self._docker("inspect", "--format", "{{json .State}}", container)
        return json.loads(output)

    def is_running(self, container: str) -> bool:
        return bool(self.state(container).get("Running"))

    def top(self, container: str) -> List[List[str]]:
        """
        Process list of the container.

        :return: One row per process: PID and full command line.
        """
        output = self._docker("top", container, "-o", "pid,args")
        rows = []
        for line in output.splitlines()[1:]:
            parts = line.split(None, 1)
            if parts:
                rows.append(parts if len(parts) == 2 else parts + [""])
        return rows

    def wait_until_running(self, container: str, timeout: float = 30, poll: float = 0.5) -> None:
        """
        Polls the container state until it reports running.

        :raises ProvisionError: If it is not running within the timeout.
        """
        try:
            for attempt in Retrying(
                stop=stop_after_delay(timeout),
                wait=wait_fixed(poll),
                retry=retry_if_result(lambda running: not running),
            ):
                with attempt:
                    running = self.is_running(container)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(running)
        except RetryError as e:
            raise ProvisionError(f"container {container[:12]} is not running after {timeout}s") from e

    def remove(self, container: str) -> None:
        """Stops and removes the container."""
        self._docker("rm", "--force", container)
        print(f"[container] Removed {container[:12]}")
