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
Execution of external commands with log redirection and lifecycle management.
"""
import os
import subprocess
import sys
from collections import deque
from dataclasses import dataclass
from typing import Dict, List, Optional

import psutil

from ..errors import ResolutionError, StepFailedError
from ..ISOLATION.privileges import demote
from ..MODELS.build_args import UserIdentity

OUTPUT_TAIL_LINES = 40


@dataclass
class CommandResult:
    """Outcome of a finished command."""

    command: List[str]
    exit_code: int
    output: str


class ProcessRunner:
    """
    Runs commands for one named unit of work (a build, a step, the idle process).
    """
    def __init__(self, name: str, log_file: Optional[str] = None):
        """
        Initializes the process runner.

        Args:
            name (str): Identifier used to prefix progress messages.
            log_file (Optional[str]): Path where command output is appended.
        """
        self.name = name
        self.log_file = log_file
        self.process = None
        self.log_handle = None

    def _open_log(self):
        if not self.log_file:
            return None
        log_dir = os.path.dirname(self.log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        return open(self.log_file, 'a')

    def _require_working_dir(self, working_dir: Optional[str], step: Optional[str] = None):
        # Popen raises the same FileNotFoundError for a missing cwd as for a missing executable
        if working_dir and not os.path.isdir(working_dir):
            raise ResolutionError(f"working directory not found: {working_dir}", step=step)

    def _build_env(self, env: Optional[Dict[str, str]], identity: Optional[UserIdentity]) -> Dict[str, str]:
        run_env = os.environ.copy()
        if identity is not None:
            run_env.update(identity.env)
        if env:
            run_env.update(env)
        return run_env

    def run(self,
            command: List[str],
            env: Optional[Dict[str, str]] = None,
            working_dir: Optional[str] = None,
            identity: Optional[UserIdentity] = None,
            step: Optional[str] = None) -> CommandResult:
        """
        Runs a command to completion. Output goes to the log file (or stdout)
        and the last lines are kept for error reports.

        Args:
            command (List[str]): Command and arguments to execute.
            env (Optional[Dict[str, str]]): Extra environment variables.
            working_dir (Optional[str]): Directory to run in.
            identity (Optional[UserIdentity]): Run as this user instead of the caller.
            step (Optional[str]): Step name attached to raised errors.

        Returns:
            CommandResult: The exit status and captured output tail.

        Raises:
            ResolutionError: If the executable or the working directory does not exist.
            StepFailedError: If the command exits with a non-zero status.
        """
        print(f"[{self.name}] $ {' '.join(command)}")
        self._require_working_dir(working_dir, step)
        tail = deque(maxlen=OUTPUT_TAIL_LINES)
        log_handle = self._open_log()
        try:
            try:
                process = subprocess.Popen(
                    command,
                    env=self._build_env(env, identity),
                    cwd=working_dir,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    # Arguments are passed as a list, never through a shell
                    shell=False,
                    preexec_fn=demote(identity),
                )
            except FileNotFoundError as e:
                raise ResolutionError(f"command not found: {command[0]}", step=step) from e

            for line in process.stdout:
                tail.append(line.rstrip("\n"))
                if log_handle:
                    log_handle.write(line)
                else:
                    sys.stdout.write(line)
            exit_code = process.wait()
        finally:
            if log_handle:
                log_handle.close()

        output = "\n".join(tail)
        if exit_code != 0:
            raise StepFailedError(
                f"'{' '.join(command)}' exited with status {exit_code}",
                command=command, exit_code=exit_code, output=output, step=step)
        return CommandResult(command=command, exit_code=exit_code, output=output)

    def start(self,
              command: List[str],
              env: Optional[Dict[str, str]] = None,
              working_dir: Optional[str] = None,
              identity: Optional[UserIdentity] = None):
        """
        Starts a long-lived process and returns immediately.

        Args:
            command (List[str]): Command and arguments to execute.
            env (Optional[Dict[str, str]]): Extra environment variables.
            working_dir (Optional[str]): Directory to start the process in.
            identity (Optional[UserIdentity]): Run as this user instead of the caller.
        """
        self._require_working_dir(working_dir)
        stdout = sys.stdout
        stderr = sys.stderr
        self.log_handle = self._open_log()
        if self.log_handle:
            stdout = self.log_handle
            stderr = self.log_handle

        print(f"[{self.name}] Starting command: {' '.join(command)}")

        try:
            self.process = subprocess.Popen(
                command,
                env=self._build_env(env, identity),
                cwd=working_dir,
                stdout=stdout,
                stderr=stderr,
                text=True,
                shell=False,
                preexec_fn=demote(identity),
            )
        except Exception as e:
            print(f"[{self.name}] Failed to start: {e}")
            if self.log_handle:
                self.log_handle.close()
                self.log_handle = None
            raise

    def stop(self, timeout: int = 10):
        """
        Stops the process by sending SIGTERM, followed by SIGKILL if it doesn't stop.

        Args:
            timeout (int): Seconds to wait for termination before killing.
        """
        if self.process:
            print(f"[{self.name}] Stopping process...")
            self.process.terminate()
            try:
                self.process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                print(f"[{self.name}] Process did not terminate, killing...")
                self.process.kill()
                self.process.wait()

        if self.log_handle:
            self.log_handle.close()
            self.log_handle = None

    def is_running(self) -> bool:
        """
        Checks if the process is currently running.

        Returns:
            bool: True if running, False otherwise.
        """
        return self.process is not None and self.process.poll() is None

    def get_exit_code(self) -> Optional[int]:
        """
        Gets the exit code of the process.

        Returns:
            Optional[int]: Exit code if process finished, None otherwise.
        """
        if self.process:
            return self.process.poll()
        return None

    def cpu_percent(self, interval: float = 0.5) -> float:
        """
        Measures the CPU usage of the running process over an interval.

        Returns:
            float: Percentage of one CPU; 0.0 for an idle process.
        """
        if not self.is_running():
            return 0.0
        return psutil.Process(self.process.pid).cpu_percent(interval=interval)

    def process_status(self) -> Optional[str]:
        """
        psutil status of the process ('sleeping' for an idle one), None when stopped.
        """
        if not self.is_running():
            return None
        return psutil.Process(self.process.pid).status()
