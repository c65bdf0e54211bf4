import pytest
from devbox.errors import StepFailedError
from devbox.MANAGERS.image_verifier import ImageVerifier
from devbox.MODELS.build_args import BuildArgs
from devbox.MODELS.provision_config import ProvisionConfig


class FakeManager:
    """A container that behaves like a correctly built development image."""
    def __init__(self, answers=None, processes=None, running=True, fail_wait=False):
        self.answers = {
            ("id", "-u"): "1000",
            ("id", "-g"): "1000",
            ("id", "-un"): "vscode",
            ("pwd",): "/home/vscode/workspace",
        }
        self.answers.update(answers or {})
        self.processes = processes if processes is not None else [["1", "sleep infinity"]]
        self.running = running
        self.fail_wait = fail_wait
        self.removed = []

    def run_detached(self, image, name=None):
        return "container-1"

    def wait_until_running(self, container, timeout=30, poll=0.5):
        if self.fail_wait:
            raise StepFailedError("inspect failed", command=["docker"], exit_code=1)

    def exec(self, container, command):
        if command[0] == "sh":
            return self.answers.get("owner", "vscode")
        return self.answers[tuple(command)]

    def top(self, container):
        return self.processes

    def is_running(self, container):
        return self.running

    def remove(self, container):
        self.removed.append(container)


def verify(manager, uid=1000, gid=1000):
    verifier = ImageVerifier(manager, ProvisionConfig(), sleep=lambda s: None)
    return verifier.verify("devbox:dev", BuildArgs(uid=uid, gid=gid), settle=0)


def test_correct_image_passes():
    manager = FakeManager()
    report = verify(manager)
    assert report.ok
    assert [c.name for c in report.checks] == [
        "user-ids", "working-dir", "tool-owner:cargo-edit", "idle-process", "stays-running",
    ]
    assert manager.removed == ["container-1"]


def test_wrong_uid_fails():
    report = verify(FakeManager(), uid=1001)
    assert not report.ok
    assert [c.name for c in report.failed()] == ["user-ids"]


def test_tool_owned_by_root_fails():
    report = verify(FakeManager(answers={"owner": "root"}))
    failed = report.failed()
    assert [c.name for c in failed] == ["tool-owner:cargo-edit"]
    assert failed[0].detail == "cargo-add owned by root"


def test_extra_processes_fail():
    manager = FakeManager(processes=[["1", "sleep infinity"], ["7", "Xvfb :99"]])
    assert [c.name for c in verify(manager).failed()] == ["idle-process"]


def test_exited_container_fails():
    assert [c.name for c in verify(FakeManager(running=False)).failed()] == ["stays-running"]


def test_check_errors_become_failures():
    class Broken(FakeManager):
        def exec(self, container, command):
            raise StepFailedError("exec failed", command=command, exit_code=126)

    report = verify(Broken())
    assert {c.name for c in report.failed()} >= {"user-ids", "working-dir", "tool-owner:cargo-edit"}


def test_container_removed_when_start_fails():
    manager = FakeManager(fail_wait=True)
    with pytest.raises(StepFailedError):
        verify(manager)
    assert manager.removed == ["container-1"]
