import os

import pytest
from devbox.BUILDERS.dockerfile_linter import DockerfileLinter
from devbox.BUILDERS.stages import standard_plan
from devbox.errors import ParameterError
from devbox.MODELS.build_args import BuildArgs
from devbox.MODELS.provision_config import ProvisionConfig
from devbox.PARSERS.dockerfile_parser import DockerfileParser
from devbox.RUNNERS.process_runner import ProcessRunner


@pytest.mark.skipif(os.name == 'nt', reason="POSIX commands")
def test_command_injection_attempt(tmp_path):
    """
    Arguments are passed without a shell, so ';' is a literal argument.
    """
    injected_file = tmp_path / "injected.txt"
    runner = ProcessRunner(name="test_injection", log_file=str(tmp_path / "injection.log"))
    result = runner.run(["echo", "hello", ";", "touch", str(injected_file)])

    assert not injected_file.exists(), "Command injection successful! Security vulnerability found."
    assert result.output == f"hello ; touch {injected_file}"


@pytest.mark.parametrize("package", ["xvfb; rm -rf /", "$(whoami)", "pkg && curl evil", "-y"])
def test_package_names_cannot_inject_shell(package):
    with pytest.raises(ParameterError):
        ProvisionConfig.create(system_packages=[package])


@pytest.mark.parametrize("username", ["root", "vscode; id", "../etc", "Admin"])
def test_username_is_restricted(username):
    with pytest.raises(ParameterError):
        ProvisionConfig.create(username=username)


@pytest.mark.parametrize("uid", ["1000; id", "-1", "1e3", "", True])
def test_build_args_must_be_plain_integers(uid):
    with pytest.raises(ParameterError):
        BuildArgs.create(uid, "1000")


def test_workspace_cannot_escape_home():
    with pytest.raises(ParameterError):
        ProvisionConfig.create(workspace="../../etc")


def test_rendered_image_never_installs_tools_as_root():
    from devbox.BUILDERS.dockerfile_renderer import DockerfileRenderer

    content = DockerfileRenderer().render(standard_plan(ProvisionConfig()))
    report = DockerfileLinter().lint(DockerfileParser().parse_from_string(content))
    assert report.ok
    assert "runs-as-root" not in report.rules()
    assert "tool-installed-as-root" not in report.rules()
