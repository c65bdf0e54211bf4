import pytest
from devbox.errors import ParameterError
from devbox.MODELS.build_args import BuildArgs
from devbox.MODELS.provision_config import ProvisionConfig


def test_defaults_describe_the_rust_devcontainer():
    config = ProvisionConfig()
    assert config.base_image == "rust:1.60"
    assert config.system_packages == ["xvfb"]
    assert config.username == "vscode"
    assert config.home == "/home/vscode"
    assert config.working_dir == "/home/vscode/workspace"
    assert config.tools == ["cargo-edit"]
    assert config.toolchain_installer == ["cargo", "install"]
    assert config.default_command == ["sleep", "infinity"]


def test_identity_combines_username_and_build_args():
    identity = ProvisionConfig().identity(BuildArgs.create(1234, 5678))
    assert identity.username == "vscode"
    assert (identity.uid, identity.gid) == (1234, 5678)


@pytest.mark.parametrize("base_image", ["rust", "rust:latest", ""])
def test_unpinned_base_image_is_rejected(base_image):
    with pytest.raises(ParameterError) as exc:
        ProvisionConfig.create(base_image=base_image)
    assert "base_image" in str(exc.value)


def test_digest_pins_the_base_image():
    config = ProvisionConfig.create(base_image="rust@sha256:" + "a" * 64)
    assert config.image.is_pinned


@pytest.mark.parametrize("username", ["root", "Bad Name", "1user", ""])
def test_invalid_usernames(username):
    with pytest.raises(ParameterError):
        ProvisionConfig.create(username=username)


@pytest.mark.parametrize("workspace", ["/abs", "..", "../escape", "."])
def test_workspace_must_stay_inside_home(workspace):
    with pytest.raises(ParameterError):
        ProvisionConfig.create(workspace=workspace)


def test_nested_workspace_is_normalized():
    config = ProvisionConfig.create(workspace="src//project/")
    assert config.working_dir == "/home/vscode/src/project"


def test_package_names_are_checked():
    with pytest.raises(ParameterError):
        ProvisionConfig.create(system_packages=["xvfb; rm -rf /"])


def test_default_command_must_not_be_empty():
    with pytest.raises(ParameterError):
        ProvisionConfig.create(default_command=[])


def test_unknown_keys_are_rejected():
    with pytest.raises(ParameterError):
        ProvisionConfig.create(colour="blue")
