"""
The fixed configuration of the development image.
"""
import posixpath
import re
from typing import List

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..errors import ParameterError
from ..REGISTRY.image_reference import ImageReference
from .build_args import BuildArgs, UserIdentity

_USERNAME = re.compile(r"^[a-z_][a-z0-9_-]{0,31}$")
_PACKAGE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9+._:=~-]*$")


class ProvisionConfig(BaseModel):
    """
    Everything about the image that is decided at authoring time.
    Defaults describe the standard Rust development container.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    base_image: str = "rust:1.60"
    package_manager: str = "apt-get"
    system_packages: List[str] = ["xvfb"]

    username: str = "vscode"
    workspace: str = "workspace"

    toolchain_installer: List[str] = ["cargo", "install"]
    tools: List[str] = ["cargo-edit"]

    default_command: List[str] = ["sleep", "infinity"]

    @field_validator("base_image")
    @classmethod
    def _pinned_base_image(cls, value: str) -> str:
        try:
            ImageReference.parse(value).require_pinned()
        except ParameterError as e:
            raise ValueError(str(e)) from e
        return value

    @field_validator("system_packages", "tools")
    @classmethod
    def _package_names(cls, value: List[str]) -> List[str]:
        for name in value:
            if not _PACKAGE.match(name):
                raise ValueError(f"invalid package name '{name}'")
        return value

    @field_validator("username")
    @classmethod
    def _non_root_username(cls, value: str) -> str:
        if not _USERNAME.match(value):
            raise ValueError(f"invalid username '{value}'")
        if value == "root":
            raise ValueError("the development user must not be root")
        return value

    @field_validator("workspace")
    @classmethod
    def _relative_workspace(cls, value: str) -> str:
        normalized = posixpath.normpath(value)
        if not value or value.startswith("/") or normalized == "." or normalized.startswith(".."):
            raise ValueError("workspace must be a relative path inside the home directory")
        return normalized

    @field_validator("toolchain_installer", "default_command")
    @classmethod
    def _non_empty_command(cls, value: List[str]) -> List[str]:
        if not value or not value[0]:
            raise ValueError("command must not be empty")
        return value

    @classmethod
    def create(cls, **values) -> "ProvisionConfig":
        """
        Builds a config, reporting validation problems as ParameterError.
        """
        try:
            return cls(**values)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ParameterError(f"Invalid configuration: {problems}") from e

    @property
    def image(self) -> ImageReference:
        return ImageReference.parse(self.base_image)

    @property
    def home(self) -> str:
        return posixpath.join("/home", self.username)

    @property
    def working_dir(self) -> str:
        return posixpath.join(self.home, self.workspace)

    def identity(self, args: BuildArgs) -> UserIdentity:
        """The account this config creates for the given build arguments."""
        return UserIdentity(username=self.username, uid=args.uid, gid=args.gid)
