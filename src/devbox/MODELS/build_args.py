"""
Models for the caller-supplied build arguments and the user identity derived from them.
"""
import os
import posixpath
from typing import Dict, Optional

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import ParameterError

UID_ARG = "UID"
GID_ARG = "GID"


class BuildArgs(BaseModel):
    """
    Numeric user and group ids for the non-root account.

    Both fields are mandatory: there is no default, so a build can never
    silently fall back to an id that does not match the host.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    uid: int = Field(ge=0)
    gid: int = Field(ge=0)

    @field_validator("uid", "gid", mode="before")
    @classmethod
    def _reject_non_numeric(cls, value):
        if isinstance(value, bool):
            raise ValueError("must be an integer, not a boolean")
        if isinstance(value, str):
            value = value.strip()
            if not value.isdigit():
                raise ValueError(f"'{value}' is not a non-negative integer")
        return value

    @classmethod
    def create(cls, uid, gid) -> "BuildArgs":
        """
        Validates raw values and builds the model.

        :param uid: User id as int or numeric string; None when not supplied.
        :param gid: Group id as int or numeric string; None when not supplied.
        :raises ParameterError: If a value is missing or invalid.
        """
        missing = [name for name, value in ((UID_ARG, uid), (GID_ARG, gid)) if value is None]
        if missing:
            raise ParameterError(
                f"Missing required build argument(s): {', '.join(missing)}",
                step="declare-build-args",
            )
        try:
            return cls(uid=uid, gid=gid)
        except ValidationError as e:
            problems = "; ".join(
                f"{str(err['loc'][0]).upper()} {err['msg']}" for err in e.errors()
            )
            raise ParameterError(f"Invalid build argument(s): {problems}",
                                 step="declare-build-args") from e

    @classmethod
    def resolve(cls, uid=None, gid=None, env_file: Optional[str] = None,
                match_host: bool = False) -> "BuildArgs":
        """
        Collects UID/GID from every way a caller can supply them. Explicit
        values win over the dotenv file; ``match_host`` fills in whatever is
        still missing with the invoking user's own ids.

        :param uid: Explicit user id, or None.
        :param gid: Explicit group id, or None.
        :param env_file: Optional dotenv file with UID= and GID= keys.
        :param match_host: Use os.getuid()/os.getgid() for missing values.
        :raises ParameterError: If a value is still missing or is invalid.
        """
        if env_file:
            if not os.path.exists(env_file):
                raise ParameterError(f"Environment file not found: {env_file}")
            values = dotenv_values(env_file)
            uid = uid if uid is not None else values.get(UID_ARG)
            gid = gid if gid is not None else values.get(GID_ARG)
        if match_host:
            uid = uid if uid is not None else os.getuid()
            gid = gid if gid is not None else os.getgid()
        return cls.create(uid, gid)

    def as_docker_args(self) -> Dict[str, str]:
        """Values for `docker build --build-arg`."""
        return {UID_ARG: str(self.uid), GID_ARG: str(self.gid)}


class UserIdentity(BaseModel):
    """
    The non-root account created in the image.
    """
    model_config = ConfigDict(frozen=True)

    username: str
    uid: int
    gid: int

    @property
    def home(self) -> str:
        return posixpath.join("/home", self.username)

    @property
    def env(self) -> Dict[str, str]:
        """Login environment for processes running as this user."""
        return {"HOME": self.home, "USER": self.username, "LOGNAME": self.username}
