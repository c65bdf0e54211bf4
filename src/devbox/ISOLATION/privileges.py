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
Account checks and privilege dropping for the development user.
Used when provisioning a host directly instead of through a Docker build.
"""

import grp
import os
import pwd
from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import IdentityConflictError, OrderingError
from ..MODELS.build_args import UserIdentity


@dataclass
class AccountStatus:
    """What already exists on the system for a requested identity."""

    user_exists: bool = False
    group_exists: bool = False

    @property
    def complete(self) -> bool:
        return self.user_exists and self.group_exists


def _lookup(fn, key):
    try:
        return fn(key)
    except KeyError:
        return None


def check_account(identity: UserIdentity) -> AccountStatus:
    """
    Compares the requested identity against the local account databases.

    Args:
        identity: The user to create.

    Returns:
        Which parts of the identity already exist with exactly the requested ids.

    Raises:
        IdentityConflictError: If the name, UID or GID belongs to a different account.
    """
    step = "create-user"
    status = AccountStatus()

    user = _lookup(pwd.getpwnam, identity.username)
    if user is not None:
        if user.pw_uid != identity.uid or user.pw_gid != identity.gid:
            raise IdentityConflictError(
                f"user {identity.username} already exists with "
                f"UID {user.pw_uid} and GID {user.pw_gid}", step=step)
        status.user_exists = True
    else:
        owner = _lookup(pwd.getpwuid, identity.uid)
        if owner is not None:
            raise IdentityConflictError(
                f"UID {identity.uid} is already assigned to user {owner.pw_name}", step=step)

    group = _lookup(grp.getgrgid, identity.gid)
    if group is not None:
        if group.gr_name != identity.username and not status.user_exists:
            raise IdentityConflictError(
                f"GID {identity.gid} is already assigned to group {group.gr_name}", step=step)
        status.group_exists = True
    else:
        named = _lookup(grp.getgrnam, identity.username)
        if named is not None:
            raise IdentityConflictError(
                f"group {identity.username} already exists with GID {named.gr_gid}", step=step)

    return status


def is_root() -> bool:
    return os.geteuid() == 0


def is_current_identity(identity: UserIdentity) -> bool:
    return os.geteuid() == identity.uid and os.getegid() == identity.gid


def require_switchable(identity: UserIdentity) -> None:
    """
    Raises:
        OrderingError: If this process cannot run commands as the identity.
    """
    if not (is_root() or is_current_identity(identity)):
        raise OrderingError(
            f"switching to {identity.username} requires root privileges", step="switch-user")


def demote(identity: Optional[UserIdentity]) -> Optional[Callable[[], None]]:
    """
    Returns a preexec function that drops the child to the identity's ids.
    None when no switch is needed.
    """
    if identity is None or is_current_identity(identity):
        return None

    uid, gid = identity.uid, identity.gid

    def preexec():
        # Supplementary groups first, then gid, then uid: after setuid the
        # process can no longer change its groups
        os.setgroups([])
        os.setgid(gid)
        os.setuid(uid)

    return preexec
