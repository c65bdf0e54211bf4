import os
from types import SimpleNamespace

import pytest
from devbox.errors import IdentityConflictError, OrderingError
from devbox.ISOLATION import privileges
from devbox.MODELS.build_args import UserIdentity

IDENTITY = UserIdentity(username="vscode", uid=1000, gid=1000)


def fake_databases(monkeypatch, users=(), groups=()):
    """Replaces the passwd and group lookups with in-memory tables."""
    def by(items, attr):
        def lookup(key):
            for item in items:
                if getattr(item, attr) == key:
                    return item
            raise KeyError(key)
        return lookup

    users = [SimpleNamespace(pw_name=n, pw_uid=u, pw_gid=g) for n, u, g in users]
    groups = [SimpleNamespace(gr_name=n, gr_gid=g) for n, g in groups]
    monkeypatch.setattr(privileges.pwd, "getpwnam", by(users, "pw_name"))
    monkeypatch.setattr(privileges.pwd, "getpwuid", by(users, "pw_uid"))
    monkeypatch.setattr(privileges.grp, "getgrnam", by(groups, "gr_name"))
    monkeypatch.setattr(privileges.grp, "getgrgid", by(groups, "gr_gid"))


def test_fresh_system(monkeypatch):
    fake_databases(monkeypatch, users=[("root", 0, 0)], groups=[("root", 0)])
    status = privileges.check_account(IDENTITY)
    assert not status.user_exists
    assert not status.group_exists
    assert not status.complete


def test_already_provisioned_with_same_ids(monkeypatch):
    fake_databases(monkeypatch, users=[("vscode", 1000, 1000)], groups=[("vscode", 1000)])
    assert privileges.check_account(IDENTITY).complete


def test_uid_taken_by_other_user(monkeypatch):
    fake_databases(monkeypatch, users=[("node", 1000, 1000)])
    with pytest.raises(IdentityConflictError, match="UID 1000 is already assigned to user node"):
        privileges.check_account(IDENTITY)


def test_gid_taken_by_other_group(monkeypatch):
    fake_databases(monkeypatch, groups=[("staff", 1000)])
    with pytest.raises(IdentityConflictError, match="GID 1000"):
        privileges.check_account(IDENTITY)


def test_user_exists_with_other_ids(monkeypatch):
    fake_databases(monkeypatch, users=[("vscode", 1001, 1001)])
    with pytest.raises(IdentityConflictError) as exc:
        privileges.check_account(IDENTITY)
    assert exc.value.step == "create-user"


def test_group_name_exists_with_other_gid(monkeypatch):
    fake_databases(monkeypatch, groups=[("vscode", 2000)])
    with pytest.raises(IdentityConflictError, match="group vscode already exists"):
        privileges.check_account(IDENTITY)


def test_group_already_present(monkeypatch):
    fake_databases(monkeypatch, groups=[("vscode", 1000)])
    status = privileges.check_account(IDENTITY)
    assert status.group_exists
    assert not status.user_exists


def test_demote_not_needed_for_current_identity():
    me = UserIdentity(username="me", uid=os.geteuid(), gid=os.getegid())
    assert privileges.demote(me) is None
    assert privileges.demote(None) is None


def test_demote_returns_preexec_for_other_identity(monkeypatch):
    monkeypatch.setattr(privileges.os, "geteuid", lambda: 0)
    monkeypatch.setattr(privileges.os, "getegid", lambda: 0)
    preexec = privileges.demote(IDENTITY)
    assert callable(preexec)

    calls = []
    monkeypatch.setattr(privileges.os, "setgroups", lambda g: calls.append(("setgroups", g)))
    monkeypatch.setattr(privileges.os, "setgid", lambda g: calls.append(("setgid", g)))
    monkeypatch.setattr(privileges.os, "setuid", lambda u: calls.append(("setuid", u)))
    preexec()
    assert calls == [("setgroups", []), ("setgid", 1000), ("setuid", 1000)]


def test_require_switchable_without_root(monkeypatch):
    monkeypatch.setattr(privileges.os, "geteuid", lambda: 1234)
    monkeypatch.setattr(privileges.os, "getegid", lambda: 1234)
    with pytest.raises(OrderingError, match="requires root"):
        privileges.require_switchable(IDENTITY)


def test_require_switchable_as_root(monkeypatch):
    monkeypatch.setattr(privileges.os, "geteuid", lambda: 0)
    privileges.require_switchable(IDENTITY)
