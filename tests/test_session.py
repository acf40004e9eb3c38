import socket

import pytest

from linechatd.registry import RenameResult, UsernameRegistry
from linechatd.session import SessionManager, SessionState


@pytest.fixture
def sockets():
    opened: list[socket.socket] = []

    def make() -> socket.socket:
        a, b = socket.socketpair()
        opened.extend((a, b))
        return a

    yield make
    for s in opened:
        s.close()


def test_claim_activates_session(sockets) -> None:
    mgr = SessionManager()
    sess = mgr.on_connection_accepted(sockets())
    assert sess.state is SessionState.AWAITING_USERNAME

    assert mgr.claim_username(sess, "alice")
    assert sess.username == "alice"
    assert sess.state is SessionState.ACTIVE
    assert mgr.usernames() == ["alice"]


def test_claim_collision_leaves_session_unnamed(sockets) -> None:
    mgr = SessionManager()
    first = mgr.on_connection_accepted(sockets())
    second = mgr.on_connection_accepted(sockets())
    assert mgr.claim_username(first, "Alice")
    assert not mgr.claim_username(second, "alice")
    assert second.username == ""
    assert second.state is SessionState.AWAITING_USERNAME


def test_remove_is_idempotent_and_releases_name(sockets) -> None:
    registry = UsernameRegistry()
    mgr = SessionManager(registry)
    sess = mgr.on_connection_accepted(sockets())
    mgr.claim_username(sess, "bob")

    assert mgr.remove(sess)
    assert not mgr.remove(sess)
    assert sess.state is SessionState.TERMINATED
    assert "bob" not in registry
    assert mgr.snapshot() == []


def test_rename_updates_session_and_registry(sockets) -> None:
    mgr = SessionManager()
    alice = mgr.on_connection_accepted(sockets())
    bob = mgr.on_connection_accepted(sockets())
    mgr.claim_username(alice, "alice")
    mgr.claim_username(bob, "bob")

    assert mgr.rename(alice, "bob") is RenameResult.NAME_TAKEN
    assert alice.username == "alice"

    assert mgr.rename(alice, "alice2") is RenameResult.OK
    assert alice.username == "alice2"
    assert mgr.usernames() == ["alice2", "bob"]
    assert mgr.find_by_username("ALICE2") is alice
    assert mgr.find_by_username("alice") is None


def test_rename_after_removal_is_refused(sockets) -> None:
    mgr = SessionManager()
    sess = mgr.on_connection_accepted(sockets())
    mgr.claim_username(sess, "alice")
    mgr.remove(sess)
    assert mgr.rename(sess, "alice2") is RenameResult.NAME_TAKEN
    assert mgr.usernames() == []


def test_toggle_moderator_and_stats(sockets) -> None:
    mgr = SessionManager()
    sess = mgr.on_connection_accepted(sockets())
    mgr.on_connection_accepted(sockets())
    mgr.claim_username(sess, "mod")

    assert mgr.toggle_moderator("MOD") is sess
    assert sess.is_moderator
    assert mgr.moderators() == ["mod"]
    assert mgr.get_stats() == {"total": 2, "named": 1, "moderators": 1, "claimed_names": 1}

    mgr.toggle_moderator("mod")
    assert not sess.is_moderator
    assert mgr.toggle_moderator("ghost") is None


def test_snapshot_excludes_session(sockets) -> None:
    mgr = SessionManager()
    a = mgr.on_connection_accepted(sockets())
    b = mgr.on_connection_accepted(sockets())
    assert mgr.snapshot(exclude=a) == [b]
