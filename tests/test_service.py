import socket
import threading

from linechatd.codec import LineReader
from linechatd.constants import KIND_CHAT, KIND_SYSTEM, KIND_WHISPER


def test_welcome_then_collision_closes_connection(connect) -> None:
    alice = connect()
    alice.send("!username alice")
    assert alice.read_until("OK: Welcome alice!")[-1] == "OK: Welcome alice!"

    imposter = connect()
    imposter.send("!username ALICE")
    imposter.read_until("ERROR: Username already in use. Disconnecting.")
    assert imposter.at_eof()


def test_handshake_errors_are_retried(connect) -> None:
    client = connect()
    client.send("hello there")
    assert client.readline() == "ERROR: You must start with !username <name>"

    client.send("!username ab")
    assert client.readline().startswith("ERROR: Invalid username (")

    client.send("!username bob smith")
    assert client.readline() == "ERROR: Invalid username (username must not contain spaces)."

    client.login("bob")


def test_chat_is_broadcast_to_everyone_including_sender(connect) -> None:
    alice = connect("alice")
    bob = connect("bob")
    alice.read_until("* bob joined the chat *")

    alice.send("hi all")
    alice.read_until("[alice]: hi all")
    bob.read_until("[alice]: hi all")


def test_blank_lines_are_ignored_and_unknown_commands_reported(connect) -> None:
    alice = connect("alice")
    alice.send("")
    alice.send("   ")
    alice.send("!bogus")
    assert alice.readline() == "Unknown command. Try !commands"


def test_whisper_reaches_only_the_target(service, connect) -> None:
    alice = connect("alice")
    bob = connect("bob")
    carol = connect("carol")

    alice.send("!whisper bob hi")
    bob.read_until("[whisper from alice]: hi")
    alice.read_until("[whisper to bob]: hi")

    carol.send("!ping")
    seen = carol.read_until("pong")
    assert not any("whisper" in line for line in seen)

    kinds = [r.kind for r in service.history.recent(10)]
    assert KIND_WHISPER in kinds


def test_whisper_alias_and_usage(connect) -> None:
    alice = connect("alice")
    bob = connect("bob")

    alice.send("!w BOB see you later")
    bob.read_until("[whisper from alice]: see you later")
    alice.read_until("[whisper to bob]: see you later")

    alice.send("!whisper bob")
    assert alice.readline() == "Usage: !whisper <username> <message>"


def test_whisper_to_unknown_user(connect) -> None:
    alice = connect("alice")
    alice.send("!whisper ghost boo")
    assert alice.readline() == "User 'ghost' not found."


def test_rename_is_announced_and_visible_in_who(connect) -> None:
    alice = connect("alice")
    bob = connect("bob")

    alice.send("!user alice2")
    bob.read_until("* alice is now known as alice2 *")
    alice.read_until("* alice is now known as alice2 *")

    alice.send("!who")
    assert alice.readline() == "Connected users: alice2, bob"


def test_rename_to_taken_name_fails_without_change(connect) -> None:
    alice = connect("alice")
    connect("bob")

    alice.send("!user Bob")
    alice.read_until("ERROR: Username already in use.")
    alice.send("!who")
    assert alice.readline() == "Connected users: alice, bob"


def test_commands_hide_moderator_subset_from_regular_users(service, connect) -> None:
    alice = connect("alice")
    alice.send("!commands")
    assert alice.readline().startswith("Commands: !who")
    alice.send("!ping")
    assert alice.readline() == "pong"

    service.toggle_moderator("alice")
    alice.read_until("* alice is now a moderator *")
    alice.send("!commands")
    alice.readline()
    assert alice.readline() == "Moderator: !kick <user> [reason], !history"


def test_about_and_stats(service, connect) -> None:
    alice = connect("alice")
    connect()  # unnamed connections are not counted

    alice.send("!about")
    assert "linechatd" in alice.readline()

    alice.send("!stats")
    line = alice.readline()
    assert line.startswith("Server Stats: 1 online users, 0 moderators, uptime: ")


def test_moderator_kick(service, connect) -> None:
    mod = connect("mod")
    bob = connect("bob")
    carol = connect("carol")

    service.toggle_moderator("mod")
    mod.read_until("* mod is now a moderator *")

    mod.send("!kick bob rude")
    assert bob.read_until_prefix("!kicked ") == "!kicked rude"
    assert bob.at_eof()

    carol.read_until("* bob was kicked by mod (rude) *")
    mod.read_until("* bob was kicked by mod (rude) *")
    assert service.session_manager.usernames() == ["carol", "mod"]


def test_kick_requires_moderator(service, connect) -> None:
    alice = connect("alice")
    connect("bob")
    alice.read_until("* bob joined the chat *")

    alice.send("!kick bob")
    assert alice.readline() == "ERROR: Only moderators can use !kick"
    assert service.session_manager.usernames() == ["alice", "bob"]


def test_kick_unknown_user_changes_nothing(service, connect) -> None:
    mod = connect("mod")
    service.toggle_moderator("mod")
    mod.read_until("* mod is now a moderator *")

    before = service.session_manager.snapshot()
    mod.send("!kick ghost")
    assert mod.readline() == "ERROR: User 'ghost' not found."
    assert not service.kick("ghost", "nope", kicked_by="server")
    assert service.session_manager.snapshot() == before
    assert service.session_manager.usernames() == ["mod"]


def test_second_kick_is_a_no_op(service, connect) -> None:
    connect("bob")
    carol = connect("carol")

    assert service.kick("bob", "spam", kicked_by="server")
    assert not service.kick("bob", "spam", kicked_by="server")

    carol.send("!ping")
    seen = carol.read_until("pong")
    assert seen.count("* bob was kicked by server (spam) *") == 1


def test_history_is_moderator_only(service, connect) -> None:
    alice = connect("alice")
    alice.send("!history")
    assert alice.readline() == "ERROR: Only moderators can use !history"

    service.toggle_moderator("alice")
    alice.read_until("* alice is now a moderator *")
    for i in range(12):
        alice.send(f"line {i}")
    alice.read_until("[alice]: line 11")

    alice.send("!history")
    assert alice.readline() == "History (last 10):"
    entries = [alice.readline() for _ in range(10)]
    assert entries[-1].endswith("[chat] alice: line 11")
    assert entries[0].endswith("[chat] alice: line 2")


def test_departure_is_announced(service, connect) -> None:
    alice = connect("alice")
    bob = connect("bob")
    bob.close()
    alice.read_until("* bob left the chat *")
    assert service.session_manager.usernames() == ["alice"]


def test_connection_without_username_leaves_silently(service) -> None:
    ours, theirs = socket.socketpair()
    worker = threading.Thread(target=service.serve_connection, args=(theirs,))
    worker.start()
    ours.sendall(b"hello\r\n")
    ours.close()
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert service.session_manager.snapshot() == []
    assert not any("left" in r.content for r in service.history.recent(100))


def test_history_records_chat_and_system_events(service, connect) -> None:
    alice = connect("alice")
    connect("bob")
    alice.read_until("* bob joined the chat *")
    alice.send("hello")
    alice.read_until("[alice]: hello")

    records = service.history.recent(10)
    assert (KIND_SYSTEM, "* bob joined the chat *") in [(r.kind, r.content) for r in records]
    assert (KIND_CHAT, "alice", "hello") in [(r.kind, r.username, r.content) for r in records]


def test_broadcasts_are_mirrored_to_console(console, connect) -> None:
    alice = connect("alice")
    alice.send("mirror me")
    alice.read_until("[alice]: mirror me")
    assert "[alice]: mirror me" in console.getvalue()


def test_shutdown_terminates_every_session(service, connect) -> None:
    alice = connect("alice")
    bob = connect("bob")

    service.stop()

    bob.read_until("* alice server is shutting down *")
    assert alice.at_eof()
    assert bob.at_eof()
    assert service.session_manager.snapshot() == []
    assert service.session_manager.usernames() == []
    assert not service.is_running


def test_broadcast_survives_a_failing_recipient(service, connect) -> None:
    alice = connect("alice")
    connect("bob")
    carol = connect("carol")

    # Writes to bob now fail with EPIPE while his session stays registered.
    bob_sess = service.session_manager.find_by_username("bob")
    bob_sess.sock.shutdown(socket.SHUT_WR)

    assert service.message_helper.broadcast("* maintenance soon *") == 2
    alice.read_until("* maintenance soon *")
    carol.read_until("* maintenance soon *")


def test_shutdown_with_concurrent_departures_leaves_no_state(service, connect) -> None:
    clients = [connect(f"user{i:02d}") for i in range(20)]

    def leave() -> None:
        for client in clients[::2]:
            client.close()

    leaver = threading.Thread(target=leave)
    leaver.start()
    service.stop()
    leaver.join(timeout=5)

    assert service.session_manager.snapshot() == []
    assert service.session_manager.usernames() == []
    assert service.session_manager.get_stats()["claimed_names"] == 0


def test_kick_notice_arrives_despite_unread_input(service) -> None:
    # A session with no reader thread, so everything the peer sends stays unread.
    with socket.create_server(("127.0.0.1", 0)) as listener:
        peer = socket.create_connection(listener.getsockname(), timeout=5)
        server_side, address = listener.accept()

    sess = service.session_manager.on_connection_accepted(server_side, address)
    assert service.session_manager.claim_username(sess, "bob")
    peer.sendall(b"spam\r\n" * 200)

    try:
        assert service.kick("bob", "flooding", kicked_by="server")
        reader = LineReader(peer)
        assert reader.readline() == "!kicked flooding"
        assert reader.readline() is None
    finally:
        peer.close()
    assert service.session_manager.usernames() == []
