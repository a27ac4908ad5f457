from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

import chats
import skill_requests


def send(db, sender, receiver, offered="Guitar", wanted="Python", message="hi"):
    return skill_requests.create_request(db, sender, receiver["id"], offered, wanted, message)


def test_new_request_is_pending_for_sender_and_unread_for_receiver(db, make_user):
    alice, _ = make_user("Alice")
    bob, _ = make_user("Bob")

    req = send(db, alice, bob)

    sent = skill_requests.list_sent(db, alice["id"])
    received = skill_requests.list_received(db, bob["id"])
    assert [r["id"] for r in sent] == [req["id"]]
    assert sent[0]["status"] == "pending"
    assert sent[0]["offered_skill"] == "Guitar"
    assert sent[0]["wanted_skill"] == "Python"
    assert sent[0]["message"] == "hi"
    assert [r["id"] for r in received] == [req["id"]]
    assert received[0]["is_read"] is False
    assert received[0]["from_user_name"] == "Alice"
    assert received[0]["to_user_name"] == "Bob"


def test_accepting_opens_chat_and_enables_interaction(db, make_user):
    alice, _ = make_user("Alice")
    bob, _ = make_user("Bob")
    req = send(db, alice, bob)
    assert chats.get_conversation(db, alice["id"], bob["id"]) is None

    updated = skill_requests.set_status(db, req["id"], "accepted", bob["id"])

    assert updated["status"] == "accepted"
    chat = chats.get_conversation(db, alice["id"], bob["id"])
    assert chat is not None
    assert set(chat["participants"]) == {alice["id"], bob["id"]}
    assert skill_requests.has_accepted_request(db, alice["id"], bob["id"])
    assert skill_requests.has_accepted_request(db, bob["id"], alice["id"])


def test_accept_reuses_existing_chat(db, make_user):
    alice, _ = make_user("Alice")
    bob, _ = make_user("Bob")
    existing, _ = chats.get_or_create_conversation(db, alice, bob)
    req = send(db, alice, bob)

    skill_requests.set_status(db, req["id"], "accepted", bob["id"])

    assert db["chat"].count_documents({}) == 1
    assert chats.get_conversation(db, bob["id"], alice["id"])["id"] == existing["id"]


def test_rejecting_does_not_open_chat(db, make_user):
    alice, _ = make_user("Alice")
    bob, _ = make_user("Bob")
    req = send(db, alice, bob)

    skill_requests.set_status(db, req["id"], "rejected", bob["id"])

    assert skill_requests.get_request(db, req["id"])["status"] == "rejected"
    assert chats.get_conversation(db, alice["id"], bob["id"]) is None
    assert not skill_requests.has_accepted_request(db, alice["id"], bob["id"])


def test_status_is_terminal(db, make_user):
    alice, _ = make_user("Alice")
    bob, _ = make_user("Bob")
    req = send(db, alice, bob)
    skill_requests.set_status(db, req["id"], "rejected", bob["id"])

    with pytest.raises(HTTPException) as exc:
        skill_requests.set_status(db, req["id"], "accepted", bob["id"])
    assert exc.value.status_code == 409
    assert skill_requests.get_request(db, req["id"])["status"] == "rejected"


def test_only_receiver_can_respond(db, make_user):
    alice, _ = make_user("Alice")
    bob, _ = make_user("Bob")
    req = send(db, alice, bob)

    with pytest.raises(HTTPException) as exc:
        skill_requests.set_status(db, req["id"], "accepted", alice["id"])
    assert exc.value.status_code == 403


def test_unknown_status_rejected(db, make_user):
    alice, _ = make_user("Alice")
    bob, _ = make_user("Bob")
    req = send(db, alice, bob)

    with pytest.raises(HTTPException) as exc:
        skill_requests.set_status(db, req["id"], "pending", bob["id"])
    assert exc.value.status_code == 400


def test_accept_succeeds_when_chat_bootstrap_fails(db, make_user, monkeypatch, caplog):
    alice, _ = make_user("Alice")
    bob, _ = make_user("Bob")
    req = send(db, alice, bob)

    def boom(*args, **kwargs):
        raise RuntimeError("chat store down")

    monkeypatch.setattr(chats, "get_or_create_conversation", boom)

    updated = skill_requests.set_status(db, req["id"], "accepted", bob["id"])

    assert updated["status"] == "accepted"
    assert db["chat"].count_documents({}) == 0
    assert "Could not create chat" in caplog.text


def test_cannot_request_yourself(db, make_user):
    alice, _ = make_user("Alice")
    with pytest.raises(HTTPException) as exc:
        send(db, alice, alice)
    assert exc.value.status_code == 400


def test_request_to_unknown_user_is_404(db, make_user):
    alice, _ = make_user("Alice")
    with pytest.raises(HTTPException) as exc:
        skill_requests.create_request(db, alice, "64b000000000000000000000", "Guitar", "Python", "hi")
    assert exc.value.status_code == 404


def test_mark_read_is_idempotent_and_receiver_only(db, make_user):
    alice, _ = make_user("Alice")
    bob, _ = make_user("Bob")
    req = send(db, alice, bob)

    with pytest.raises(HTTPException):
        skill_requests.mark_read(db, req["id"], alice["id"])
    assert skill_requests.mark_read(db, req["id"], bob["id"])["is_read"] is True
    assert skill_requests.mark_read(db, req["id"], bob["id"])["is_read"] is True


def test_lists_are_newest_first(db, make_user):
    alice, _ = make_user("Alice")
    bob, _ = make_user("Bob")
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)
    for offset, skill in [(1, "middle"), (2, "newest"), (0, "oldest")]:
        db["skillrequest"].insert_one({
            "from_user_id": alice["id"],
            "to_user_id": bob["id"],
            "offered_skill": skill,
            "wanted_skill": "Python",
            "message": "hi",
            "status": "pending",
            "is_read": False,
            "created_at": base + timedelta(minutes=offset),
        })

    received = [r["offered_skill"] for r in skill_requests.list_received(db, bob["id"])]
    sent = [r["offered_skill"] for r in skill_requests.list_sent(db, alice["id"])]
    assert received == ["newest", "middle", "oldest"]
    assert sent == received


def test_list_all_counts_by_status(db, make_user):
    alice, _ = make_user("Alice")
    bob, _ = make_user("Bob")
    carol, _ = make_user("Carol")
    first = send(db, alice, bob)
    send(db, carol, bob)
    skill_requests.set_status(db, first["id"], "accepted", bob["id"])

    everything = skill_requests.list_all(db)
    accepted = skill_requests.list_all(db, "accepted")

    assert everything["counts"] == {"pending": 1, "accepted": 1, "rejected": 0}
    assert len(everything["items"]) == 2
    assert [r["id"] for r in accepted["items"]] == [first["id"]]


def test_subscription_receives_new_requests(db, make_user):
    alice, _ = make_user("Alice")
    bob, _ = make_user("Bob")
    snapshots = []
    cancel = skill_requests.subscribe_to_requests(db, bob["id"], snapshots.append)

    send(db, alice, bob)
    cancel()
    send(db, alice, bob, offered="Piano")

    assert [len(s) for s in snapshots] == [0, 1]
