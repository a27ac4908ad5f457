import announcements
import chats
import skill_requests
from notifications import (
    NotificationCounts,
    NotificationWatcher,
    compute_counts,
    unread_announcement_count,
    unread_chat_count,
    unread_request_count,
)
from realtime import hub


def test_unread_request_count_only_counts_pending_unread_incoming():
    requests = [
        {"to_user_id": "me", "status": "pending", "is_read": False},
        {"to_user_id": "me", "status": "pending", "is_read": True},
        {"to_user_id": "me", "status": "accepted", "is_read": False},
        {"to_user_id": "other", "status": "pending", "is_read": False},
    ]
    assert unread_request_count(requests, "me") == 1


def test_unread_chat_count_sums_my_counters():
    conversations = [
        {"unread_count": {"me": 2, "x": 5}},
        {"unread_count": {"me": 3}},
        {"unread_count": {"y": 1}},
        {},
    ]
    assert unread_chat_count(conversations, "me") == 5


def test_unread_announcement_count():
    messages = [{"seen_by": ["me"]}, {"seen_by": []}, {"seen_by": ["x"]}]
    assert unread_announcement_count(messages, "me") == 2


def test_compute_counts_from_store(db, make_user):
    alice, _ = make_user("Alice")
    bob, _ = make_user("Bob")
    skill_requests.create_request(db, alice, bob["id"], "Guitar", "Python", "hi")
    chat, _ = chats.get_or_create_conversation(db, alice, bob)
    chats.send_message(db, chat["id"], alice, "hello", bob["id"])
    announcements.create_announcement(db, "welcome")

    assert compute_counts(db, bob["id"]) == NotificationCounts(requests=1, chats=1, announcements=1)
    assert compute_counts(db, alice["id"]) == NotificationCounts(requests=0, chats=0, announcements=1)


def test_watcher_recomputes_on_every_change(db, make_user):
    alice, _ = make_user("Alice")
    bob, _ = make_user("Bob")
    seen = []
    watcher = NotificationWatcher(db, bob["id"], seen.append)

    req = skill_requests.create_request(db, alice, bob["id"], "Guitar", "Python", "hi")
    skill_requests.set_status(db, req["id"], "accepted", bob["id"])
    chat = chats.get_conversation(db, alice["id"], bob["id"])
    chats.send_message(db, chat["id"], alice, "hello", bob["id"])
    chats.mark_read(db, chat["id"], bob["id"])
    msg = announcements.create_announcement(db, "welcome")
    announcements.mark_seen(db, msg["id"], bob["id"])

    assert seen[0] == NotificationCounts()
    assert NotificationCounts(requests=1) in seen
    assert NotificationCounts(chats=1) in seen
    assert NotificationCounts(announcements=1) in seen
    assert seen[-1] == NotificationCounts()
    assert watcher.counts == NotificationCounts()
    watcher.close()


def test_watcher_close_releases_subscriptions(db, make_user):
    bob, _ = make_user("Bob")
    watcher = NotificationWatcher(db, bob["id"], lambda counts: None)
    assert hub.subscriber_count(("skillrequest", bob["id"])) == 1
    assert hub.subscriber_count(("chat", bob["id"])) == 1

    watcher.close()
    watcher.close()

    assert hub.subscriber_count(("skillrequest", bob["id"])) == 0
    assert hub.subscriber_count(("chat", bob["id"])) == 0
