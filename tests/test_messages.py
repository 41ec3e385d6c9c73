from datetime import datetime, timedelta

from bson import ObjectId

from conftest import emitted, run


def send(client, sender, recipient, content="Hi there"):
    return client.post(
        "/api/v1/messages/", json={"recipientId": recipient["id"], "content": content}, headers=sender["headers"]
    )


def test_send_message_emits_and_notifies(client, make_user, emits):
    alice, bob = make_user("Alice"), make_user("Bob")
    res = send(client, alice, bob)
    assert res.status_code == 201
    body = res.json()
    assert body["sender"]["name"] == "Alice"
    assert body["read"] is False

    assert [m["id"] for m in emitted(emits, "message", room=bob["id"])] == [body["id"]]
    notes = emitted(emits, "notification", room=bob["id"])
    assert [n["type"] for n in notes] == ["message"]
    assert notes[0]["link"] == "/messages"


def test_send_message_validation(client, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")
    assert send(client, alice, bob, content="   ").status_code == 400
    res = send(client, alice, {"id": str(ObjectId())})
    assert res.status_code == 400
    assert res.json()["detail"] == "Recipient not found"
    assert send(client, alice, {"id": "nope"}).status_code == 400


def test_thread_marks_incoming_read(client, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")
    send(client, alice, bob, "one")
    send(client, alice, bob, "two")
    send(client, bob, alice, "three")

    assert client.get("/api/v1/messages/unread/count", headers=bob["headers"]).json() == {"count": 2}
    conversations = client.get("/api/v1/messages/conversations", headers=bob["headers"]).json()
    assert len(conversations) == 1
    assert conversations[0]["partner"]["name"] == "Alice"
    assert conversations[0]["unread_count"] == 2

    thread = client.get(f"/api/v1/messages/{alice['id']}", headers=bob["headers"]).json()
    assert sorted(m["content"] for m in thread) == ["one", "three", "two"]
    assert client.get("/api/v1/messages/unread/count", headers=bob["headers"]).json() == {"count": 0}
    # alice still has bob's message unread
    assert client.get("/api/v1/messages/unread/count", headers=alice["headers"]).json() == {"count": 1}


def test_mark_read_by_sender(client, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")
    send(client, alice, bob)
    res = client.put(f"/api/v1/messages/{alice['id']}/read", headers=bob["headers"])
    assert res.json() == {"updated": 1}
    assert client.get("/api/v1/messages/unread/count", headers=bob["headers"]).json() == {"count": 0}


def test_delete_own_message_only(client, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")
    message_id = send(client, alice, bob).json()["id"]
    assert client.delete(f"/api/v1/messages/{message_id}", headers=bob["headers"]).status_code == 403
    assert client.delete(f"/api/v1/messages/{message_id}", headers=alice["headers"]).status_code == 200
    assert client.get(f"/api/v1/messages/{alice['id']}", headers=bob["headers"]).json() == []


def test_thread_is_chronological(client, db, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")
    ids = [send(client, alice, bob, c).json()["id"] for c in ("first", "second", "third")]
    # stored timestamps run opposite to insertion order
    base = datetime(2024, 1, 1, 12, 0)
    for offset, message_id in enumerate(reversed(ids)):
        run(db["message"].update_one({"_id": ObjectId(message_id)}, {"$set": {"created_at": base + timedelta(minutes=offset)}}))

    thread = client.get(f"/api/v1/messages/{alice['id']}", headers=bob["headers"]).json()
    assert [m["content"] for m in thread] == ["third", "second", "first"]
