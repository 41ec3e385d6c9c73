from bson import ObjectId

from conftest import emitted, run

SKILL = {"title": "Guitar lessons", "description": "Beginner chords and strumming", "category": "Music", "location": "Online"}


def share_skill(client, user, **overrides):
    res = client.post("/api/v1/skillsharings/", json={**SKILL, **overrides}, headers=user["headers"])
    assert res.status_code == 201, res.text
    return res.json()


def request_skill(client, user, skill_id, message=None):
    return client.post("/api/v1/skillrequests/", json={"skillId": skill_id, "message": message}, headers=user["headers"])


def test_skill_crud(client, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")
    skill = share_skill(client, alice)
    assert skill["user"]["name"] == "Alice"
    url = f"/api/v1/skillsharings/{skill['id']}"

    assert client.put(url, json={"title": "Bass lessons"}, headers=bob["headers"]).status_code == 403
    assert client.put(url, json={"title": "Bass lessons"}, headers=alice["headers"]).json()["title"] == "Bass lessons"
    assert len(client.get("/api/v1/skillsharings/").json()) == 1

    assert client.delete(url, headers=alice["headers"]).status_code == 200
    assert client.get(url).status_code == 404


def test_skill_request_lifecycle(client, make_user, emits):
    alice, bob = make_user("Alice"), make_user("Bob")
    skill = share_skill(client, alice)

    res = request_skill(client, bob, skill["id"])
    assert res.status_code == 201
    request = res.json()
    assert request["status"] == "pending"
    assert request["message"] == "I'm interested in your skill!"
    assert "skill_request" in [n["type"] for n in emitted(emits, "notification", room=alice["id"])]

    assert request_skill(client, bob, skill["id"]).status_code == 400
    assert request_skill(client, alice, skill["id"]).status_code == 400

    respond = f"/api/v1/skillrequests/{request['id']}/respond"
    assert client.put(respond, json={"status": "accepted"}, headers=bob["headers"]).status_code == 403
    res = client.put(respond, json={"status": "accepted", "responseMessage": "See you Monday"}, headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["status"] == "accepted"
    assert res.json()["response_message"] == "See you Monday"

    booked = client.get(f"/api/v1/skillsharings/{skill['id']}").json()
    assert booked["availability"] == "unavailable"
    assert booked["booked_by"]["user_id"] == bob["id"]

    res = client.put(respond, json={"status": "rejected"}, headers=alice["headers"])
    assert res.status_code == 400
    assert res.json()["detail"] == "Cannot change status from accepted to rejected"

    # provider cannot complete
    complete = f"/api/v1/skillrequests/{request['id']}/complete"
    assert client.put(complete, headers=alice["headers"]).status_code == 403
    res = client.put(complete, headers=bob["headers"])
    assert res.status_code == 200
    assert res.json()["status"] == "completed"
    assert res.json()["completed_at"] is not None
    assert "skill_request_completed" in [n["type"] for n in emitted(emits, "notification", room=alice["id"])]

    freed = client.get(f"/api/v1/skillsharings/{skill['id']}").json()
    assert freed["availability"] == "available"
    assert freed["booked_by"] is None

    listed = client.get("/api/v1/skillrequests/", headers=alice["headers"]).json()
    assert [r["status"] for r in listed] == ["completed"]


def test_reject_alias(client, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")
    skill = share_skill(client, alice)
    request_id = request_skill(client, bob, skill["id"]).json()["id"]
    res = client.put(f"/api/v1/skillrequests/{request_id}/reject", headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["status"] == "rejected"
    # a rejected request no longer counts as active
    assert request_skill(client, bob, skill["id"]).status_code == 201


def test_cancel_accepted_request_frees_skill(client, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")
    skill = share_skill(client, alice)
    request_id = request_skill(client, bob, skill["id"]).json()["id"]
    client.put(f"/api/v1/skillrequests/{request_id}/accept", headers=alice["headers"])

    assert client.put(f"/api/v1/skillrequests/{request_id}/cancel", headers=alice["headers"]).status_code == 403
    res = client.put(f"/api/v1/skillrequests/{request_id}/cancel", headers=bob["headers"])
    assert res.json()["status"] == "canceled"
    assert client.get(f"/api/v1/skillsharings/{skill['id']}").json()["availability"] == "available"


def test_unavailable_skill_cannot_be_requested(client, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")
    skill = share_skill(client, alice, availability="unavailable")
    assert request_skill(client, bob, skill["id"]).status_code == 400


def test_deleted_skill_placeholder(client, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")
    skill = share_skill(client, alice)
    request_skill(client, bob, skill["id"])
    client.delete(f"/api/v1/skillsharings/{skill['id']}", headers=alice["headers"])

    listed = client.get("/api/v1/skillrequests/", headers=bob["headers"]).json()
    assert listed[0]["skill"]["title"] == "Deleted Skill"


def test_skill_settings_and_requests_view(client, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")
    skill = share_skill(client, alice)
    request_id = request_skill(client, bob, skill["id"]).json()["id"]

    res = client.get(f"/api/v1/skillsharings/{skill['id']}/requests", headers=alice["headers"])
    assert [r["id"] for r in res.json()] == [request_id]
    assert client.get(f"/api/v1/skillsharings/{skill['id']}/requests", headers=bob["headers"]).status_code == 403

    client.put(f"/api/v1/skillrequests/{request_id}/accept", headers=alice["headers"])
    settings = f"/api/v1/skillsharings/{skill['id']}/settings"
    assert client.put(settings, json={"availability": "available"}, headers=alice["headers"]).status_code == 400


def test_cannot_accept_request_for_deleted_skill(client, db, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")
    skill = share_skill(client, alice)
    request_id = request_skill(client, bob, skill["id"]).json()["id"]
    client.delete(f"/api/v1/skillsharings/{skill['id']}", headers=alice["headers"])

    res = client.put(f"/api/v1/skillrequests/{request_id}/accept", headers=alice["headers"])
    assert res.status_code == 400
    stored = run(db["skillsharing"].find_one({"_id": ObjectId(skill["id"])}))
    assert stored["booked_by"] is None
    assert client.put(f"/api/v1/skillrequests/{request_id}/reject", headers=alice["headers"]).status_code == 200
