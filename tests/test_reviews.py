import pytest
from bson import ObjectId
from fastapi import HTTPException

import trust
from conftest import emitted, run
from test_resources import create_resource
from test_skills import request_skill, share_skill


def test_updated_trust_score():
    assert trust.updated_trust_score(5.0, 0, 3) == 3.0
    assert trust.updated_trust_score(4.0, 1, 5) == 4.5
    assert trust.updated_trust_score(4.5, 2, 1) == 3.33


def test_apply_rating_persists(db):
    user_id = run(db["user"].insert_one({"name": "A", "trust_score": 5.0, "total_reviews": 0})).inserted_id
    run(trust.apply_rating(str(user_id), 2))
    run(trust.apply_rating(str(user_id), 4))
    user = run(db["user"].find_one({"_id": user_id}))
    assert user["total_reviews"] == 2
    assert user["trust_score"] == 3.0


def test_apply_rating_without_review_fields(db):
    user_id = run(db["user"].insert_one({"name": "Legacy"})).inserted_id
    run(trust.apply_rating(str(user_id), 4))
    user = run(db["user"].find_one({"_id": user_id}))
    assert user["trust_score"] == 4.0
    assert user["total_reviews"] == 1


def test_apply_rating_gives_up_after_repeated_conflicts(monkeypatch):
    user_id = ObjectId()

    class Lost:
        modified_count = 0

    class Users:
        async def find_one(self, *args, **kwargs):
            return {"_id": user_id, "trust_score": 5.0, "total_reviews": 0}

        async def update_one(self, *args, **kwargs):
            return Lost()

    async def fake_db():
        return {"user": Users()}

    monkeypatch.setattr(trust, "get_db", fake_db)
    with pytest.raises(HTTPException) as exc:
        run(trust.apply_rating(str(user_id), 4))
    assert exc.value.status_code == 409


def returned_transaction(client, alice, bob):
    resource = create_resource(client, alice)
    txn = client.post("/api/v1/resources/borrow", json={"resourceId": resource["id"]}, headers=bob["headers"]).json()
    client.put(f"/api/v1/resources/{resource['id']}/return", headers=bob["headers"])
    return txn["transaction"]["id"]


def test_review_after_return_updates_trust_score(client, make_user, emits):
    alice, bob = make_user("Alice"), make_user("Bob")
    txn_id = returned_transaction(client, alice, bob)

    pending = client.get("/api/v1/reviews/pending", headers=bob["headers"]).json()
    assert [t["id"] for t in pending["pending_as_borrower"]] == [txn_id]
    assert pending["pending_as_owner"] == []

    res = client.post("/api/v1/reviews/", json={"transactionId": txn_id, "rating": 4, "comment": "Great drill"}, headers=bob["headers"])
    assert res.status_code == 201
    assert res.json()["reviewed_user_id"] == alice["id"]
    assert "review" in [n["type"] for n in emitted(emits, "notification", room=alice["id"])]

    profile = client.get(f"/api/v1/users/{alice['id']}", headers=bob["headers"]).json()
    assert profile["trust_score"] == 4.0
    assert profile["total_reviews"] == 1

    again = client.post("/api/v1/reviews/", json={"transactionId": txn_id, "rating": 1}, headers=bob["headers"])
    assert again.status_code == 400

    assert client.get("/api/v1/reviews/pending", headers=bob["headers"]).json()["pending_as_borrower"] == []

    received = client.get(f"/api/v1/reviews/user/{alice['id']}").json()
    assert [r["rating"] for r in received] == [4]
    assert received[0]["reviewer"]["name"] == "Bob"


def test_review_requires_returned_transaction_and_party(client, make_user):
    alice, bob, carol = make_user("Alice"), make_user("Bob"), make_user("Carol")
    resource = create_resource(client, alice)
    txn_id = client.post(
        "/api/v1/resources/borrow", json={"resourceId": resource["id"]}, headers=bob["headers"]
    ).json()["transaction"]["id"]

    res = client.post("/api/v1/reviews/", json={"transactionId": txn_id, "rating": 5}, headers=bob["headers"])
    assert res.status_code == 400

    client.put(f"/api/v1/resources/{resource['id']}/return", headers=alice["headers"])
    res = client.post("/api/v1/reviews/", json={"transactionId": txn_id, "rating": 5}, headers=carol["headers"])
    assert res.status_code == 403
    res = client.post("/api/v1/reviews/", json={"transactionId": txn_id, "rating": 6}, headers=bob["headers"])
    assert res.status_code == 422
    res = client.post("/api/v1/reviews/", json={"transactionId": str(ObjectId()), "rating": 5}, headers=bob["headers"])
    assert res.status_code == 404


def completed_skill_request(client, alice, bob):
    skill = share_skill(client, alice)
    request_id = request_skill(client, bob, skill["id"]).json()["id"]
    client.put(f"/api/v1/skillrequests/{request_id}/accept", headers=alice["headers"])
    client.put(f"/api/v1/skillrequests/{request_id}/complete", headers=bob["headers"])
    return skill["id"], request_id


def test_skill_reviews_both_sides(client, make_user, emits):
    alice, bob = make_user("Alice"), make_user("Bob")
    skill_id, request_id = completed_skill_request(client, alice, bob)

    pending = client.get("/api/v1/skillreviews/pending", headers=bob["headers"]).json()
    assert [r["id"] for r in pending["pending_as_requester"]] == [request_id]

    res = client.post("/api/v1/skillreviews/", json={"requestId": request_id, "rating": 5}, headers=bob["headers"])
    assert res.status_code == 201
    assert res.json()["reviewer_role"] == "requester"
    assert "skill_review" in [n["type"] for n in emitted(emits, "notification", room=alice["id"])]

    res = client.post("/api/v1/skillreviews/", json={"requestId": request_id, "rating": 2}, headers=alice["headers"])
    assert res.json()["reviewer_role"] == "provider"

    again = client.post("/api/v1/skillreviews/", json={"requestId": request_id, "rating": 2}, headers=alice["headers"])
    assert again.status_code == 400

    assert client.get(f"/api/v1/users/{bob['id']}", headers=alice["headers"]).json()["trust_score"] == 2.0
    assert sorted(r["rating"] for r in client.get(f"/api/v1/skillreviews/skill/{skill_id}").json()) == [2, 5]
    assert [r["rating"] for r in client.get(f"/api/v1/skillreviews/user/{alice['id']}").json()] == [5]


def test_skill_review_requires_completed_request(client, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")
    skill = share_skill(client, alice)
    request_id = request_skill(client, bob, skill["id"]).json()["id"]
    res = client.post("/api/v1/skillreviews/", json={"requestId": request_id, "rating": 5}, headers=bob["headers"])
    assert res.status_code == 400
    assert "not completed" in res.json()["detail"]


def test_skill_reviews_for_unknown_skill(client):
    assert client.get(f"/api/v1/skillreviews/skill/{ObjectId()}").status_code == 404
