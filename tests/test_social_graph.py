import uuid
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from jam.models import Block, Follow, Friend, FriendStatus
from jam.services.social_graph import FriendService, SocialGraph


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob", bio="plays bass")


# Blocks

def test_block_and_unblock(client, alice, bob):
    response = client.post(f"/blocks/{bob.id}", headers=alice.headers)
    assert response.status_code == 201
    assert response.json()["blocker_id"] == alice.id
    assert response.json()["blocked_id"] == bob.id

    blocked = client.get("/blocks", headers=alice.headers).json()
    assert blocked["total"] == 1
    assert blocked["data"][0]["username"] == "bob"
    assert "blocked_at" in blocked["data"][0]

    response = client.post(f"/blocks/{bob.id}", headers=alice.headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "User already blocked"

    response = client.delete(f"/blocks/{bob.id}", headers=alice.headers)
    assert response.status_code == 200
    assert client.get("/blocks", headers=alice.headers).json()["total"] == 0

    response = client.delete(f"/blocks/{bob.id}", headers=alice.headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Block not found"


def test_block_rules(client, alice):
    response = client.post(f"/blocks/{alice.id}", headers=alice.headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "You cannot block yourself"

    assert client.post(f"/blocks/{uuid.uuid4()}", headers=alice.headers).status_code == 404
    assert client.post(f"/blocks/{alice.id}").status_code == 401


def test_blocks_are_directional(client, alice, bob):
    client.post(f"/blocks/{bob.id}", headers=alice.headers)
    response = client.post(f"/blocks/{alice.id}", headers=bob.headers)
    assert response.status_code == 201
    assert client.get("/blocks", headers=bob.headers).json()["total"] == 1


# Friends

def test_friend_request_and_accept(client, alice, bob):
    response = client.post(f"/friends/{bob.id}/request", headers=alice.headers)
    assert response.status_code == 201
    assert response.json() == {"message": "Friend request sent", "status": "pending"}

    requests = client.get("/friends/requests", headers=bob.headers).json()
    assert requests["total"] == 1
    assert requests["data"][0]["id"] == alice.id
    assert client.get("/friends/requests", headers=alice.headers).json()["total"] == 0
    assert client.get("/friends", headers=alice.headers).json()["total"] == 0

    response = client.post(f"/friends/{alice.id}/accept", headers=bob.headers)
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"

    alice_friends = client.get("/friends", headers=alice.headers).json()
    bob_friends = client.get("/friends", headers=bob.headers).json()
    assert [f["id"] for f in alice_friends["data"]] == [bob.id]
    assert [f["id"] for f in bob_friends["data"]] == [alice.id]
    assert client.get("/friends/requests", headers=bob.headers).json()["total"] == 0


def test_friend_request_rules(client, alice, bob):
    response = client.post(f"/friends/{alice.id}/request", headers=alice.headers)
    assert response.status_code == 400

    assert client.post(f"/friends/{uuid.uuid4()}/request", headers=alice.headers).status_code == 404

    client.post(f"/friends/{bob.id}/request", headers=alice.headers)
    response = client.post(f"/friends/{bob.id}/request", headers=alice.headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Friend request already sent"

    # Only the recipient can accept
    response = client.post(f"/friends/{bob.id}/accept", headers=alice.headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Friend request not found"


def test_mutual_request_accepts(client, alice, bob):
    client.post(f"/friends/{bob.id}/request", headers=alice.headers)
    response = client.post(f"/friends/{alice.id}/request", headers=bob.headers)
    assert response.json()["status"] == "accepted"

    response = client.post(f"/friends/{bob.id}/request", headers=alice.headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Users are already friends"


def test_delete_friend_either_side(client, alice, bob):
    client.post(f"/friends/{bob.id}/request", headers=alice.headers)
    client.post(f"/friends/{alice.id}/accept", headers=bob.headers)

    response = client.delete(f"/friends/{alice.id}", headers=bob.headers)
    assert response.status_code == 200
    assert client.get("/friends", headers=alice.headers).json()["total"] == 0

    response = client.delete(f"/friends/{alice.id}", headers=bob.headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Friendship not found"


def test_delete_friend_cancels_pending_request(client, alice, bob):
    client.post(f"/friends/{bob.id}/request", headers=alice.headers)
    assert client.delete(f"/friends/{bob.id}", headers=alice.headers).status_code == 200
    assert client.get("/friends/requests", headers=bob.headers).json()["total"] == 0


# Follows

def test_follow_and_unfollow(client, alice, bob):
    response = client.post(f"/follows/{bob.id}", headers=alice.headers)
    assert response.status_code == 201
    assert response.json()["following_id"] == bob.id

    following = client.get("/follows/following", headers=alice.headers).json()
    assert following["total"] == 1
    assert following["data"][0]["username"] == "bob"
    assert following["data"][0]["bio"] == "plays bass"

    followers = client.get(f"/follows/{bob.id}/followers").json()
    assert [f["id"] for f in followers["data"]] == [alice.id]
    assert client.get("/follows/followers", headers=bob.headers).json()["total"] == 1
    assert client.get(f"/follows/{alice.id}/following").json()["total"] == 1
    assert client.get("/follows/followers", headers=alice.headers).json()["total"] == 0

    response = client.post(f"/follows/{bob.id}", headers=alice.headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Already following this user"

    assert client.delete(f"/follows/{bob.id}", headers=alice.headers).status_code == 200
    response = client.delete(f"/follows/{bob.id}", headers=alice.headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Follow relationship not found"


def test_follow_rules(client, alice):
    response = client.post(f"/follows/{alice.id}", headers=alice.headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "You cannot follow yourself"

    assert client.post(f"/follows/{uuid.uuid4()}", headers=alice.headers).status_code == 404
    assert client.get(f"/follows/{uuid.uuid4()}/followers").status_code == 404
    assert client.get("/follows/following").status_code == 401


def test_graph_checks(db, alice, bob, make_user):
    carol = make_user("carol")
    graph = SocialGraph(db)
    assert not graph.is_blocked(alice.id, bob.id)
    assert not graph.are_friends(alice.id, bob.id)
    assert not graph.is_following(alice.id, bob.id)

    db.add(Block(blocker_id=bob.id, blocked_id=alice.id))
    db.add(Friend(user_id=alice.id, friend_id=carol.id, status=FriendStatus.ACCEPTED))
    db.add(Follow(follower_id=alice.id, following_id=carol.id))
    db.commit()

    assert graph.is_blocked(alice.id, bob.id)
    assert graph.is_blocked(bob.id, alice.id)
    assert graph.are_friends(carol.id, alice.id)
    assert graph.is_following(alice.id, carol.id)
    assert not graph.is_following(carol.id, alice.id)


def test_friend_pair_is_unique_in_either_direction(db, alice, bob):
    db.add(Friend(user_id=alice.id, friend_id=bob.id, status=FriendStatus.PENDING))
    db.commit()

    db.add(Friend(user_id=bob.id, friend_id=alice.id, status=FriendStatus.PENDING))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
    assert db.query(Friend).count() == 1


def test_crossed_friend_requests_become_one_friendship(client, db, alice, bob):
    service = FriendService(db)
    assert service.request_friend(alice.id, bob.id).status == FriendStatus.PENDING

    real_between = service._between
    calls = []

    def racing_between(user_id, friend_id):
        calls.append((user_id, friend_id))
        if len(calls) == 1:
            return None
        return real_between(user_id, friend_id)

    with patch.object(service, "_between", side_effect=racing_between):
        result = service.request_friend(bob.id, alice.id)

    assert result.status == FriendStatus.ACCEPTED
    assert len(calls) == 2
    assert db.query(Friend).count() == 1

    alice_friends = client.get("/friends", headers=alice.headers).json()
    assert alice_friends["total"] == 1
    assert [f["id"] for f in alice_friends["data"]] == [bob.id]
