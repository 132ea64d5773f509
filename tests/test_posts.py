import uuid

import pytest


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


def create_post(client, user, **body):
    response = client.post("/posts", json=body or {"text": "hello"}, headers=user.headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_feed_like_example(client, alice):
    post = create_post(client, alice, text="hello")

    feed = client.get("/posts/feed", headers=alice.headers).json()
    assert [item["id"] for item in feed["data"]] == [post["id"]]
    assert feed["data"][0]["likes_count"] == 0
    assert feed["data"][0]["is_liked"] is False

    liked = client.post(f"/posts/{post['id']}/like", headers=alice.headers).json()
    assert liked["is_liked"] is True
    assert liked["likes_count"] == 1

    unliked = client.post(f"/posts/{post['id']}/like", headers=alice.headers).json()
    assert unliked["is_liked"] is False
    assert unliked["likes_count"] == 0


def test_toggle_like_is_an_involution(client, alice, bob):
    post = create_post(client, alice)
    client.post(f"/posts/{post['id']}/like", headers=alice.headers)
    before = client.get(f"/posts/{post['id']}", headers=bob.headers).json()

    client.post(f"/posts/{post['id']}/like", headers=bob.headers)
    middle = client.get(f"/posts/{post['id']}", headers=bob.headers).json()
    client.post(f"/posts/{post['id']}/like", headers=bob.headers)
    after = client.get(f"/posts/{post['id']}", headers=bob.headers).json()

    assert middle["likes_count"] == before["likes_count"] + 1
    assert middle["is_liked"] is True
    assert (after["likes_count"], after["is_liked"]) == (before["likes_count"], before["is_liked"])


def test_feed_enrichment_is_per_viewer(client, alice, bob):
    first = create_post(client, alice, text="first")
    second = create_post(client, bob, text="second")
    client.post(f"/posts/{first['id']}/like", headers=bob.headers)
    client.post(f"/posts/{first['id']}/comments", json={"content": "nice"}, headers=bob.headers)

    feed = client.get("/posts/feed", headers=bob.headers).json()
    assert [item["id"] for item in feed["data"]] == [second["id"], first["id"]]
    by_id = {item["id"]: item for item in feed["data"]}
    assert by_id[first["id"]]["likes_count"] == 1
    assert by_id[first["id"]]["comments_count"] == 1
    assert by_id[first["id"]]["is_liked"] is True
    assert by_id[second["id"]]["is_liked"] is False
    assert by_id[first["id"]]["author"]["username"] == "alice"

    anonymous = client.get("/posts/feed").json()
    assert all(item["is_liked"] is False for item in anonymous["data"])
    assert anonymous["total"] == 2


def test_feed_excludes_comments(client, alice):
    post = create_post(client, alice)
    client.post(f"/posts/{post['id']}/comments", json={"content": "reply"}, headers=alice.headers)
    feed = client.get("/posts/feed").json()
    assert feed["total"] == 1


def test_create_post_requires_content(client, alice):
    response = client.post("/posts", json={}, headers=alice.headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Post must have either text or audio"

    response = client.post("/posts", json={"audio_url": "https://cdn.example.com/a.mp3"}, headers=alice.headers)
    assert response.status_code == 201
    assert response.json()["text"] == ""


def test_create_post_requires_auth(client):
    assert client.post("/posts", json={"text": "hi"}).status_code == 401


def test_get_missing_post(client):
    response = client.get(f"/posts/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json()["detail"] == "Post not found"


def test_delete_post_ownership(client, alice, bob):
    post = create_post(client, alice)

    response = client.delete(f"/posts/{post['id']}", headers=bob.headers)
    assert response.status_code == 403

    client.post(f"/posts/{post['id']}/like", headers=bob.headers)
    client.post(f"/posts/{post['id']}/comments", json={"content": "hey"}, headers=bob.headers)
    response = client.delete(f"/posts/{post['id']}", headers=alice.headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Post deleted successfully"
    assert client.get(f"/posts/{post['id']}").status_code == 404
    assert client.get("/posts/feed").json()["total"] == 0

    assert client.delete(f"/posts/{post['id']}", headers=alice.headers).status_code == 404


def test_followers_only_posts(client, alice, bob, make_user):
    carol = make_user("carol")
    private = create_post(client, alice, text="for followers", visibility="followers")

    assert client.get(f"/posts/{private['id']}", headers=bob.headers).status_code == 403
    assert client.get(f"/posts/{private['id']}").status_code == 403
    assert client.get("/posts/feed", headers=bob.headers).json()["total"] == 0
    assert client.post(f"/posts/{private['id']}/like", headers=bob.headers).status_code == 403

    client.post(f"/follows/{alice.id}", headers=bob.headers)
    assert client.get(f"/posts/{private['id']}", headers=bob.headers).status_code == 200
    assert client.get("/posts/feed", headers=bob.headers).json()["total"] == 1
    assert client.get("/posts/feed", headers=alice.headers).json()["total"] == 1
    assert client.get("/posts/feed", headers=carol.headers).json()["total"] == 0


def test_post_likes_list(client, alice, bob):
    post = create_post(client, alice)
    client.post(f"/posts/{post['id']}/like", headers=alice.headers)
    client.post(f"/posts/{post['id']}/like", headers=bob.headers)

    likes = client.get(f"/posts/{post['id']}/likes").json()
    assert likes["total"] == 2
    assert {item["username"] for item in likes["data"]} == {"alice", "bob"}
    assert all("liked_at" in item for item in likes["data"])

    assert client.get(f"/posts/{uuid.uuid4()}/likes").status_code == 404


def test_comments(client, alice, bob):
    post = create_post(client, alice)
    first = client.post(f"/posts/{post['id']}/comments", json={"content": "one"}, headers=bob.headers).json()
    second = client.post(f"/posts/{post['id']}/comments", json={"content": "two"}, headers=alice.headers).json()
    assert first["post_id"] == post["id"]
    assert first["likes_count"] == 0
    assert first["author"]["username"] == "bob"

    client.post(f"/posts/{first['id']}/like", headers=alice.headers)

    oldest_first = client.get(f"/posts/{post['id']}/comments", headers=alice.headers).json()
    assert [c["id"] for c in oldest_first["data"]] == [first["id"], second["id"]]
    assert oldest_first["data"][0]["likes_count"] == 1
    assert oldest_first["data"][0]["is_liked"] is True

    newest_first = client.get(f"/posts/{post['id']}/comments?order=desc").json()
    assert [c["id"] for c in newest_first["data"]] == [second["id"], first["id"]]

    assert client.get(f"/posts/{post['id']}", headers=alice.headers).json()["comments_count"] == 2


def test_comment_validation(client, alice):
    post = create_post(client, alice)
    response = client.post(f"/posts/{post['id']}/comments", json={}, headers=alice.headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Comment must have either content or audio_url"

    response = client.post(f"/posts/{uuid.uuid4()}/comments", json={"content": "x"}, headers=alice.headers)
    assert response.status_code == 404

    assert client.get(f"/posts/{post['id']}/comments?order=sideways").status_code == 400


def test_posts_by_username(client, alice, bob):
    create_post(client, alice, text="a1")
    create_post(client, alice, text="a2")
    create_post(client, bob, text="b1")

    page = client.get("/profiles/alice/posts?limit=1").json()
    assert page["total"] == 2
    assert page["hasMore"] is True
    assert page["data"][0]["text"] == "a2"

    assert client.get("/profiles/nobody/posts").status_code == 404
