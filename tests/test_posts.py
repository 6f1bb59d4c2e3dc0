import os
import re

from conftest import API, make_post

from blogapi.config import settings
from blogapi.models import Post

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def test_create_post_sets_owner_and_slug(client, author):
    post = make_post(client, author, title="My First Post")
    assert re.fullmatch(r"my-first-post-\d+", post["slug"])
    assert post["is_published"] is False
    assert post["user"]["email"] == "alice@example.com"
    assert post["category"] is None
    assert post["banner"] is None and post["banner_url"] is None


def test_create_post_requires_auth(client):
    resp = client.post(f"{API}/user/posts", data={"title": "t", "content": "c"})
    assert resp.status_code == 401


def test_create_post_validation(client, author):
    resp = client.post(f"{API}/user/posts", data={"content": "no title"}, headers=author)
    assert resp.status_code == 400
    assert "title" in resp.json()["errors"]

    resp = client.post(
        f"{API}/user/posts",
        data={"title": "t", "content": "c", "category_id": "999"},
        headers=author,
    )
    assert resp.status_code == 400
    assert resp.json()["errors"] == {"category_id": ["The selected category id is invalid."]}


def test_create_post_with_category(client, author, category):
    post = make_post(client, author, category_id=category["id"], is_published=True)
    assert post["category"]["slug"] == "python-tips"
    assert post["is_published"] is True


def test_list_published_excludes_drafts(client, author):
    make_post(client, author, title="Draft")
    published = make_post(client, author, title="Live", is_published=True)

    resp = client.get(f"{API}/posts")
    assert resp.status_code == 200
    posts = resp.json()["data"]
    assert [p["id"] for p in posts] == [published["id"]]
    assert all(p["is_published"] for p in posts)


def test_list_my_posts_only_returns_callers_posts(client, author, other_author):
    mine = make_post(client, author, title="Mine")
    make_post(client, other_author, title="Theirs")

    resp = client.get(f"{API}/user/posts", headers=author)
    assert [p["id"] for p in resp.json()["data"]] == [mine["id"]]


def test_get_post_and_missing_post(client, author):
    post = make_post(client, author)
    resp = client.get(f"{API}/posts/{post['id']}")
    assert resp.status_code == 200
    assert resp.json()["data"]["title"] == "My First Post"

    resp = client.get(f"{API}/posts/9999")
    assert resp.status_code == 404
    assert resp.json()["message"] == "Post not found"


def test_update_post_partial_and_slug(client, author, db_session):
    post = make_post(client, author, title="Old Title")
    resp = client.put(
        f"{API}/user/posts/{post['id']}", data={"content": "new body"}, headers=author
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["content"] == "new body"
    assert data["title"] == "Old Title"
    assert data["slug"] == post["slug"]

    resp = client.put(
        f"{API}/user/posts/{post['id']}", data={"title": "New Title"}, headers=author
    )
    data = resp.json()["data"]
    assert data["title"] == "New Title"
    assert re.fullmatch(r"new-title-\d+", data["slug"])
    assert db_session.get(Post, post["id"]).slug == data["slug"]


def test_toggle_publish(client, author):
    post = make_post(client, author)
    resp = client.patch(f"{API}/user/posts/{post['id']}/toggle-publish", headers=author)
    assert resp.status_code == 200
    assert resp.json()["message"] == "Post published successfully"
    assert resp.json()["data"]["is_published"] is True

    resp = client.patch(f"{API}/user/posts/{post['id']}/toggle-publish", headers=author)
    assert resp.json()["message"] == "Post unpublished successfully"
    assert resp.json()["data"]["is_published"] is False


def test_non_owner_is_forbidden(client, author, other_author, db_session):
    post = make_post(client, author)
    url = f"{API}/user/posts/{post['id']}"

    resp = client.patch(f"{url}/toggle-publish", headers=other_author)
    assert resp.status_code == 403
    assert resp.json()["message"] == "Unauthorized"
    assert resp.json()["success"] is False

    assert client.put(url, data={"title": "hijack"}, headers=other_author).status_code == 403
    assert client.delete(url, headers=other_author).status_code == 403
    assert client.get(url, headers=other_author).status_code == 403

    stored = db_session.get(Post, post["id"])
    assert stored.is_published is False
    assert stored.title == "My First Post"


def test_missing_post_is_404_before_403(client, other_author):
    resp = client.patch(f"{API}/user/posts/4242/toggle-publish", headers=other_author)
    assert resp.status_code == 404


def test_admin_can_moderate_any_post(client, author, admin):
    post = make_post(client, author)
    url = f"{API}/user/posts/{post['id']}"
    assert client.patch(f"{url}/toggle-publish", headers=admin).status_code == 200
    assert client.put(url, data={"title": "Edited"}, headers=admin).status_code == 200
    assert client.delete(url, headers=admin).status_code == 200
    assert client.get(f"{API}/posts/{post['id']}").status_code == 404


def test_owner_can_delete(client, author):
    post = make_post(client, author)
    resp = client.delete(f"{API}/user/posts/{post['id']}", headers=author)
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Post deleted successfully", "data": None}


def test_banner_upload_and_replace(client, author):
    resp = client.post(
        f"{API}/user/posts",
        data={"title": "With Banner", "content": "body"},
        files={"banner": ("banner.png", PNG, "image/png")},
        headers=author,
    )
    assert resp.status_code == 201
    post = resp.json()["data"]
    assert post["banner"].startswith("banners/") and post["banner"].endswith(".png")
    assert post["banner_url"] == f"{settings.storage_url}/{post['banner']}"
    first_path = os.path.join(settings.upload_dir, post["banner"])
    assert os.path.exists(first_path)

    resp = client.put(
        f"{API}/user/posts/{post['id']}",
        files={"banner": ("next.png", PNG, "image/png")},
        headers=author,
    )
    assert resp.status_code == 200
    replaced = resp.json()["data"]["banner"]
    assert replaced != post["banner"]
    assert os.path.exists(os.path.join(settings.upload_dir, replaced))
    assert not os.path.exists(first_path)

    client.delete(f"{API}/user/posts/{post['id']}", headers=author)
    assert not os.path.exists(os.path.join(settings.upload_dir, replaced))


def test_banner_must_be_image(client, author, db_session):
    resp = client.post(
        f"{API}/user/posts",
        data={"title": "Bad Banner", "content": "body"},
        files={"banner": ("notes.txt", b"plain text", "text/plain")},
        headers=author,
    )
    assert resp.status_code == 400
    assert resp.json()["errors"] == {"banner": ["The banner must be an image."]}
    assert db_session.query(Post).count() == 0


def test_banner_size_limit(client, author, monkeypatch):
    monkeypatch.setattr(settings, "max_banner_size_kb", 1)
    resp = client.post(
        f"{API}/user/posts",
        data={"title": "Huge", "content": "body"},
        files={"banner": ("big.png", PNG + b"\x00" * 2048, "image/png")},
        headers=author,
    )
    assert resp.status_code == 400
    assert "banner" in resp.json()["errors"]


def test_create_post_from_json(client, author, category):
    resp = client.post(
        f"{API}/user/posts",
        json={"title": "Json Post", "content": "body", "category_id": category["id"], "is_published": True},
        headers=author,
    )
    assert resp.status_code == 201, resp.text
    post = resp.json()["data"]
    assert re.fullmatch(r"json-post-\d+", post["slug"])
    assert post["category"]["id"] == category["id"]
    assert post["is_published"] is True
    assert post["banner"] is None

    resp = client.post(f"{API}/user/posts", json={"content": "no title"}, headers=author)
    assert resp.status_code == 400
    assert "title" in resp.json()["errors"]


def test_update_post_from_json(client, author, category, db_session):
    post = make_post(client, author, title="Keep Me", category_id=category["id"])
    url = f"{API}/user/posts/{post['id']}"

    resp = client.put(url, json={"content": "edited"}, headers=author)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["content"] == "edited"
    assert data["title"] == "Keep Me"
    assert data["category_id"] == category["id"]

    resp = client.put(url, json={"category_id": None}, headers=author)
    assert resp.status_code == 200
    assert resp.json()["data"]["category"] is None
    assert db_session.get(Post, post["id"]).category_id is None

    resp = client.put(url, json={"title": None}, headers=author)
    assert resp.status_code == 400
    assert "title" in resp.json()["errors"]

    resp = client.put(url, content=b"{not json", headers={**author, "Content-Type": "application/json"})
    assert resp.status_code == 400


def _failing_banner_remove(monkeypatch):
    real_remove = os.remove

    def remove(path, *args, **kwargs):
        if "banners" in str(path):
            raise PermissionError(13, "Permission denied", str(path))
        return real_remove(path, *args, **kwargs)

    monkeypatch.setattr("blogapi.storage.os.remove", remove)


def test_replacing_banner_survives_cleanup_failure(client, author, db_session, monkeypatch):
    resp = client.post(
        f"{API}/user/posts",
        data={"title": "Sticky", "content": "body"},
        files={"banner": ("banner.png", PNG, "image/png")},
        headers=author,
    )
    post = resp.json()["data"]
    _failing_banner_remove(monkeypatch)

    resp = client.put(
        f"{API}/user/posts/{post['id']}",
        files={"banner": ("next.png", PNG, "image/png")},
        headers=author,
    )
    assert resp.status_code == 200, resp.text
    replaced = resp.json()["data"]["banner"]
    assert replaced != post["banner"]
    assert os.path.exists(os.path.join(settings.upload_dir, replaced))
    assert db_session.get(Post, post["id"]).banner == replaced


def test_delete_post_survives_cleanup_failure(client, author, db_session, monkeypatch):
    resp = client.post(
        f"{API}/user/posts",
        data={"title": "Gone", "content": "body"},
        files={"banner": ("banner.png", PNG, "image/png")},
        headers=author,
    )
    post = resp.json()["data"]
    _failing_banner_remove(monkeypatch)

    resp = client.delete(f"{API}/user/posts/{post['id']}", headers=author)
    assert resp.status_code == 200, resp.text
    assert db_session.get(Post, post["id"]) is None
