from prometheus_client import REGISTRY

from blogapi.cli import create_admin, main
from blogapi.models import User


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "message": "Service is healthy",
        "data": {"status": "ok"},
    }


def test_unknown_route_uses_envelope(client):
    resp = client.get("/api/v1/nope")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["data"] is None


def test_bad_path_parameter_is_validation_error(client):
    resp = client.get("/api/v1/posts/not-a-number")
    assert resp.status_code == 400
    assert "post_id" in resp.json()["errors"]


def test_create_admin_promotes_existing_user(client, db_session):
    client.post(
        "/api/v1/register",
        json={
            "name": "Dana",
            "email": "dana@example.com",
            "password": "secret1",
            "password_confirmation": "secret1",
        },
    )
    user = create_admin("ignored", "dana@example.com", None)
    assert user.role == "admin"
    assert user.name == "Dana"

    resp = client.post(
        "/api/v1/login", json={"email": "dana@example.com", "password": "secret1"}
    )
    assert resp.json()["data"]["user"]["role"] == "admin"


def test_cli_create_admin(db_session):
    assert main(["create-admin", "--email", "ops@example.com", "--password", "hunter22"]) == 0
    assert db_session.query(User).filter(User.email == "ops@example.com").one().role == "admin"
    assert main(["create-admin", "--email", "nobody@example.com"]) == 1


def test_request_metrics_use_route_template(client):
    labels = {"method": "GET", "endpoint": "/api/v1/posts/{post_id}", "status": "404"}
    before = REGISTRY.get_sample_value("api_requests_total", labels) or 0.0

    assert client.get("/api/v1/posts/101").status_code == 404
    assert client.get("/api/v1/posts/202").status_code == 404

    assert REGISTRY.get_sample_value("api_requests_total", labels) == before + 2
    assert REGISTRY.get_sample_value(
        "api_requests_total", {"method": "GET", "endpoint": "/api/v1/posts/101", "status": "404"}
    ) is None
