import os
import shutil
import tempfile

# Settings are read at import time, so the test environment must be in place
# before the package is imported.
_TMP = tempfile.mkdtemp(prefix="blogapi-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP, "storage")
os.environ["AUTH_RATE_LIMIT"] = "1000/minute"
os.environ["PASSWORD_HASH_ITERATIONS"] = "1000"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient

from blogapi.api import app
from blogapi.cli import create_admin
from blogapi.database import SessionLocal, drop_db, init_db

API = "/api/v1"


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_TMP, ignore_errors=True)


@pytest.fixture(autouse=True)
def fresh_db():
    """Give every test an empty schema."""
    drop_db()
    init_db()
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def register(client, name="Alice", email="alice@example.com", password="secret1"):
    resp = client.post(
        f"{API}/register",
        json={
            "name": name,
            "email": email,
            "password": password,
            "password_confirmation": password,
        },
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]["access_token"]


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def author(client):
    return bearer(register(client))


@pytest.fixture
def other_author(client):
    return bearer(register(client, name="Bob", email="bob@example.com"))


@pytest.fixture
def admin(client):
    create_admin("Root", "root@example.com", "rootpass")
    resp = client.post(
        f"{API}/login", json={"email": "root@example.com", "password": "rootpass"}
    )
    assert resp.status_code == 200, resp.text
    return bearer(resp.json()["data"]["access_token"])


@pytest.fixture
def category(client, admin):
    resp = client.post(f"{API}/categories", json={"name": "Python Tips"}, headers=admin)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def make_post(client, headers, title="My First Post", **fields):
    data = {"title": title, "content": "Hello world"}
    data.update({k: str(v).lower() if isinstance(v, bool) else str(v) for k, v in fields.items()})
    resp = client.post(f"{API}/user/posts", data=data, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]
