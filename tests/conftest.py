import os
import tempfile

# Configure before the app (and its engine) is imported
_DB_DIR = tempfile.mkdtemp(prefix="duo-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ALGORITHM"] = "HS256"
for _key in ("VAPID_SUBJECT", "VAPID_PUBLIC_KEY", "VAPID_PRIVATE_KEY"):
    os.environ[_key] = ""

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel

from app.database import engine, init_db
from app.main import app


PASSWORD = "secret123"


@pytest.fixture
def client():
    SQLModel.metadata.drop_all(engine)
    init_db()
    with TestClient(app) as c:
        yield c


def register(client, email, full_name=None):
    resp = client.post(
        "/auth/register",
        json={"email": email, "password": PASSWORD, "full_name": full_name},
    )
    assert resp.status_code == 201, resp.text
    token = client.post("/auth/token", data={"username": email, "password": PASSWORD})
    assert token.status_code == 200, token.text
    return resp.json()["id"], {"Authorization": f"Bearer {token.json()['access_token']}"}


@pytest.fixture
def couple(client):
    """Alice creates a household and Bob joins it."""
    alice_id, alice = register(client, "alice@example.com", "Alice Smith")
    bob_id, bob = register(client, "bob@example.com", "Bob Builder")

    created = client.post("/households", json={"name": "Home"}, headers=alice)
    assert created.status_code == 201, created.text
    joined = client.post(f"/households/join/{created.json()['invite_code']}", headers=bob)
    assert joined.status_code == 200, joined.text

    return {
        "alice": alice,
        "bob": bob,
        "alice_id": alice_id,
        "bob_id": bob_id,
        "invite_code": created.json()["invite_code"],
        "household_id": created.json()["id"],
    }
