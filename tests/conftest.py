import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("APP_ENV", "test")

import mongomock
import pytest
from fastapi.testclient import TestClient

import audit
import auth
import rate_limit
from database import USERS, get_db, utcnow
from main import app


@pytest.fixture
def db():
    return mongomock.MongoClient()["bashachai_test"]


@pytest.fixture(autouse=True)
def no_firebase(monkeypatch):
    """Firebase rejects every token unless a test says otherwise."""
    def reject(token):
        raise ValueError("not a firebase ID token")

    monkeypatch.setattr(auth, "_init_firebase", lambda: None)
    monkeypatch.setattr(auth.fb_auth, "verify_id_token", reject)


@pytest.fixture(autouse=True)
def fresh_limiter(monkeypatch):
    monkeypatch.setattr(rate_limit.limiter, "store", rate_limit.InMemoryCounterStore())


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()
    audit.audit_queue.join()


@pytest.fixture
def make_user(db):
    def _make(email, role="user", name=None, **extra):
        doc = {
            "email": email.lower(),
            "name": name or email.split("@")[0],
            "phone": "",
            "role": role,
            "profilePicture": "",
            "createdAt": utcnow(),
            "updatedAt": utcnow(),
        }
        doc.update(extra)
        db[USERS].insert_one(doc)
        return doc

    return _make


def bearer(email, role="user", **kwargs):
    return {"Authorization": f"Bearer {auth.issue_local_token(email, role=role, **kwargs)}"}


@pytest.fixture
def auth_headers():
    return bearer
