import pytest
from starlette.requests import Request

import auth
from auth import (
    LocalJwtStrategy,
    VerificationResult,
    bearer_token,
    issue_local_token,
    resolve_identity,
)
from errors import AuthenticationError


def make_request(headers=None, cookies=None):
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    if cookies:
        raw.append((b"cookie", "; ".join(f"{k}={v}" for k, v in cookies.items()).encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw, "query_string": b""})


class StaticStrategy:
    def __init__(self, result):
        self.result = result
        self.calls = 0

    def verify(self, token):
        self.calls += 1
        return self.result


def test_local_token_resolves_role_from_directory(db, make_user):
    make_user("owner@example.com", role="admin", name="Owner")
    token = issue_local_token("Owner@Example.com", role="user")

    identity = resolve_identity(db, token)

    assert identity.provider == "jwt"
    assert identity.email == "owner@example.com"
    assert identity.role == "admin"
    assert identity.name == "Owner"
    assert identity.db_user_id is not None


def test_local_token_without_directory_record_uses_claims(db):
    identity = resolve_identity(db, issue_local_token("new@example.com", role="user", name="New"))

    assert identity.role == "user"
    assert identity.name == "New"
    assert identity.db_user_id is None


def test_garbage_token_is_invalid(db):
    with pytest.raises(AuthenticationError) as exc:
        resolve_identity(db, "not-a-token")
    assert exc.value.message == "Invalid token"
    assert exc.value.status_code == 401


def test_expired_local_token_is_reported_as_expired(db):
    token = issue_local_token("late@example.com", expires_minutes=-5)
    with pytest.raises(AuthenticationError) as exc:
        resolve_identity(db, token)
    assert exc.value.kind == "expired"
    assert exc.value.message == "Token expired"


def test_token_signed_with_other_secret_is_rejected(db, monkeypatch):
    token = issue_local_token("someone@example.com")
    monkeypatch.setattr(auth.config, "JWT_SECRET", "another-secret")
    with pytest.raises(AuthenticationError):
        resolve_identity(db, token)


def test_firebase_token_for_known_user(db, make_user, monkeypatch):
    make_user("fb@example.com", role="admin", phone="01712345678")
    monkeypatch.setattr(auth.fb_auth, "verify_id_token",
                        lambda token: {"uid": "uid-1", "email": "FB@example.com", "picture": "http://p"})

    identity = resolve_identity(db, "firebase-token")

    assert identity.provider == "firebase"
    assert identity.user_id == "uid-1"
    assert identity.role == "admin"
    assert identity.phone == "01712345678"
    assert identity.profile_picture == "http://p"


def test_firebase_token_for_unknown_user_fails(db, monkeypatch):
    monkeypatch.setattr(auth.fb_auth, "verify_id_token",
                        lambda token: {"uid": "uid-2", "email": "ghost@example.com"})
    with pytest.raises(AuthenticationError) as exc:
        resolve_identity(db, "firebase-token")
    assert exc.value.message == "User not found in database"


def test_firebase_expired_wins_over_jwt_invalid(db, monkeypatch):
    def expired(token):
        raise auth.fb_auth.ExpiredIdTokenError("Token expired", None)

    monkeypatch.setattr(auth.fb_auth, "verify_id_token", expired)
    with pytest.raises(AuthenticationError) as exc:
        resolve_identity(db, "firebase-token")
    assert exc.value.kind == "expired"


def test_strategies_tried_in_order_and_stop_at_first_success(db):
    first = StaticStrategy(VerificationResult.success("jwt", {"email": "a@example.com", "sub": "a"}))
    second = StaticStrategy(VerificationResult.failed("jwt", "invalid", "never"))

    identity = resolve_identity(db, "t", strategies=(first, second))

    assert identity.email == "a@example.com"
    assert first.calls == 1
    assert second.calls == 0


def test_generic_failures_never_pass_through(db):
    strategies = (
        StaticStrategy(VerificationResult.failed("firebase", "error", "boom")),
        StaticStrategy(VerificationResult.failed("jwt", "error", "boom")),
    )
    with pytest.raises(AuthenticationError) as exc:
        resolve_identity(db, "t", strategies=strategies)
    assert exc.value.message == "Authentication failed"


def test_local_strategy_without_secret_reports_error(monkeypatch):
    monkeypatch.setattr(auth.config, "JWT_SECRET", None)
    result = LocalJwtStrategy().verify("anything")
    assert not result.ok
    assert result.failure == "error"


def test_bearer_token_from_header_or_cookie():
    assert bearer_token(make_request({"Authorization": "Bearer abc"})) == "abc"
    assert bearer_token(make_request(cookies={"auth-token": "xyz"})) == "xyz"
    assert bearer_token(make_request({"Authorization": "Basic abc"})) is None
    assert bearer_token(make_request()) is None


def test_missing_token_is_401(client):
    response = client.get("/api/user", params={"email": "a@example.com"})
    assert response.status_code == 401
    assert response.json()["message"] == "Authentication required - no token provided"


def test_cookie_token_authenticates(client, make_user):
    make_user("cookie@example.com")
    cookie = {"Cookie": f"auth-token={issue_local_token('cookie@example.com')}"}
    response = client.get("/api/user", params={"email": "cookie@example.com"}, headers=cookie)
    assert response.status_code == 200
    assert response.json()["exists"] is True
