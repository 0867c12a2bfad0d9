"""
Bearer-token verification.

A credential is tried against an ordered list of strategies: the Firebase
identity provider first, then tokens signed locally with JWT_SECRET. Each
strategy reports a structured VerificationResult instead of raising, and
the first success is enriched with the stored directory record.
"""
import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Sequence

import firebase_admin
from fastapi import Depends, Request
from firebase_admin import auth as fb_auth, credentials
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel
from pymongo.database import Database

import config
from database import get_db
from directory import DEFAULT_ROLE, find_user, normalize_email
from errors import AuthenticationError

logger = logging.getLogger(__name__)

EXPIRED = "expired"
INVALID = "invalid"
ERROR = "error"

_firebase_lock = threading.Lock()


class Identity(BaseModel):
    user_id: str
    email: str
    name: Optional[str] = None
    role: str = DEFAULT_ROLE
    phone: str = ""
    profile_picture: str = ""
    db_user_id: Optional[str] = None
    provider: str
    claims: Dict[str, Any] = {}


@dataclass
class VerificationResult:
    provider: str
    ok: bool
    claims: Dict[str, Any] = field(default_factory=dict)
    failure: Optional[str] = None
    detail: str = ""

    @classmethod
    def success(cls, provider: str, claims: Dict[str, Any]) -> "VerificationResult":
        return cls(provider=provider, ok=True, claims=claims)

    @classmethod
    def failed(cls, provider: str, failure: str, detail: str) -> "VerificationResult":
        return cls(provider=provider, ok=False, failure=failure, detail=detail)


def _init_firebase() -> None:
    if firebase_admin._apps:
        return
    with _firebase_lock:
        if firebase_admin._apps:
            return
        options = {"projectId": config.FIREBASE_PROJECT_ID} if config.FIREBASE_PROJECT_ID else None
        if config.FIREBASE_SERVICE_ACCOUNT_JSON:
            cred = credentials.Certificate(json.loads(config.FIREBASE_SERVICE_ACCOUNT_JSON))
            firebase_admin.initialize_app(cred, options)
        elif config.FIREBASE_CLIENT_EMAIL and config.FIREBASE_PRIVATE_KEY:
            cred = credentials.Certificate({
                "type": "service_account",
                "project_id": config.FIREBASE_PROJECT_ID,
                "client_email": config.FIREBASE_CLIENT_EMAIL,
                "private_key": config.FIREBASE_PRIVATE_KEY,
                "token_uri": "https://oauth2.googleapis.com/token",
            })
            firebase_admin.initialize_app(cred, options)
        else:
            firebase_admin.initialize_app(options=options)


class FirebaseStrategy:
    name = "firebase"

    def verify(self, token: str) -> VerificationResult:
        try:
            _init_firebase()
            decoded = fb_auth.verify_id_token(token)
        except fb_auth.ExpiredIdTokenError as e:
            return VerificationResult.failed(self.name, EXPIRED, str(e))
        except (fb_auth.InvalidIdTokenError, ValueError) as e:
            return VerificationResult.failed(self.name, INVALID, str(e))
        except Exception as e:
            return VerificationResult.failed(self.name, ERROR, str(e))
        return VerificationResult.success(self.name, decoded)


class LocalJwtStrategy:
    name = "jwt"

    def verify(self, token: str) -> VerificationResult:
        if not config.JWT_SECRET:
            return VerificationResult.failed(self.name, ERROR, "JWT_SECRET is not set")
        try:
            decoded = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
        except ExpiredSignatureError as e:
            return VerificationResult.failed(self.name, EXPIRED, str(e))
        except JWTError as e:
            return VerificationResult.failed(self.name, INVALID, str(e))
        return VerificationResult.success(self.name, decoded)


STRATEGIES: Sequence = (FirebaseStrategy(), LocalJwtStrategy())


def issue_local_token(email: str, role: str = DEFAULT_ROLE, name: Optional[str] = None,
                      expires_minutes: Optional[int] = None) -> str:
    """
    Sign a token that LocalJwtStrategy accepts.

    The API never hands these out; they come from operator tooling
    (`python auth.py EMAIL --role admin`) and the test-suite.
    """
    if not config.JWT_SECRET:
        raise RuntimeError("JWT_SECRET is not set")
    minutes = config.JWT_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    email = normalize_email(email)
    payload = {
        "sub": email,
        "email": email,
        "role": role,
        "exp": datetime.utcnow() + timedelta(minutes=minutes),
    }
    if name:
        payload["name"] = name
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def _classify(results: Sequence[VerificationResult]) -> AuthenticationError:
    for r in results:
        logger.warning("%s token verification failed: %s", r.provider, r.detail)
    failures = {r.failure for r in results}
    if EXPIRED in failures:
        return AuthenticationError("Token expired", kind=EXPIRED)
    if INVALID in failures:
        return AuthenticationError("Invalid token", kind=INVALID)
    return AuthenticationError("Authentication failed", kind=ERROR)


def _firebase_identity(db: Database, claims: Dict[str, Any]) -> Identity:
    db_user = find_user(db, claims.get("email"))
    if not db_user:
        raise AuthenticationError("User not found in database", kind="not_found")
    return Identity(
        user_id=claims.get("uid") or claims.get("user_id") or str(db_user["_id"]),
        email=normalize_email(claims.get("email")),
        name=db_user.get("name") or claims.get("name") or claims.get("email"),
        role=db_user.get("role") or DEFAULT_ROLE,
        phone=db_user.get("phone") or "",
        profile_picture=db_user.get("profilePicture") or claims.get("picture") or "",
        db_user_id=str(db_user["_id"]),
        provider="firebase",
        claims=claims,
    )


def _local_identity(db: Database, claims: Dict[str, Any]) -> Identity:
    email = normalize_email(claims.get("email"))
    if not email:
        raise AuthenticationError("Invalid token", kind=INVALID)
    user_id = str(claims.get("sub") or claims.get("id") or email)
    db_user = find_user(db, email)
    if not db_user:
        return Identity(
            user_id=user_id,
            email=email,
            name=claims.get("name") or email,
            role=claims.get("role") or DEFAULT_ROLE,
            phone=claims.get("phone") or "",
            provider="jwt",
            claims=claims,
        )
    return Identity(
        user_id=user_id,
        email=email,
        name=db_user.get("name") or claims.get("name") or email,
        role=db_user.get("role") or claims.get("role") or DEFAULT_ROLE,
        phone=db_user.get("phone") or claims.get("phone") or "",
        profile_picture=db_user.get("profilePicture") or "",
        db_user_id=str(db_user["_id"]),
        provider="jwt",
        claims=claims,
    )


def resolve_identity(db: Database, token: str, strategies: Sequence = STRATEGIES) -> Identity:
    results = []
    for strategy in strategies:
        result = strategy.verify(token)
        if result.ok:
            if result.provider == "firebase":
                return _firebase_identity(db, result.claims)
            return _local_identity(db, result.claims)
        results.append(result)
    raise _classify(results)


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization")
    if header:
        scheme, _, token = header.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    cookie = request.cookies.get(config.AUTH_COOKIE_NAME)
    return cookie or None


def get_current_user(request: Request, db: Database = Depends(get_db)) -> Identity:
    token = bearer_token(request)
    if not token:
        raise AuthenticationError("Authentication required - no token provided", kind="missing")
    return resolve_identity(db, token)


def get_optional_user(request: Request, db: Database = Depends(get_db)) -> Optional[Identity]:
    """Like get_current_user, but anonymous callers and bad tokens resolve to None."""
    token = bearer_token(request)
    if not token:
        return None
    try:
        return resolve_identity(db, token)
    except AuthenticationError as e:
        logger.info("Treating request as anonymous: %s", e.message)
        return None


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Print a locally signed bearer token")
    parser.add_argument("email")
    parser.add_argument("--role", default=DEFAULT_ROLE, choices=("admin", "user"))
    parser.add_argument("--name")
    parser.add_argument("--minutes", type=int, default=None)
    args = parser.parse_args()
    print(issue_local_token(args.email, role=args.role, name=args.name, expires_minutes=args.minutes))
