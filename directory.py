"""
User directory: the application's own user records, keyed by lowercase e-mail.
"""
import logging
import re
from typing import Any, Dict, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import USERS, utcnow
from errors import ValidationError

logger = logging.getLogger(__name__)

ROLES = ("admin", "user")
DEFAULT_ROLE = "user"
SENSITIVE_FIELDS = ("password", "profilePicturePublicId")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def find_user(db: Database, email: str) -> Optional[Dict[str, Any]]:
    if not email:
        return None
    return db[USERS].find_one({"email": normalize_email(email)})


def public_user(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    return {k: v for k, v in doc.items() if k not in SENSITIVE_FIELDS}


def normalize_phone(raw: str) -> str:
    """
    Normalize a phone number to local format.

    Non-digits are dropped, a leading 880 country code is removed, and
    ten-digit numbers get a leading zero. Blank input clears the phone.
    """
    if not raw or not raw.strip():
        return ""
    digits = re.sub(r"\D", "", raw)
    if digits.startswith("880"):
        digits = digits[3:]
    if not re.fullmatch(r"\d{10}|\d{11}", digits):
        raise ValidationError("Invalid phone number format")
    if len(digits) == 10 and not digits.startswith("0"):
        digits = "0" + digits
    return digits


def ensure_user(db: Database, profile: Dict[str, Any], created_by: str = "self-registration") -> Dict[str, Any]:
    """Return the stored record for profile["email"], creating it on first sign-in."""
    email = normalize_email(profile.get("email"))
    if not email:
        raise ValidationError("Valid email is required")
    existing = db[USERS].find_one({"email": email})
    if existing:
        return existing

    role = profile.get("role") or DEFAULT_ROLE
    if role not in ROLES:
        raise ValidationError("Invalid role. Only admin and user roles are allowed")
    now = utcnow()
    doc = {
        "email": email,
        "name": (profile.get("name") or email).strip(),
        "phone": normalize_phone(profile.get("phone") or ""),
        "role": role,
        "profilePicture": profile.get("profilePicture") or "",
        "firebaseUid": profile.get("firebaseUid") or "",
        "createdAt": now,
        "updatedAt": now,
        "createdBy": created_by,
    }
    try:
        inserted_id = db[USERS].insert_one(doc).inserted_id
    except DuplicateKeyError:
        # lost a race with a concurrent registration
        return db[USERS].find_one({"email": email})
    doc["_id"] = inserted_id
    logger.info("Created user %s with role %s", email, role)
    return doc


def update_user_role(db: Database, email: str, role: str, updated_by: Optional[str] = None) -> bool:
    if role not in ROLES:
        raise ValidationError("Invalid role. Only admin and user roles are allowed")
    update = {"role": role, "updatedAt": utcnow()}
    if updated_by:
        update["lastUpdatedBy"] = updated_by
    result = db[USERS].update_one({"email": normalize_email(email)}, {"$set": update})
    return result.matched_count > 0
