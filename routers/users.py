# routers/users.py
"""
User directory endpoints.

- GET    /api/user?email=...           self or admin: does the record exist
- GET    /api/user[?getAllUsers=true]  admin: every user
- POST   /api/user                     registration, or profile/role update with action=update
- PUT    /api/user                     replace a profile picture (multipart)
- DELETE /api/user?email=...           remove a profile picture
"""
import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile
from pymongo.database import Database
from pymongo.errors import PyMongoError

import audit
import media
from auth import Identity, get_current_user, get_optional_user
from database import USERS, get_db, utcnow
from directory import (
    ROLES,
    ensure_user,
    find_user,
    normalize_email,
    normalize_phone,
    public_user,
    update_user_role,
)
from errors import NotFoundError, ValidationError
from policy import ADMIN, require_owner_or_admin, require_role
from rate_limit import rate_limited
from schemas import UserRequest, parse_email
from serializers import serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["users"], dependencies=[Depends(rate_limited)])


def _valid_email(email: Optional[str], message: str = "Valid email is required") -> str:
    return normalize_email(parse_email(email, message))


def _public(doc):
    return serialize_doc(public_user(doc))


@router.get("")
def get_users(
    request: Request,
    email: Optional[str] = None,
    getAllUsers: Optional[str] = None,
    db: Database = Depends(get_db),
    current: Identity = Depends(get_current_user),
):
    if email:
        email = _valid_email(email, "Invalid email format")
        require_owner_or_admin(current, email, "Access denied: Cannot check other users")
        found = find_user(db, email)
        audit.record(db, request, "USER_EMAIL_CHECK", current,
                     checkedEmail=email, found=bool(found))
        return {"exists": bool(found), "user": _public(found)}

    require_role(current, [ADMIN])
    users = [_public(u) for u in db[USERS].find({}).sort("createdAt", -1)]
    audit.record(db, request, "ALL_USERS_ACCESSED", current, userRole=current.role, resultCount=len(users))
    if getAllUsers == "true":
        return {"users": users}
    return users


def _update_profile(db: Database, request: Request, payload: UserRequest, current: Identity):
    email = normalize_email(payload.email)
    require_owner_or_admin(current, email, "Access denied: Cannot update other users")

    changes = {"updatedAt": utcnow(), "lastUpdatedBy": current.user_id}
    if payload.name is not None:
        if not payload.name.strip():
            raise ValidationError("Valid name is required")
        changes["name"] = payload.name.strip()
    if payload.phone is not None:
        changes["phone"] = normalize_phone(payload.phone)
    if payload.role is not None:
        require_role(current, [ADMIN])
        if payload.role not in ROLES:
            raise ValidationError("Invalid role. Only admin and user roles are allowed")

    if not find_user(db, email):
        raise NotFoundError("User not found")

    db[USERS].update_one({"email": email}, {"$set": changes})
    if payload.role is not None:
        update_user_role(db, email, payload.role, updated_by=current.user_id)
        changes["role"] = payload.role
        logger.info("%s set role of %s to %s", current.email, email, payload.role)

    audit.record(db, request, "USER_PROFILE_UPDATED", current,
                 targetEmail=email, updatedFields=sorted(changes))
    return {"message": "Profile updated successfully", "user": _public(find_user(db, email))}


@router.post("")
def upsert_user(
    payload: UserRequest,
    request: Request,
    response: Response,
    db: Database = Depends(get_db),
    current: Optional[Identity] = Depends(get_optional_user),
):
    if payload.action == "update":
        if current is None:
            # re-run verification to surface the precise authentication failure
            current = get_current_user(request, db)
        return _update_profile(db, request, payload, current)

    email = normalize_email(payload.email)
    admin_creation = current is not None and current.email != email
    if admin_creation:
        require_role(current, [ADMIN])

    existing = find_user(db, email)
    if existing:
        return {"message": "User already exists", "user": _public(existing)}

    if not payload.name or not payload.name.strip():
        raise ValidationError("Valid name is required")
    role = payload.role if admin_creation and payload.role in ROLES else "user"
    created = ensure_user(db, {
        "email": email,
        "name": payload.name,
        "phone": payload.phone or "",
        "role": role,
        "profilePicture": payload.profile_picture,
        "firebaseUid": payload.firebase_uid,
    }, created_by=current.user_id if current else "self-registration")

    audit.record(db, request, "USER_CREATED" if current else "SELF_REGISTRATION", current,
                 targetEmail=email, assignedRole=created.get("role"))
    response.status_code = 201
    return {"message": "User created", "user": _public(created)}


@router.put("")
def update_profile_picture(
    request: Request,
    email: str = Form(...),
    file: UploadFile = File(...),
    db: Database = Depends(get_db),
    current: Identity = Depends(get_current_user),
):
    email = _valid_email(email)
    require_owner_or_admin(current, email, "Access denied: Cannot update other users' profile pictures")

    raw = file.file.read()
    if not raw:
        raise ValidationError("File is required")
    media.validate_image(file.filename, file.content_type, len(raw), media.PROFILE_IMAGE_MAX_BYTES)

    existing = find_user(db, email)
    if not existing:
        raise NotFoundError("User not found")

    slug = email.replace("@", "_").replace(".", "_")
    url, public_id = media.upload_image(
        raw, media.PROFILE_FOLDER, f"user_{slug}_{int(time.time() * 1000)}", media.PROFILE_TRANSFORMATION,
    )
    try:
        result = db[USERS].update_one(
            {"email": email},
            {"$set": {
                "profilePicture": url,
                "profilePicturePublicId": public_id,
                "updatedAt": utcnow(),
                "lastUpdatedBy": current.user_id,
            }},
        )
    except PyMongoError:
        media.destroy(public_id)
        raise
    if result.matched_count == 0:
        media.destroy(public_id)
        raise NotFoundError("User not found")
    # the old image goes only once the record points at the new one
    media.destroy(existing.get("profilePicturePublicId"))

    audit.record(db, request, "PROFILE_PICTURE_UPDATED", current,
                 targetEmail=email, cloudinaryPublicId=public_id)
    return {"message": "Profile picture updated successfully", "imageUrl": url, "publicId": public_id}


@router.delete("")
def delete_profile_picture(
    request: Request,
    email: Optional[str] = None,
    db: Database = Depends(get_db),
    current: Identity = Depends(get_current_user),
):
    email = _valid_email(email)
    require_owner_or_admin(current, email, "Access denied: Cannot delete other users' profile pictures")

    found = find_user(db, email)
    if not found:
        raise NotFoundError("User not found")
    public_id = found.get("profilePicturePublicId")
    if not public_id:
        return {"message": "No profile picture to delete"}

    media.destroy(public_id)
    db[USERS].update_one(
        {"email": email},
        {
            "$unset": {"profilePicture": "", "profilePicturePublicId": ""},
            "$set": {"updatedAt": utcnow(), "lastUpdatedBy": current.user_id},
        },
    )
    audit.record(db, request, "PROFILE_PICTURE_DELETED", current,
                 targetEmail=email, deletedPublicId=public_id)
    return {"message": "Profile picture deleted successfully"}
